"""
Cron settings and call-log endpoints (admin).

Singleton pattern: only one row in cron_settings. GET retrieves it, PUT
updates it. If no row exists, one is created from config defaults.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.v1.deps import get_db, require_admin
from app.models.api_call_log import ApiCallLog
from app.models.cron_settings import CronSettings
from app.models.user import User
from app.schemas.attendance import ApiCallLogRead, CronSettingsRead, CronSettingsUpdate
from app.services.scheduling import get_cron_settings, list_call_logs, update_cron_settings

router = APIRouter(tags=["settings"])


@router.get("/settings/cron", response_model=CronSettingsRead)
async def get_settings(
    db: AsyncSession = Depends(get_db),
    _admin: User = Depends(require_admin),
) -> CronSettings:
    """Get the forced-checkout window."""
    return await get_cron_settings(db)


@router.put("/settings/cron", response_model=CronSettingsRead)
async def update_settings(
    body: CronSettingsUpdate,
    db: AsyncSession = Depends(get_db),
    _admin: User = Depends(require_admin),
) -> CronSettings:
    """Update the forced-checkout window (HH:MM, business timezone)."""
    return await update_cron_settings(db, **body.model_dump(exclude_unset=True, exclude_none=True))


@router.get("/api-call-logs", response_model=list[ApiCallLogRead])
async def call_logs(
    endpoint: str | None = None,
    limit: int = Query(default=50, ge=1, le=500),
    db: AsyncSession = Depends(get_db),
    _admin: User = Depends(require_admin),
) -> list[ApiCallLog]:
    """Most recent scheduled-endpoint invocations first."""
    return await list_call_logs(db, endpoint, limit)
