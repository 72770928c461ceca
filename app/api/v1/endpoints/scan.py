"""
Kiosk scan + per-user event history.

- POST /scan is public (the kiosk does not log in).
- GET /attendance/users/{user_id} is open to that user and to admins.
"""

from __future__ import annotations

import logging
from datetime import date

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.v1.deps import get_current_user, get_db
from app.core.timeparse import business_today
from app.models.user import User
from app.schemas.attendance import AttendanceEventRead, ScanRequest, ScanResponse
from app.services.event_store import EventStore
from app.services.recorder import record_attendance

router = APIRouter(tags=["attendance"])
logger = logging.getLogger(__name__)

MAX_RANGE_DAYS = 366


# ── NFC Scan (PUBLIC) ───────────────────────────────────────────────
@router.post("/scan", response_model=ScanResponse)
async def scan_card(
    body: ScanRequest,
    db: AsyncSession = Depends(get_db),
) -> ScanResponse:
    """Record a card tap: entry when absent today, exit when present.

    Unregistered cards and storage failures are reported in ``status``
    rather than as HTTP errors so the kiosk can always show a message.
    """
    result = await record_attendance(db, body.card_id)
    return ScanResponse(
        status=result.status,
        message=result.message,
        sub_message=result.sub_message,
        event_type=result.event_type,
        event_id=result.event_id,
    )


@router.get("/attendance/users/{user_id}", response_model=list[AttendanceEventRead])
async def user_events(
    user_id: str,
    start: date | None = Query(default=None),
    end: date | None = Query(default=None),
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> list:
    """A user's events between ``start`` and ``end`` (default: today), newest first."""
    if current_user.id != user_id and current_user.role != "admin":
        raise HTTPException(status_code=403, detail="Not allowed to view this user")

    today = business_today()
    start = start or end or today
    end = end or start
    if end < start:
        raise HTTPException(status_code=400, detail="end must not be before start")
    if (end - start).days >= MAX_RANGE_DAYS:
        raise HTTPException(status_code=400, detail="Range too long (max one year)")

    return await EventStore(db).range_query(user_id, start, end)
