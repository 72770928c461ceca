"""
Presence statistics, monthly cache maintenance and health.

Monthly stats go through the cache manager; the daily view is always
computed live from that day's partition.
"""

from __future__ import annotations

import logging
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, Path
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.v1.deps import get_cache_manager, get_current_user, get_db, require_admin
from app.core.timeparse import parse_date_key
from app.models.team import Team
from app.models.user import User
from app.schemas.attendance import HealthResponse
from app.schemas.stats import (
    CacheStateResponse,
    DailyAggregate,
    InvalidateResponse,
    MonthlyStatsResponse,
)
from app.services.event_store import EventStore
from app.services.monthly_cache import MonthlyCacheManager
from app.services.presence import aggregate

router = APIRouter(tags=["stats"])
logger = logging.getLogger(__name__)

Year = Annotated[int, Path(ge=2000, le=2100)]
Month = Annotated[int, Path(ge=1, le=12)]


async def _reference_data(db: AsyncSession) -> tuple[list[User], list[Team]]:
    users = list((await db.execute(select(User))).scalars().all())
    teams = list((await db.execute(select(Team))).scalars().all())
    return users, teams


@router.get("/stats/monthly/{year}/{month}", response_model=MonthlyStatsResponse)
async def monthly_stats(
    year: Year,
    month: Month,
    db: AsyncSession = Depends(get_db),
    manager: MonthlyCacheManager = Depends(get_cache_manager),
    _user: User = Depends(get_current_user),
) -> MonthlyStatsResponse:
    users, teams = await _reference_data(db)
    days = await manager.get_monthly_stats(year, month, users, teams)
    return MonthlyStatsResponse(year=year, month=month, days=days)


@router.get("/stats/daily/{date_key}", response_model=DailyAggregate)
async def daily_stats(
    date_key: str,
    db: AsyncSession = Depends(get_db),
    _user: User = Depends(get_current_user),
) -> DailyAggregate:
    try:
        day = parse_date_key(date_key)
    except ValueError:
        raise HTTPException(status_code=400, detail="Date must be formatted as YYYY-MM-DD")
    users, teams = await _reference_data(db)
    events = await EventStore(db).range_query(None, day, day)
    return aggregate(events, users, teams, date_key)


# ── Cache maintenance (admin) ───────────────────────────────────────
@router.get("/stats/monthly/{year}/{month}/cache", response_model=CacheStateResponse)
async def cache_state(
    year: Year,
    month: Month,
    db: AsyncSession = Depends(get_db),
    manager: MonthlyCacheManager = Depends(get_cache_manager),
    _admin: User = Depends(require_admin),
) -> CacheStateResponse:
    users, _teams = await _reference_data(db)
    state, entry = await manager.inspect(year, month, len(users))
    return CacheStateResponse(
        year=year,
        month=month,
        state=state.value,
        computed_at=entry.computed_at if entry is not None else None,
        source_event_count=entry.source_event_count if entry is not None else None,
    )


@router.post("/stats/monthly/{year}/{month}/invalidate", response_model=InvalidateResponse)
async def invalidate_month(
    year: Year,
    month: Month,
    manager: MonthlyCacheManager = Depends(get_cache_manager),
    admin: User = Depends(require_admin),
) -> InvalidateResponse:
    await manager.invalidate(year, month)
    logger.info("Cache for %04d-%02d invalidated by %s", year, month, admin.id)
    return InvalidateResponse(
        success=True, message=f"Cache for {year:04d}-{month:02d} invalidated"
    )


@router.post("/stats/cache/invalidate-all", response_model=InvalidateResponse)
async def invalidate_all(
    manager: MonthlyCacheManager = Depends(get_cache_manager),
    admin: User = Depends(require_admin),
) -> InvalidateResponse:
    count = await manager.invalidate_all()
    logger.info("All monthly caches invalidated by %s", admin.id)
    return InvalidateResponse(success=True, message=f"{count} cache entries invalidated")


# ── Health (PUBLIC) ─────────────────────────────────────────────────
@router.get("/health", response_model=HealthResponse)
async def health(db: AsyncSession = Depends(get_db)) -> HealthResponse:
    """Public health check: database connectivity."""
    result = HealthResponse(db=False)
    try:
        await db.execute(select(1))
        result.db = True
    except Exception as e:
        logger.error("Health check DB failure: %s", e)
    return result
