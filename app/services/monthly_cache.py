"""
Monthly Cache Manager: persisted per-month presence aggregates.

The cache is an optimisation only. An entry is trusted while both its
``source_event_count`` (entry events in the month) and its
``source_content_hash`` match the live event log; anything else is a miss
and the month is recomputed from the Event Store. Fresh results are
returned straight away and written back in a background task, so a slow
or failing cache write never holds up or breaks a read.

Lifecycle per (year, month)::

    ABSENT -> (compute) -> VALID -> STALE (log changed) -> (compute) -> VALID
    VALID  -> INVALIDATED (explicit) -> (compute on next read) -> VALID
"""

from __future__ import annotations

import asyncio
import enum
import hashlib
import json
import logging
from collections import defaultdict
from collections.abc import Iterable
from datetime import datetime, timedelta, timezone

from pydantic import ValidationError
from sqlalchemy import update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.core.exceptions import CacheInconsistent, StorageUnavailable
from app.core.timeparse import date_key_of, ensure_utc
from app.models.attendance import EVENT_ENTRY, AttendanceEvent
from app.models.monthly_cache import MonthlyAttendanceCache, cache_entry_id
from app.models.team import Team
from app.models.user import User
from app.schemas.stats import DailyAggregate
from app.services.event_store import EventStore, month_bounds
from app.services.presence import aggregate

logger = logging.getLogger(__name__)


class CacheState(str, enum.Enum):
    ABSENT = "absent"
    VALID = "valid"
    STALE = "stale"
    INVALIDATED = "invalidated"


def content_hash(event_count: int, user_count: int, latest_timestamp: datetime | None) -> str:
    """Fingerprint of the month's source data.

    The log is append-only, so any write raises the count or moves the
    latest timestamp; a new or removed user changes the user count.
    """
    latest = ensure_utc(latest_timestamp).isoformat() if latest_timestamp else ""
    payload = json.dumps(
        {"logCount": event_count, "userCount": user_count, "lastLogTimestamp": latest},
        sort_keys=True,
    )
    return hashlib.sha256(payload.encode()).hexdigest()


def compute_monthly_stats(
    events: Iterable[AttendanceEvent],
    users: list[User],
    teams: list[Team],
    year: int,
    month: int,
) -> dict[str, DailyAggregate]:
    """One aggregate per calendar day of the month, empty days included."""
    first, last = month_bounds(year, month)
    by_day: dict[str, list[AttendanceEvent]] = defaultdict(list)
    for event in events:
        by_day[event.date_key].append(event)

    days: dict[str, DailyAggregate] = {}
    day = first
    while day <= last:
        key = date_key_of(day)
        days[key] = aggregate(by_day.get(key, []), users, teams, key)
        day += timedelta(days=1)
    return days


class MonthlyCacheManager:
    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        *,
        enabled: bool = True,
        tz_name: str | None = None,
    ) -> None:
        self._session_factory = session_factory
        self.enabled = enabled
        self.tz_name = tz_name
        self._pending: set[asyncio.Task] = set()

    # ── Read path ───────────────────────────────────────────────────
    async def get_monthly_stats(
        self,
        year: int,
        month: int,
        users: Iterable[User],
        teams: Iterable[Team],
    ) -> dict[str, DailyAggregate]:
        users, teams = list(users), list(teams)
        first, last = month_bounds(year, month)

        async with self._session_factory() as session:
            store = EventStore(session, self.tz_name)
            if self.enabled:
                cached = await self._cached_if_valid(session, store, year, month, len(users))
                if cached is not None:
                    logger.info("Monthly stats %04d-%02d served from cache", year, month)
                    return cached
            events = await store.range_query(None, first, last)

        days = compute_monthly_stats(events, users, teams, year, month)
        logger.info(
            "Monthly stats %04d-%02d recomputed from %d events", year, month, len(events)
        )

        if self.enabled:
            latest = max((e.timestamp for e in events), key=ensure_utc, default=None)
            self._schedule(
                self._persist(
                    year,
                    month,
                    days,
                    entry_count=sum(1 for e in events if e.type == EVENT_ENTRY),
                    source_hash=content_hash(len(events), len(users), latest),
                )
            )
        return days

    async def _cached_if_valid(
        self,
        session: AsyncSession,
        store: EventStore,
        year: int,
        month: int,
        user_count: int,
    ) -> dict[str, DailyAggregate] | None:
        try:
            entry = await session.get(MonthlyAttendanceCache, cache_entry_id(year, month))
        except SQLAlchemyError as exc:
            logger.warning("Cache read failed for %04d-%02d: %s", year, month, exc)
            await session.rollback()
            return None

        fingerprint = await store.month_fingerprint(year, month)
        state = self._state_of(entry, fingerprint.entry_count, content_hash(
            fingerprint.event_count, user_count, fingerprint.latest_timestamp
        ))
        if state is not CacheState.VALID:
            logger.debug("Cache %s for %04d-%02d", state.value, year, month)
            return None

        try:
            return self._decode(entry)
        except CacheInconsistent as exc:
            logger.warning("Discarding cache entry %s: %s", entry.id, exc)
            return None

    @staticmethod
    def _state_of(
        entry: MonthlyAttendanceCache | None,
        entry_count: int,
        source_hash: str,
    ) -> CacheState:
        if entry is None:
            return CacheState.ABSENT
        if entry.deleted:
            return CacheState.INVALIDATED
        if entry.source_event_count != entry_count or entry.source_content_hash != source_hash:
            return CacheState.STALE
        return CacheState.VALID

    @staticmethod
    def _decode(entry: MonthlyAttendanceCache) -> dict[str, DailyAggregate]:
        raw = entry.daily_aggregates
        if not isinstance(raw, dict):
            raise CacheInconsistent(f"daily_aggregates is {type(raw).__name__}")
        try:
            return {key: DailyAggregate.model_validate(value) for key, value in raw.items()}
        except ValidationError as exc:
            raise CacheInconsistent(str(exc)) from exc

    async def inspect(
        self, year: int, month: int, user_count: int
    ) -> tuple[CacheState, MonthlyAttendanceCache | None]:
        """Current cache state for a month, without recomputing anything."""
        async with self._session_factory() as session:
            try:
                entry = await session.get(MonthlyAttendanceCache, cache_entry_id(year, month))
            except SQLAlchemyError as exc:
                raise StorageUnavailable(str(exc)) from exc
            fingerprint = await EventStore(session, self.tz_name).month_fingerprint(year, month)
        state = self._state_of(
            entry,
            fingerprint.entry_count,
            content_hash(fingerprint.event_count, user_count, fingerprint.latest_timestamp),
        )
        return state, entry

    # ── Write path ──────────────────────────────────────────────────
    def _schedule(self, coro) -> None:
        task = asyncio.create_task(coro)
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def wait_for_pending(self) -> None:
        """Wait for background cache writes that are still in flight."""
        if self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    async def _persist(
        self,
        year: int,
        month: int,
        days: dict[str, DailyAggregate],
        *,
        entry_count: int,
        source_hash: str,
    ) -> None:
        entry_id = cache_entry_id(year, month)
        payload = {key: agg.model_dump() for key, agg in days.items()}
        try:
            async with self._session_factory() as session:
                entry = await session.get(MonthlyAttendanceCache, entry_id)
                if entry is None:
                    entry = MonthlyAttendanceCache(id=entry_id, year=year, month=month)
                    session.add(entry)
                entry.daily_aggregates = payload
                entry.source_event_count = entry_count
                entry.source_content_hash = source_hash
                entry.computed_at = datetime.now(timezone.utc)
                entry.deleted = False
                entry.deleted_at = None
                await session.commit()
            logger.info("Saved monthly cache %s", entry_id)
        except SQLAlchemyError as exc:
            logger.error("Could not save monthly cache %s: %s", entry_id, exc)

    async def invalidate(self, year: int, month: int) -> None:
        """Tombstone a month's entry; the next read recomputes it."""
        entry_id = cache_entry_id(year, month)
        now = datetime.now(timezone.utc)
        try:
            async with self._session_factory() as session:
                entry = await session.get(MonthlyAttendanceCache, entry_id)
                if entry is None:
                    entry = MonthlyAttendanceCache(
                        id=entry_id, year=year, month=month, daily_aggregates={}
                    )
                    session.add(entry)
                entry.deleted = True
                entry.deleted_at = now
                await session.commit()
        except SQLAlchemyError as exc:
            raise StorageUnavailable(str(exc)) from exc
        logger.info("Invalidated monthly cache %s", entry_id)

    async def invalidate_all(self) -> int:
        try:
            async with self._session_factory() as session:
                result = await session.execute(
                    update(MonthlyAttendanceCache)
                    .where(MonthlyAttendanceCache.deleted.is_(False))
                    .values(deleted=True, deleted_at=datetime.now(timezone.utc))
                )
                await session.commit()
        except SQLAlchemyError as exc:
            raise StorageUnavailable(str(exc)) from exc
        logger.info("Invalidated %d monthly cache entries", result.rowcount)
        return result.rowcount or 0
