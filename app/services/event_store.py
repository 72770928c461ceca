"""
Event Store: append-only, date-partitioned attendance log.

Each event is filed under ``date_key``, the calendar date of its timestamp
in the business timezone. Callers never see partitions: range reads take
plain dates and return one list ordered newest first.

Every storage failure surfaces as :class:`StorageUnavailable`; nothing is
retried here.
"""

from __future__ import annotations

import calendar
import logging
from collections.abc import Sequence
from dataclasses import dataclass
from datetime import date, datetime, timezone

from sqlalchemy import case, func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import StorageUnavailable
from app.core.timeparse import date_key_of, ensure_utc, to_date_key
from app.models.attendance import EVENT_ENTRY, EVENT_TYPES, AttendanceEvent
from app.models.user import PRESENCE_ACTIVE, PRESENCE_INACTIVE, User

logger = logging.getLogger(__name__)


def make_event_id(user_id: str, ts: datetime) -> str:
    return f"{user_id}_{int(ensure_utc(ts).timestamp() * 1000)}"


def month_bounds(year: int, month: int) -> tuple[date, date]:
    _, days_in_month = calendar.monthrange(year, month)
    return date(year, month, 1), date(year, month, days_in_month)


@dataclass(frozen=True)
class MonthFingerprint:
    event_count: int
    entry_count: int
    latest_timestamp: datetime | None


class EventStore:
    def __init__(self, session: AsyncSession, tz_name: str | None = None) -> None:
        self.session = session
        self.tz_name = tz_name

    # ── Writes ──────────────────────────────────────────────────────
    def stage(
        self,
        user_id: str,
        card_id: str | None,
        event_type: str,
        timestamp: datetime | None = None,
        *,
        event_id: str | None = None,
        migrated_at: datetime | None = None,
    ) -> AttendanceEvent:
        """Add an event to the current transaction without committing."""
        if event_type not in EVENT_TYPES:
            raise ValueError(f"Unknown event type {event_type!r}")
        ts = ensure_utc(timestamp or datetime.now(timezone.utc))
        event = AttendanceEvent(
            id=event_id or make_event_id(user_id, ts),
            user_id=user_id,
            card_id=card_id or "",
            type=event_type,
            timestamp=ts,
            date_key=to_date_key(ts, self.tz_name),
            migrated_at=migrated_at,
        )
        self.session.add(event)
        return event

    async def commit(self) -> None:
        try:
            await self.session.commit()
        except SQLAlchemyError as exc:
            await self.session.rollback()
            raise StorageUnavailable(str(exc)) from exc

    async def append(
        self,
        user_id: str,
        card_id: str | None,
        event_type: str,
        timestamp: datetime | None = None,
    ) -> str:
        event = self.stage(user_id, card_id, event_type, timestamp)
        await self.commit()
        logger.debug("Appended %s event %s (%s)", event_type, event.id, event.date_key)
        return event.id

    async def append_with_presence(
        self,
        user: User,
        card_id: str | None,
        event_type: str,
        timestamp: datetime | None = None,
    ) -> AttendanceEvent:
        """Append an event and update ``user.presence_status`` in one commit."""
        event = self.stage(user.id, card_id, event_type, timestamp)
        user.presence_status = PRESENCE_ACTIVE if event_type == EVENT_ENTRY else PRESENCE_INACTIVE
        await self.commit()
        return event

    # ── Reads ───────────────────────────────────────────────────────
    async def _scalars(self, stmt) -> list:
        try:
            result = await self.session.execute(stmt)
        except SQLAlchemyError as exc:
            raise StorageUnavailable(str(exc)) from exc
        return list(result.scalars().all())

    async def range_query(
        self,
        user_id: str | None,
        start_date: date,
        end_date: date,
    ) -> list[AttendanceEvent]:
        """All events dated ``start_date..end_date`` inclusive, newest first."""
        stmt = select(AttendanceEvent).where(
            AttendanceEvent.date_key >= date_key_of(start_date),
            AttendanceEvent.date_key <= date_key_of(end_date),
        )
        if user_id is not None:
            stmt = stmt.where(AttendanceEvent.user_id == user_id)
        stmt = stmt.order_by(AttendanceEvent.timestamp.desc(), AttendanceEvent.id.desc())
        return await self._scalars(stmt)

    async def range_query_for_users(
        self,
        user_ids: Sequence[str],
        start_date: date,
        end_date: date,
    ) -> list[AttendanceEvent]:
        """Like :meth:`range_query` for a batch of users; callers chunk ids."""
        if not user_ids:
            return []
        stmt = (
            select(AttendanceEvent)
            .where(
                AttendanceEvent.user_id.in_(list(user_ids)),
                AttendanceEvent.date_key >= date_key_of(start_date),
                AttendanceEvent.date_key <= date_key_of(end_date),
            )
            .order_by(AttendanceEvent.timestamp.desc(), AttendanceEvent.id.desc())
        )
        return await self._scalars(stmt)

    async def latest_event_ids(self, user_ids: Sequence[str], day: date) -> dict[str, str]:
        """Id of each user's deciding event on *day*; users without events are absent."""
        latest: dict[str, str] = {}
        # newest first, so the first event seen per user wins
        for event in await self.range_query_for_users(user_ids, day, day):
            latest.setdefault(event.user_id, event.id)
        return latest

    async def exists_by_id(self, event_id: str) -> bool:
        try:
            return await self.session.get(AttendanceEvent, event_id) is not None
        except SQLAlchemyError as exc:
            raise StorageUnavailable(str(exc)) from exc

    async def count_ids(self, event_ids: Sequence[str]) -> int:
        """How many of *event_ids* are present in the store."""
        if not event_ids:
            return 0
        try:
            result = await self.session.execute(
                select(func.count(AttendanceEvent.id)).where(
                    AttendanceEvent.id.in_(list(event_ids))
                )
            )
        except SQLAlchemyError as exc:
            raise StorageUnavailable(str(exc)) from exc
        return result.scalar() or 0

    async def month_fingerprint(self, year: int, month: int) -> MonthFingerprint:
        first, last = month_bounds(year, month)
        stmt = select(
            func.count(AttendanceEvent.id),
            func.sum(case((AttendanceEvent.type == EVENT_ENTRY, 1), else_=0)),
            func.max(AttendanceEvent.timestamp),
        ).where(
            AttendanceEvent.date_key >= date_key_of(first),
            AttendanceEvent.date_key <= date_key_of(last),
        )
        try:
            row = (await self.session.execute(stmt)).one()
        except SQLAlchemyError as exc:
            raise StorageUnavailable(str(exc)) from exc
        count, entries, latest = row
        if isinstance(latest, datetime):
            latest = ensure_utc(latest)
        return MonthFingerprint(
            event_count=count or 0,
            entry_count=int(entries or 0),
            latest_timestamp=latest,
        )
