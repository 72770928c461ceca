"""
Forced-Checkout Reconciler: end-of-day sweep.

Everyone whose latest event today is an ``entry`` gets a synthetic
``exit`` (card id ``"force_checkout"``) and ``presence_status =
"inactive"``, written in the same transaction. Running it again finds
nobody present, so repeated runs are no-ops.

Both phases are chunked: presence lookups by
``PRESENCE_LOOKUP_CHUNK_SIZE`` user ids, writes so that one transaction
stays within ``WRITE_BATCH_OPERATION_LIMIT`` operations. A failing chunk
is counted and reported; the remaining chunks still run.

Before writing, each chunk re-reads the latest event of its users and
leaves alone anyone whose latest event changed since the lookup (a tap
that landed during the sweep).
"""

from __future__ import annotations

import logging
from collections import defaultdict
from collections.abc import Iterator, Sequence
from dataclasses import asdict, dataclass, field
from datetime import datetime, timedelta, timezone

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.core.config import settings
from app.core.exceptions import StorageUnavailable
from app.core.timeparse import business_today, ensure_utc
from app.models.attendance import EVENT_EXIT, AttendanceEvent
from app.models.user import PRESENCE_INACTIVE, User
from app.services.event_store import EventStore
from app.services.presence import PresenceState, derive_presence, latest_event_by_user

logger = logging.getLogger(__name__)

FORCE_CHECKOUT_CARD_ID = "force_checkout"


def chunked(items: Sequence, size: int) -> Iterator[list]:
    for start in range(0, len(items), size):
        yield list(items[start:start + size])


@dataclass
class ForceCheckoutResult:
    success: int = 0
    no_action: int = 0
    failed: int = 0
    failed_chunks: list[dict] = field(default_factory=list)

    def as_dict(self) -> dict:
        return asdict(self)


@dataclass(frozen=True)
class _Target:
    user_id: str
    seen_event_id: str
    seen_timestamp: datetime


class ForcedCheckoutReconciler:
    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        *,
        lookup_chunk_size: int | None = None,
        write_operation_limit: int | None = None,
        tz_name: str | None = None,
    ) -> None:
        self._session_factory = session_factory
        self.lookup_chunk_size = lookup_chunk_size or settings.PRESENCE_LOOKUP_CHUNK_SIZE
        # one event + one user update per checked-out user
        self.write_chunk_size = max(
            1, (write_operation_limit or settings.WRITE_BATCH_OPERATION_LIMIT) // 2
        )
        self.tz_name = tz_name

    async def force_checkout_all(self, now: datetime | None = None) -> ForceCheckoutResult:
        now = ensure_utc(now or datetime.now(timezone.utc))
        today = business_today(now, self.tz_name)
        result = ForceCheckoutResult()

        user_ids = await self._load_user_ids()
        targets: list[_Target] = []
        for index, chunk in enumerate(chunked(user_ids, self.lookup_chunk_size)):
            targets.extend(await self._lookup_chunk(index, chunk, today, result))

        for index, chunk in enumerate(chunked(targets, self.write_chunk_size)):
            await self._write_chunk(index, chunk, now, today, result)

        logger.info(
            "Force checkout finished: success=%d no_action=%d failed=%d (users=%d)",
            result.success,
            result.no_action,
            result.failed,
            len(user_ids),
        )
        return result

    async def _load_user_ids(self) -> list[str]:
        try:
            async with self._session_factory() as session:
                rows = await session.execute(select(User.id).order_by(User.id))
                return list(rows.scalars().all())
        except SQLAlchemyError as exc:
            raise StorageUnavailable(str(exc)) from exc

    async def _lookup_chunk(self, index, user_ids, today, result) -> list[_Target]:
        try:
            async with self._session_factory() as session:
                events = await EventStore(session, self.tz_name).range_query_for_users(
                    user_ids, today, today
                )
        except StorageUnavailable as exc:
            logger.error("Presence lookup chunk %d failed: %s", index, exc)
            result.failed += len(user_ids)
            result.failed_chunks.append(
                {"phase": "lookup", "chunk": index, "user_ids": user_ids, "error": str(exc)}
            )
            return []

        by_user: dict[str, list[AttendanceEvent]] = defaultdict(list)
        for event in events:
            by_user[event.user_id].append(event)

        targets = []
        for user_id in user_ids:
            try:
                user_events = by_user.get(user_id, [])
                if derive_presence(user_events) is PresenceState.PRESENT:
                    latest = latest_event_by_user(user_events)[user_id]
                    targets.append(
                        _Target(user_id, latest.id, ensure_utc(latest.timestamp))
                    )
                else:
                    result.no_action += 1
            except Exception:
                logger.exception("Could not determine presence for %s", user_id)
                result.failed += 1
        return targets

    async def _write_chunk(self, index, targets, now, today, result) -> None:
        user_ids = [t.user_id for t in targets]
        written = skipped = 0
        try:
            async with self._session_factory() as session:
                store = EventStore(session, self.tz_name)
                current = await store.latest_event_ids(user_ids, today)
                users = {
                    u.id: u
                    for u in (
                        await session.execute(select(User).where(User.id.in_(user_ids)))
                    ).scalars()
                }
                for target in targets:
                    if current.get(target.user_id) != target.seen_event_id:
                        logger.info(
                            "Skipping %s: latest event changed during sweep", target.user_id
                        )
                        skipped += 1
                        continue
                    # keep the synthetic exit strictly after the entry it closes
                    ts = max(now, target.seen_timestamp + timedelta(milliseconds=1))
                    store.stage(target.user_id, FORCE_CHECKOUT_CARD_ID, EVENT_EXIT, ts)
                    user = users.get(target.user_id)
                    if user is not None:
                        user.presence_status = PRESENCE_INACTIVE
                    written += 1
                await store.commit()
        except (StorageUnavailable, SQLAlchemyError) as exc:
            logger.error("Force checkout write chunk %d failed: %s", index, exc)
            result.failed += len(targets)
            result.failed_chunks.append(
                {"phase": "write", "chunk": index, "user_ids": user_ids, "error": str(exc)}
            )
            return

        result.success += written
        result.no_action += skipped
