"""
Migration Tool: copy the flat ``attendance_logs`` table into the
date-partitioned ``attendance_events`` store.

Re-runnable: a record whose id already exists in the new store is skipped,
so a crashed run is resumed by simply running it again. Each record is
committed on its own. Original ids are kept and ``migrated_at`` marks the
copies.
"""

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass
from datetime import datetime, timezone

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.core.exceptions import StorageUnavailable, UnparseableTimestamp
from app.core.timeparse import coerce_timestamp
from app.models.attendance import EVENT_TYPES, LegacyAttendanceLog
from app.services.event_store import EventStore

logger = logging.getLogger(__name__)

PROGRESS_EVERY = 50


@dataclass
class MigrationReport:
    success: int = 0
    failed: int = 0
    skipped: int = 0
    source_count: int = 0
    verified_count: int = 0

    @property
    def verified(self) -> bool:
        """Every record that did not fail is present in the new store."""
        return self.verified_count == self.source_count - self.failed

    def as_dict(self) -> dict:
        return {**asdict(self), "verified": self.verified}


@dataclass(frozen=True)
class _LegacyRecord:
    id: str
    user_id: str
    card_id: str | None
    type: str
    timestamp_raw: object


async def load_legacy_logs(session: AsyncSession) -> list[_LegacyRecord]:
    try:
        rows = (
            await session.execute(select(LegacyAttendanceLog).order_by(LegacyAttendanceLog.id))
        ).scalars()
    except SQLAlchemyError as exc:
        raise StorageUnavailable(str(exc)) from exc
    return [
        _LegacyRecord(row.id, row.user_id, row.card_id, row.type, row.timestamp_raw)
        for row in rows
    ]


async def migrate_legacy_logs(
    session_factory: async_sessionmaker[AsyncSession],
    tz_name: str | None = None,
) -> MigrationReport:
    report = MigrationReport()

    async with session_factory() as session:
        records = await load_legacy_logs(session)
    report.source_count = len(records)
    logger.info("Found %d legacy attendance logs", report.source_count)

    for record in records:
        try:
            if record.type not in EVENT_TYPES:
                raise ValueError(f"unknown event type {record.type!r}")
            timestamp = coerce_timestamp(record.timestamp_raw)
            async with session_factory() as session:
                store = EventStore(session, tz_name)
                if await store.exists_by_id(record.id):
                    report.skipped += 1
                    logger.debug("Skipping %s: already migrated", record.id)
                    continue
                store.stage(
                    record.user_id,
                    record.card_id,
                    record.type,
                    timestamp,
                    event_id=record.id,
                    migrated_at=datetime.now(timezone.utc),
                )
                await store.commit()
        except (UnparseableTimestamp, ValueError) as exc:
            logger.warning("Cannot migrate %s: %s", record.id, exc)
            report.failed += 1
            continue
        except StorageUnavailable as exc:
            logger.error("Failed to migrate %s: %s", record.id, exc)
            report.failed += 1
            continue

        report.success += 1
        if report.success % PROGRESS_EVERY == 0:
            logger.info("Progress: %d/%d migrated", report.success, report.source_count)

    async with session_factory() as session:
        report.verified_count = await EventStore(session, tz_name).count_ids(
            [r.id for r in records]
        )

    logger.info(
        "Migration finished: success=%d failed=%d skipped=%d verified=%d/%d",
        report.success,
        report.failed,
        report.skipped,
        report.verified_count,
        report.source_count,
    )
    return report
