"""
Copy legacy ``attendance_logs`` rows into ``attendance_events``.

    python -m app.scripts.migrate_attendance

Safe to re-run; already migrated records are skipped. Exits with status 1
when any record failed to migrate or verification does not add up.
"""

from __future__ import annotations

import asyncio
import logging
import sys

from app.core.config import settings
from app.core.exceptions import PartialBatchFailure, StorageUnavailable
from app.db.base import Base
from app.db.session import async_session_factory, engine
from app.models.attendance import AttendanceEvent, LegacyAttendanceLog  # noqa: F401
from app.services.migration import migrate_legacy_logs

logger = logging.getLogger("app.scripts.migrate_attendance")


async def main() -> int:
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    try:
        report = await migrate_legacy_logs(async_session_factory)
        if report.failed or not report.verified:
            raise PartialBatchFailure(report.success, report.failed, report.skipped)
    except PartialBatchFailure as exc:
        logger.error("%s (verified %d/%d)", exc, report.verified_count, report.source_count)
        return 1
    except StorageUnavailable as exc:
        logger.error("Migration aborted, storage unavailable: %s", exc)
        return 1
    finally:
        await engine.dispose()

    logger.info("Migration complete: %s", report.as_dict())
    return 0


if __name__ == "__main__":
    logging.basicConfig(
        level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
        format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
    )
    sys.exit(asyncio.run(main()))
