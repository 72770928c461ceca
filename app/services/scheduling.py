"""
Scheduled force checkout.

An external cron hits the endpoint every few minutes; the run only does
work when the business-timezone clock is inside the configured window.
Every invocation is recorded in ``api_call_logs`` as
``running -> skipped | success | error``.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.core.config import settings
from app.core.exceptions import StorageUnavailable
from app.core.timeparse import ensure_utc, to_business_time
from app.models.api_call_log import ApiCallLog
from app.models.cron_settings import CronSettings
from app.services.reconciler import ForceCheckoutResult, ForcedCheckoutReconciler

logger = logging.getLogger(__name__)

FORCE_CHECKOUT_ENDPOINT = "/force-checkout/cron"


def is_within_window(current: str, start: str, end: str) -> bool:
    """Inclusive ``HH:MM`` window check; ``end < start`` wraps past midnight."""
    if start <= end:
        return start <= current <= end
    return current >= start or current <= end


# ── Cron settings singleton ─────────────────────────────────────────
async def get_cron_settings(session: AsyncSession) -> CronSettings:
    """Fetch the settings row, creating it from config defaults if absent."""
    result = await session.execute(select(CronSettings).limit(1))
    row = result.scalar_one_or_none()
    if row is None:
        row = CronSettings(
            id=1,
            window_start=settings.FORCE_CHECKOUT_WINDOW_START,
            window_end=settings.FORCE_CHECKOUT_WINDOW_END,
        )
        session.add(row)
        await session.commit()
        await session.refresh(row)
        logger.info("Created default cron settings")
    return row


async def update_cron_settings(session: AsyncSession, **changes: str) -> CronSettings:
    row = await get_cron_settings(session)
    for field, value in changes.items():
        setattr(row, field, value)
    await session.commit()
    await session.refresh(row)
    logger.info("Cron settings updated: %s", changes)
    return row


# ── Call log ────────────────────────────────────────────────────────
async def start_call_log(session: AsyncSession, endpoint: str) -> ApiCallLog:
    log = ApiCallLog(endpoint=endpoint, status="running")
    session.add(log)
    await session.commit()
    await session.refresh(log)
    return log


async def finish_call_log(
    session: AsyncSession, log_id: int, status: str, result: dict | None = None
) -> None:
    log = await session.get(ApiCallLog, log_id)
    if log is None:
        logger.warning("Call log %d vanished before it could be closed", log_id)
        return
    log.status = status
    log.result = result
    await session.commit()
    logger.info("Call log %d (%s) -> %s", log_id, log.endpoint, status)


async def list_call_logs(
    session: AsyncSession, endpoint: str | None = None, limit: int = 50
) -> list[ApiCallLog]:
    query = select(ApiCallLog).order_by(ApiCallLog.id.desc()).limit(limit)
    if endpoint:
        query = query.where(ApiCallLog.endpoint == endpoint)
    result = await session.execute(query)
    return list(result.scalars().all())


# ── Scheduled run ───────────────────────────────────────────────────
async def run_scheduled_force_checkout(
    session_factory: async_sessionmaker[AsyncSession],
    now: datetime | None = None,
    reconciler: ForcedCheckoutReconciler | None = None,
    tz_name: str | None = None,
) -> tuple[str, ForceCheckoutResult | None]:
    """Returns ``("skipped", None)`` outside the window, else ``("success", result)``.

    Errors mark the call log ``error`` and propagate.
    """
    now = ensure_utc(now or datetime.now(timezone.utc))
    try:
        async with session_factory() as session:
            log_id = (await start_call_log(session, FORCE_CHECKOUT_ENDPOINT)).id
    except SQLAlchemyError as exc:
        raise StorageUnavailable(str(exc)) from exc

    try:
        async with session_factory() as session:
            window = await get_cron_settings(session)
            start, end = window.window_start, window.window_end
        current = to_business_time(now, tz_name).strftime("%H:%M")

        if not is_within_window(current, start, end):
            logger.info("Force checkout skipped: %s is outside %s-%s", current, start, end)
            async with session_factory() as session:
                await finish_call_log(
                    session,
                    log_id,
                    "skipped",
                    {"reason": "outside window", "current": current, "window": [start, end]},
                )
            return "skipped", None

        reconciler = reconciler or ForcedCheckoutReconciler(session_factory, tz_name=tz_name)
        result = await reconciler.force_checkout_all(now)
        async with session_factory() as session:
            await finish_call_log(session, log_id, "success", result.as_dict())
        return "success", result
    except Exception as exc:
        logger.exception("Scheduled force checkout failed")
        try:
            async with session_factory() as session:
                await finish_call_log(session, log_id, "error", {"error": str(exc)})
        except SQLAlchemyError:
            logger.exception("Could not mark call log %d as failed", log_id)
        raise
