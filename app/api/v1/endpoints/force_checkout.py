"""
Forced checkout: the scheduled cron hook and the manual admin trigger.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.api.v1.deps import get_session_factory, require_admin, verify_cron_secret
from app.models.user import User
from app.schemas.attendance import ForceCheckoutResponse, ScheduledCheckoutResponse
from app.services.reconciler import ForceCheckoutResult, ForcedCheckoutReconciler
from app.services.scheduling import run_scheduled_force_checkout

router = APIRouter(prefix="/force-checkout", tags=["force-checkout"])
logger = logging.getLogger(__name__)


def _response(result: ForceCheckoutResult) -> ForceCheckoutResponse:
    return ForceCheckoutResponse(
        message=(
            f"Force checkout completed: {result.success} checked out, "
            f"{result.no_action} no action, {result.failed} failed"
        ),
        **result.as_dict(),
    )


@router.get("/cron", response_model=ScheduledCheckoutResponse)
async def scheduled_force_checkout(
    factory: async_sessionmaker[AsyncSession] = Depends(get_session_factory),
    _auth: None = Depends(verify_cron_secret),
) -> ScheduledCheckoutResponse:
    """Called by an external scheduler; only acts inside the configured window."""
    status, result = await run_scheduled_force_checkout(factory)
    if result is None:
        return ScheduledCheckoutResponse(
            status="skipped", message="Outside the force checkout window"
        )
    return ScheduledCheckoutResponse(
        status=status, message="Force checkout ran", result=_response(result)
    )


@router.post("", response_model=ForceCheckoutResponse)
async def manual_force_checkout(
    factory: async_sessionmaker[AsyncSession] = Depends(get_session_factory),
    admin: User = Depends(require_admin),
) -> ForceCheckoutResponse:
    """Check out everyone still present today, regardless of the window."""
    logger.info("Manual force checkout requested by %s", admin.id)
    result = await ForcedCheckoutReconciler(factory).force_checkout_all()
    return _response(result)
