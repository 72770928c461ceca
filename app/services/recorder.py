"""
Kiosk check-in / check-out.

A card tap resolves to a user, today's events for that user decide the
direction (latest ``entry`` → record an ``exit``, otherwise an ``entry``),
and the event is written together with the user's ``presence_status`` in
a single commit.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import StorageUnavailable, UserNotFound
from app.core.timeparse import business_today
from app.models.attendance import EVENT_ENTRY, EVENT_EXIT
from app.models.user import User
from app.services.event_store import EventStore
from app.services.presence import PresenceState, derive_presence

logger = logging.getLogger(__name__)


@dataclass
class RecordResult:
    status: str  # success | unregistered | error
    message: str
    sub_message: str | None = None
    event_type: str | None = None
    event_id: str | None = None


async def find_user_by_card(session: AsyncSession, card_id: str) -> User:
    try:
        result = await session.execute(select(User).where(User.card_id == card_id).limit(1))
    except SQLAlchemyError as exc:
        raise StorageUnavailable(str(exc)) from exc
    user = result.scalar_one_or_none()
    if user is None:
        raise UserNotFound(card_id)
    return user


async def record_attendance(
    session: AsyncSession,
    card_id: str,
    now: datetime | None = None,
    tz_name: str | None = None,
) -> RecordResult:
    now = now or datetime.now(timezone.utc)
    try:
        user = await find_user_by_card(session, card_id)
        store = EventStore(session, tz_name)
        today = business_today(now, tz_name)
        today_events = await store.range_query(user.id, today, today)
        if derive_presence(today_events) is PresenceState.PRESENT:
            event_type = EVENT_EXIT
        else:
            event_type = EVENT_ENTRY
        event = await store.append_with_presence(user, card_id, event_type, now)
    except UserNotFound:
        logger.info("Unregistered card tapped: %s", card_id)
        return RecordResult(
            status="unregistered",
            message="Unregistered Card",
            sub_message="Register this card to start recording attendance.",
        )
    except StorageUnavailable as exc:
        logger.error("Could not record attendance for card %s: %s", card_id, exc)
        return RecordResult(
            status="error",
            message="Could not record attendance",
            sub_message="Please try again.",
        )

    logger.info("Recorded %s for %s (card %s)", event_type, user.id, card_id)
    return RecordResult(
        status="success",
        message=f"Welcome, {user.display_name}!",
        sub_message="Checked In" if event_type == EVENT_ENTRY else "Checked Out",
        event_type=event_type,
        event_id=event.id,
    )
