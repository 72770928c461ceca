"""
Card-link requests and in-process status notifications.

The kiosk opens a request when an unregistered card is tapped and watches
its token; the registration page moves the request through
``waiting -> opened -> linked -> done``. Any status may follow any other.
"""

from __future__ import annotations

import asyncio
import logging
from collections import defaultdict
from collections.abc import Callable

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.core.exceptions import StorageUnavailable
from app.models.link_request import LINK_STATUSES, LinkRequest
from app.schemas.attendance import LinkRequestRead

logger = logging.getLogger(__name__)

StatusCallback = Callable[[str, LinkRequestRead], None]


class StatusHub:
    """Token -> callbacks fan-out, local to this process."""

    def __init__(self) -> None:
        self._watchers: dict[str, list[StatusCallback]] = defaultdict(list)

    def subscribe(self, token: str, callback: StatusCallback) -> Callable[[], None]:
        self._watchers[token].append(callback)

        def unsubscribe() -> None:
            watchers = self._watchers.get(token)
            if watchers and callback in watchers:
                watchers.remove(callback)
                if not watchers:
                    del self._watchers[token]

        return unsubscribe

    def publish(self, token: str, status: str, request: LinkRequestRead) -> None:
        for callback in list(self._watchers.get(token, ())):
            try:
                callback(status, request)
            except Exception:
                logger.exception("Link request watcher for %s failed", token)

    def watcher_count(self, token: str) -> int:
        return len(self._watchers.get(token, ()))


hub = StatusHub()


async def get_link_request(session: AsyncSession, token: str) -> LinkRequest | None:
    try:
        result = await session.execute(select(LinkRequest).where(LinkRequest.token == token))
    except SQLAlchemyError as exc:
        raise StorageUnavailable(str(exc)) from exc
    return result.scalar_one_or_none()


async def create_link_request(
    session: AsyncSession, token: str, card_id: str | None = None
) -> LinkRequest:
    request = LinkRequest(token=token, card_id=card_id, status="waiting")
    session.add(request)
    await session.commit()
    await session.refresh(request)
    logger.info("Link request %s created (card %s)", token, card_id)
    return request


async def update_link_request_status(
    session: AsyncSession,
    token: str,
    status: str,
    user_id: str | None = None,
    status_hub: StatusHub | None = None,
) -> LinkRequest | None:
    """Set the status and notify watchers. Returns None for an unknown token."""
    if status not in LINK_STATUSES:
        raise ValueError(f"Unknown link status {status!r}")
    request = await get_link_request(session, token)
    if request is None:
        return None

    request.status = status
    if user_id is not None:
        request.user_id = user_id
    try:
        await session.commit()
        await session.refresh(request)
    except SQLAlchemyError as exc:
        await session.rollback()
        raise StorageUnavailable(str(exc)) from exc

    logger.info("Link request %s -> %s", token, status)
    (status_hub or hub).publish(token, status, LinkRequestRead.model_validate(request))
    return request


def watch_token_status(
    token: str, callback: StatusCallback, status_hub: StatusHub | None = None
) -> Callable[[], None]:
    """Call *callback(status, request)* after every status change of *token*.

    Returns a function that stops the subscription.
    """
    return (status_hub or hub).subscribe(token, callback)


def _next_change(
    token: str, status_hub: StatusHub | None
) -> tuple[asyncio.Future[LinkRequestRead], Callable[[], None]]:
    changed: asyncio.Future[LinkRequestRead] = asyncio.get_running_loop().create_future()

    def _on_change(_status: str, request: LinkRequestRead) -> None:
        if not changed.done():
            changed.set_result(request)

    return changed, watch_token_status(token, _on_change, status_hub)


async def wait_for_status_change(
    token: str, timeout: float, status_hub: StatusHub | None = None
) -> LinkRequestRead | None:
    """Block until the next status change of *token*, or None after *timeout*."""
    changed, unsubscribe = _next_change(token, status_hub)
    try:
        return await asyncio.wait_for(changed, timeout)
    except asyncio.TimeoutError:
        return None
    finally:
        unsubscribe()


async def wait_for_link_request(
    session_factory: async_sessionmaker[AsyncSession],
    token: str,
    timeout: float,
    status_hub: StatusHub | None = None,
) -> LinkRequestRead | None:
    """Long-poll for *token*: its next status change, or its current state on timeout.

    Returns None for an unknown token. The watch starts before the row is
    read, so a change landing during the read still wakes the caller. The
    read session is closed before waiting.
    """
    changed, unsubscribe = _next_change(token, status_hub)
    try:
        async with session_factory() as session:
            request = await get_link_request(session, token)
            current = LinkRequestRead.model_validate(request) if request else None
        if current is None:
            return None
        try:
            return await asyncio.wait_for(changed, timeout)
        except asyncio.TimeoutError:
            return current
    finally:
        unsubscribe()
