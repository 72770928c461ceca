"""
Card-link request endpoints.

Public: the kiosk and the registration page only know the random token.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.api.v1.deps import get_db, get_session_factory
from app.models.link_request import LinkRequest
from app.schemas.attendance import (
    LinkRequestCreate,
    LinkRequestRead,
    LinkRequestStatusUpdate,
)
from app.services.link_requests import (
    create_link_request,
    get_link_request,
    update_link_request_status,
    wait_for_link_request,
)

router = APIRouter(prefix="/link-requests", tags=["link-requests"])
logger = logging.getLogger(__name__)


async def _get_or_404(db: AsyncSession, token: str) -> LinkRequest:
    request = await get_link_request(db, token)
    if request is None:
        raise HTTPException(status_code=404, detail="Link request not found")
    return request


@router.post("", response_model=LinkRequestRead, status_code=201)
async def create(
    body: LinkRequestCreate,
    db: AsyncSession = Depends(get_db),
) -> LinkRequest:
    if await get_link_request(db, body.token) is not None:
        raise HTTPException(status_code=400, detail="Token already in use")
    return await create_link_request(db, body.token, body.card_id)


@router.get("/{token}", response_model=LinkRequestRead)
async def read(token: str, db: AsyncSession = Depends(get_db)) -> LinkRequest:
    return await _get_or_404(db, token)


@router.patch("/{token}", response_model=LinkRequestRead)
async def update_status(
    token: str,
    body: LinkRequestStatusUpdate,
    db: AsyncSession = Depends(get_db),
) -> LinkRequest:
    request = await update_link_request_status(db, token, body.status, body.user_id)
    if request is None:
        raise HTTPException(status_code=404, detail="Link request not found")
    return request


@router.get("/{token}/wait", response_model=LinkRequestRead)
async def wait(
    token: str,
    timeout: float = Query(default=25.0, gt=0, le=60),
    factory: async_sessionmaker[AsyncSession] = Depends(get_session_factory),
) -> LinkRequestRead:
    """Long-poll: answer on the next status change, or with the current state on timeout."""
    request = await wait_for_link_request(factory, token, timeout)
    if request is None:
        raise HTTPException(status_code=404, detail="Link request not found")
    return request
