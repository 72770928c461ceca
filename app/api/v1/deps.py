"""
FastAPI dependencies: database session, cache manager and auth guards.
"""

from __future__ import annotations

import hmac
from collections.abc import AsyncGenerator
from typing import Optional

from fastapi import Depends, Header, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.core.config import settings
from app.core.security import access_token_user_id
from app.db.session import async_session_factory
from app.models.user import User
from app.services.monthly_cache import MonthlyCacheManager

# Tokens are issued by the external OAuth flow; this service only verifies them.
bearer_scheme = HTTPBearer(auto_error=False)

cache_manager = MonthlyCacheManager(
    async_session_factory, enabled=settings.MONTHLY_CACHE_ENABLED
)


# ── Database ────────────────────────────────────────────────────────
def get_session_factory() -> async_sessionmaker[AsyncSession]:
    return async_session_factory


async def get_db(
    factory: async_sessionmaker[AsyncSession] = Depends(get_session_factory),
) -> AsyncGenerator[AsyncSession, None]:
    async with factory() as session:
        try:
            yield session
        finally:
            await session.close()


def get_cache_manager() -> MonthlyCacheManager:
    return cache_manager


# ── Auth dependencies ───────────────────────────────────────────────
async def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    db: AsyncSession = Depends(get_db),
) -> User:
    """Decode the bearer JWT and look up the user named by ``sub``."""
    credentials_exc = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )
    if credentials is None:
        raise credentials_exc

    user_id = access_token_user_id(credentials.credentials)
    if user_id is None:
        raise credentials_exc

    result = await db.execute(select(User).where(User.id == user_id))
    user = result.scalar_one_or_none()
    if user is None:
        raise credentials_exc
    return user


async def require_admin(
    current_user: User = Depends(get_current_user),
) -> User:
    """Only allow admin role to proceed."""
    if current_user.role != "admin":
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Admin privileges required",
        )
    return current_user


async def verify_cron_secret(authorization: Optional[str] = Header(default=None)) -> None:
    """Require ``Bearer <CRON_SECRET>`` when a cron secret is configured."""
    if not settings.CRON_SECRET:
        return
    expected = f"Bearer {settings.CRON_SECRET}"
    if authorization is None or not hmac.compare_digest(authorization, expected):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthorized")
