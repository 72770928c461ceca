"""
Access-token handling for member sessions.

Members sign in through the club's OAuth flow, which runs outside this
service and hands the browser a signed JWT. The API only needs the member
id carried in ``sub``; everything else about the member is read from the
``users`` table. ``create_access_token`` mints the same shape of token for
that flow and for tests.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone

from jose import JWTError, jwt

from app.core.config import settings

logger = logging.getLogger(__name__)

TOKEN_TYPE_ACCESS = "access"

# exp and sub must be present; jose checks exp and that sub is a string
_DECODE_OPTIONS = {"require_exp": True, "require_sub": True}


def create_access_token(user_id: str, expires_delta: timedelta | None = None) -> str:
    now = datetime.now(timezone.utc)
    expire = now + (expires_delta or timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES))
    claims = {"sub": str(user_id), "type": TOKEN_TYPE_ACCESS, "iat": now, "exp": expire}
    return jwt.encode(claims, settings.SECRET_KEY, algorithm=settings.ALGORITHM)


def access_token_user_id(token: str) -> str | None:
    """Member id of a valid access token, or ``None`` for anything else."""
    try:
        claims = jwt.decode(
            token,
            settings.SECRET_KEY,
            algorithms=[settings.ALGORITHM],
            options=_DECODE_OPTIONS,
        )
    except JWTError as exc:
        logger.debug("Rejected token: %s", exc)
        return None
    if claims.get("type") != TOKEN_TYPE_ACCESS:
        return None
    return claims["sub"] or None
