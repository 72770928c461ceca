"""
Link request model: pairs an unregistered NFC card with an account.

The kiosk creates a request with a random token, the registration page
moves it along ``waiting -> opened -> linked -> done``. No transition
rules are enforced here.
"""

from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import Column, DateTime, Integer, String

from app.db.base import Base

LINK_STATUSES = ("waiting", "opened", "linked", "done")


class LinkRequest(Base):
    __tablename__ = "link_requests"

    id: int = Column(Integer, primary_key=True, index=True)  # type: ignore[assignment]
    token: str = Column(String(64), unique=True, nullable=False, index=True)  # type: ignore[assignment]
    card_id: str | None = Column(String(64), nullable=True)  # type: ignore[assignment]
    user_id: str | None = Column(String(128), nullable=True)  # type: ignore[assignment]
    status: str = Column(String(10), nullable=False, default="waiting")  # type: ignore[assignment]
    created_at: datetime = Column(  # type: ignore[assignment]
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
    )
    updated_at: datetime = Column(  # type: ignore[assignment]
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )
