"""
User model: club members and admins.

Profile fields belong to the identity subsystem; the attendance core only
writes ``presence_status``, and only in the same transaction as the event
that justifies it.
"""

from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import Column, DateTime, Integer, String

from app.db.base import Base

PRESENCE_ACTIVE = "active"
PRESENCE_INACTIVE = "inactive"


class User(Base):
    __tablename__ = "users"

    id: str = Column(String(128), primary_key=True)  # type: ignore[assignment]
    display_name: str = Column(String(200), nullable=False)  # type: ignore[assignment]
    github: str | None = Column(String(100), nullable=True, index=True)  # type: ignore[assignment]
    card_id: str | None = Column(String(64), unique=True, nullable=True, index=True)  # type: ignore[assignment]
    team_id: str | None = Column(String(64), nullable=True, index=True)  # type: ignore[assignment]
    grade_cohort: int = Column(Integer, nullable=False, default=10)  # type: ignore[assignment]
    role: str = Column(  # type: ignore[assignment]
        String(20),
        nullable=False,
        default="user",
        server_default="user",
    )  # user | admin
    presence_status: str = Column(  # type: ignore[assignment]
        String(10),
        nullable=False,
        default=PRESENCE_INACTIVE,
        server_default=PRESENCE_INACTIVE,
    )  # active | inactive
    created_at: datetime = Column(  # type: ignore[assignment]
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
    )
