"""
Cron settings model: singleton table for the forced-checkout window.

Only one row should ever exist. The admin updates it via the settings API,
and the scheduled force-checkout endpoint reads it to decide whether to run.
A window whose end is earlier than its start wraps past midnight.
"""

from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import Column, DateTime, Integer, String

from app.db.base import Base


class CronSettings(Base):
    __tablename__ = "cron_settings"

    id: int = Column(Integer, primary_key=True, default=1)  # type: ignore[assignment]
    window_start: str = Column(String(5), nullable=False, default="23:55")  # type: ignore[assignment]
    window_end: str = Column(String(5), nullable=False, default="23:59")  # type: ignore[assignment]
    updated_at: datetime = Column(  # type: ignore[assignment]
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )
