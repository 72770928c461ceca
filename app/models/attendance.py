"""
Attendance event models.

``AttendanceEvent`` is the append-only, date-partitioned log: ``date_key``
is the calendar date of ``timestamp`` in the business timezone and every
range read goes through it. ``LegacyAttendanceLog`` is the flat log the
migration script copies from; its timestamps come in loose shapes and are
only read through ``app.core.timeparse.coerce_timestamp``.
"""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import JSON, Column, DateTime, Index, String

from app.db.base import Base

EVENT_ENTRY = "entry"
EVENT_EXIT = "exit"
EVENT_TYPES = (EVENT_ENTRY, EVENT_EXIT)


class AttendanceEvent(Base):
    __tablename__ = "attendance_events"
    __table_args__ = (
        Index("ix_attendance_events_partition", "date_key", "user_id", "timestamp"),
    )

    id: str = Column(String(200), primary_key=True)  # type: ignore[assignment]  # {user_id}_{epoch_ms}
    user_id: str = Column(String(128), nullable=False, index=True)  # type: ignore[assignment]
    card_id: str = Column(String(64), nullable=False, default="")  # type: ignore[assignment]
    type: str = Column(String(10), nullable=False)  # type: ignore[assignment]  # entry | exit
    timestamp: datetime = Column(DateTime(timezone=True), nullable=False)  # type: ignore[assignment]
    date_key: str = Column(String(10), nullable=False)  # type: ignore[assignment]  # YYYY-MM-DD
    migrated_at: datetime | None = Column(DateTime(timezone=True), nullable=True)  # type: ignore[assignment]


class LegacyAttendanceLog(Base):
    __tablename__ = "attendance_logs"

    id: str = Column(String(200), primary_key=True)  # type: ignore[assignment]
    user_id: str = Column(String(128), nullable=False, index=True)  # type: ignore[assignment]
    card_id: str | None = Column(String(64), nullable=True)  # type: ignore[assignment]
    type: str = Column(String(10), nullable=False)  # type: ignore[assignment]
    timestamp_raw = Column(JSON, nullable=True)
