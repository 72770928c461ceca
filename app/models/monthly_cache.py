"""
Monthly attendance cache: derived, never authoritative.

Written only by ``MonthlyCacheManager``. Invalidation sets ``deleted``
and ``deleted_at`` instead of removing the row.
"""

from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import JSON, Boolean, Column, DateTime, Integer, String, UniqueConstraint

from app.db.base import Base


def cache_entry_id(year: int, month: int) -> str:
    return f"attendance_stats_{year:04d}_{month:02d}"


class MonthlyAttendanceCache(Base):
    __tablename__ = "monthly_attendance_cache"
    __table_args__ = (UniqueConstraint("year", "month", name="uq_cache_year_month"),)

    id: str = Column(String(40), primary_key=True)  # type: ignore[assignment]
    year: int = Column(Integer, nullable=False)  # type: ignore[assignment]
    month: int = Column(Integer, nullable=False)  # type: ignore[assignment]
    daily_aggregates = Column(JSON, nullable=False, default=dict)  # {date_key: DailyAggregate}
    source_event_count: int = Column(Integer, nullable=False, default=0)  # type: ignore[assignment]
    source_content_hash: str = Column(String(64), nullable=False, default="")  # type: ignore[assignment]
    computed_at: datetime = Column(  # type: ignore[assignment]
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
    )
    deleted: bool = Column(Boolean, nullable=False, default=False, server_default="false")  # type: ignore[assignment]
    deleted_at: datetime | None = Column(DateTime(timezone=True), nullable=True)  # type: ignore[assignment]
