"""
API call log: one row per invocation of a scheduled endpoint.
"""

from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import JSON, Column, DateTime, Integer, String

from app.db.base import Base


class ApiCallLog(Base):
    __tablename__ = "api_call_logs"

    id: int = Column(Integer, primary_key=True, index=True)  # type: ignore[assignment]
    endpoint: str = Column(String(200), nullable=False, index=True)  # type: ignore[assignment]
    status: str = Column(String(10), nullable=False)  # type: ignore[assignment]
    # running | success | error | skipped
    result = Column(JSON, nullable=True)
    created_at: datetime = Column(  # type: ignore[assignment]
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        index=True,
    )
    updated_at: datetime = Column(  # type: ignore[assignment]
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )
