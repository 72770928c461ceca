"""Pydantic schemas for scans, events, forced checkout and link requests."""

from __future__ import annotations

import re
from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, Field, field_validator

_CARD_RE = re.compile(r"^[A-Za-z0-9:_-]{3,64}$")
_HHMM_RE = re.compile(r"^([01]\d|2[0-3]):[0-5]\d$")


def _validate_card_id(v: str) -> str:
    v = v.strip()
    if not v:
        raise ValueError("Card id must not be empty")
    if not _CARD_RE.match(v):
        raise ValueError(
            "Card id must be 3-64 alphanumeric chars (colons / hyphens allowed)"
        )
    return v


# ── Scan ────────────────────────────────────────────────────────────
class ScanRequest(BaseModel):
    card_id: str

    @field_validator("card_id")
    @classmethod
    def _card(cls, v: str) -> str:
        return _validate_card_id(v)


class ScanResponse(BaseModel):
    status: Literal["success", "unregistered", "error"]
    message: str
    sub_message: str | None = None
    event_type: str | None = None
    event_id: str | None = None


# ── Events ──────────────────────────────────────────────────────────
class AttendanceEventRead(BaseModel):
    id: str
    user_id: str
    card_id: str
    type: str
    timestamp: datetime
    date_key: str

    model_config = {"from_attributes": True}


# ── Forced checkout ─────────────────────────────────────────────────
class ForceCheckoutResponse(BaseModel):
    message: str
    success: int
    no_action: int
    failed: int
    failed_chunks: list[dict[str, Any]] = Field(default_factory=list)


class ScheduledCheckoutResponse(BaseModel):
    status: Literal["success", "skipped"]
    message: str
    result: ForceCheckoutResponse | None = None


# ── Cron settings ───────────────────────────────────────────────────
class CronSettingsRead(BaseModel):
    window_start: str
    window_end: str
    updated_at: datetime | None = None

    model_config = {"from_attributes": True}


class CronSettingsUpdate(BaseModel):
    window_start: str | None = None
    window_end: str | None = None

    @field_validator("window_start", "window_end")
    @classmethod
    def _hhmm(cls, v: str | None) -> str | None:
        if v is not None and not _HHMM_RE.match(v):
            raise ValueError("Time must be formatted as HH:MM (24h)")
        return v


class ApiCallLogRead(BaseModel):
    id: int
    endpoint: str
    status: str
    result: dict[str, Any] | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    model_config = {"from_attributes": True}


# ── Link requests ───────────────────────────────────────────────────
class LinkRequestCreate(BaseModel):
    token: str = Field(min_length=8, max_length=64)
    card_id: str | None = None

    @field_validator("card_id")
    @classmethod
    def _card(cls, v: str | None) -> str | None:
        return None if v is None else _validate_card_id(v)


class LinkRequestStatusUpdate(BaseModel):
    status: Literal["waiting", "opened", "linked", "done"]
    user_id: str | None = None


class LinkRequestRead(BaseModel):
    token: str
    card_id: str | None
    user_id: str | None
    status: str
    created_at: datetime | None = None
    updated_at: datetime | None = None

    model_config = {"from_attributes": True}


# ── Health ──────────────────────────────────────────────────────────
class HealthResponse(BaseModel):
    db: bool
