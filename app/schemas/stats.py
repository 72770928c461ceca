"""Pydantic schemas for derived presence statistics."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field


class GradePresence(BaseModel):
    grade: int  # grade cohort
    school_year: int
    count: int
    present_user_ids: list[str] = Field(default_factory=list)


class TeamPresence(BaseModel):
    team_id: str
    team_name: str | None = None
    per_grade: list[GradePresence] = Field(default_factory=list)


class DailyAggregate(BaseModel):
    date_key: str
    total_present_count: int = 0
    total_attended_count: int = 0
    per_team: list[TeamPresence] = Field(default_factory=list)


class MonthlyStatsResponse(BaseModel):
    year: int
    month: int
    days: dict[str, DailyAggregate]


class CacheStateResponse(BaseModel):
    year: int
    month: int
    state: str
    computed_at: datetime | None = None
    source_event_count: int | None = None


class InvalidateResponse(BaseModel):
    success: bool
    message: str
