"""Pydantic schemas for the User / Team reference data."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, field_validator

_VALID_ROLES = {"user", "admin"}


class UserCreate(BaseModel):
    id: str
    display_name: str
    github: str | None = None
    card_id: str | None = None
    team_id: str | None = None
    grade_cohort: int = 10
    role: str = "user"

    @field_validator("role")
    @classmethod
    def _validate_role(cls, v: str) -> str:
        if v not in _VALID_ROLES:
            raise ValueError(f"Role must be one of: {_VALID_ROLES}")
        return v

    @field_validator("id", "display_name")
    @classmethod
    def _not_blank(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("Must not be empty")
        if len(v) > 128:
            raise ValueError("Must not exceed 128 characters")
        return v


class UserRead(BaseModel):
    id: str
    display_name: str
    github: str | None
    card_id: str | None
    team_id: str | None
    grade_cohort: int
    role: str
    presence_status: str
    created_at: datetime | None

    model_config = {"from_attributes": True}


class UserUpdate(BaseModel):
    display_name: str | None = None
    card_id: str | None = None
    team_id: str | None = None
    grade_cohort: int | None = None
    role: str | None = None

    @field_validator("role")
    @classmethod
    def _validate_role(cls, v: str | None) -> str | None:
        if v is not None and v not in _VALID_ROLES:
            raise ValueError(f"Role must be one of: {_VALID_ROLES}")
        return v


class TeamCreate(BaseModel):
    id: str
    name: str


class TeamRead(BaseModel):
    id: str
    name: str
    created_at: datetime | None

    model_config = {"from_attributes": True}
