"""
User / Team reference data.

- GET operations require any authenticated user.
- POST / PUT operations require admin role.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.v1.deps import get_current_user, get_db, require_admin
from app.models.team import Team
from app.models.user import User
from app.schemas.user import TeamCreate, TeamRead, UserCreate, UserRead, UserUpdate

router = APIRouter(tags=["users"])
logger = logging.getLogger(__name__)


# ── Users ───────────────────────────────────────────────────────────
@router.get("/users", response_model=list[UserRead])
async def list_users(
    skip: int = 0,
    limit: int = Query(default=100, le=500),
    team_id: str | None = None,
    db: AsyncSession = Depends(get_db),
    _user: User = Depends(get_current_user),
) -> list[User]:
    query = select(User).order_by(User.display_name).offset(skip).limit(limit)
    if team_id:
        query = query.where(User.team_id == team_id)
    result = await db.execute(query)
    return list(result.scalars().all())


@router.post("/users", response_model=UserRead, status_code=201)
async def create_user(
    body: UserCreate,
    db: AsyncSession = Depends(get_db),
    _admin: User = Depends(require_admin),
) -> User:
    if await db.get(User, body.id) is not None:
        raise HTTPException(status_code=400, detail=f"User '{body.id}' already exists")
    if body.card_id:
        existing = await db.execute(select(User).where(User.card_id == body.card_id))
        if existing.scalar_one_or_none():
            raise HTTPException(
                status_code=400,
                detail=f"Card '{body.card_id}' already registered",
            )

    user = User(**body.model_dump())
    db.add(user)
    await db.commit()
    await db.refresh(user)
    logger.info("Created user %s (card %s)", user.id, user.card_id)
    return user


@router.put("/users/{user_id}", response_model=UserRead)
async def update_user(
    user_id: str,
    body: UserUpdate,
    db: AsyncSession = Depends(get_db),
    _admin: User = Depends(require_admin),
) -> User:
    user = await db.get(User, user_id)
    if user is None:
        raise HTTPException(status_code=404, detail="User not found")

    for field, value in body.model_dump(exclude_unset=True).items():
        setattr(user, field, value)

    await db.commit()
    await db.refresh(user)
    logger.info("Updated user %s", user_id)
    return user


# ── Teams ───────────────────────────────────────────────────────────
@router.get("/teams", response_model=list[TeamRead])
async def list_teams(
    db: AsyncSession = Depends(get_db),
    _user: User = Depends(get_current_user),
) -> list[Team]:
    result = await db.execute(select(Team).order_by(Team.name))
    return list(result.scalars().all())


@router.post("/teams", response_model=TeamRead, status_code=201)
async def create_team(
    body: TeamCreate,
    db: AsyncSession = Depends(get_db),
    _admin: User = Depends(require_admin),
) -> Team:
    if await db.get(Team, body.id) is not None:
        raise HTTPException(status_code=400, detail=f"Team '{body.id}' already exists")
    team = Team(**body.model_dump())
    db.add(team)
    await db.commit()
    await db.refresh(team)
    logger.info("Created team %s", team.id)
    return team
