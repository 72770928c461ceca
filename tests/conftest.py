"""
Shared test fixtures for the attendance test suite.

Each test gets its own sqlite file (aiosqlite), so background cache writes
run on their own connection exactly as they do against Postgres.
"""

import os
import sys
from datetime import datetime, timezone
from typing import AsyncGenerator

import pytest

# Ensure project root is importable
ROOT_DIR = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
if ROOT_DIR not in sys.path:
    sys.path.insert(0, ROOT_DIR)

# Override environment BEFORE importing application modules
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["CORS_ORIGINS"] = '["*"]'
os.environ["BUSINESS_TIMEZONE"] = "Asia/Tokyo"
os.environ.pop("CRON_SECRET", None)

from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from app.api.v1.deps import get_cache_manager, get_session_factory
from app.core.security import create_access_token
from app.db.base import Base
from app.main import app
from app.models.attendance import AttendanceEvent
from app.models.team import Team
from app.models.user import User
from app.services.event_store import make_event_id
from app.services.monthly_cache import MonthlyCacheManager


@pytest.fixture
async def engine(tmp_path):
    """Create all tables in a fresh database and drop them afterwards."""
    test_engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'test.db'}", connect_args={"timeout": 15}
    )
    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield test_engine

    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await test_engine.dispose()


@pytest.fixture
def session_factory(engine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def cache_manager(session_factory) -> AsyncGenerator[MonthlyCacheManager, None]:
    manager = MonthlyCacheManager(session_factory)
    yield manager
    await manager.wait_for_pending()


@pytest.fixture
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    """Return a raw database session for direct queries in tests."""
    async with session_factory() as session:
        yield session


@pytest.fixture
async def async_client(
    session_factory, cache_manager
) -> AsyncGenerator[AsyncClient, None]:
    """Return a httpx AsyncClient wired to the app and the test database."""
    app.dependency_overrides[get_session_factory] = lambda: session_factory
    app.dependency_overrides[get_cache_manager] = lambda: cache_manager
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client
    await cache_manager.wait_for_pending()
    app.dependency_overrides.clear()


# ── Reference data ──────────────────────────────────────────────────
@pytest.fixture
async def admin_user(db_session) -> User:
    user = User(id="admin-1", display_name="Admin", role="admin", grade_cohort=9)
    db_session.add(user)
    await db_session.commit()
    return user


@pytest.fixture
def admin_headers(admin_user) -> dict[str, str]:
    return {"Authorization": f"Bearer {create_access_token(admin_user.id)}"}


@pytest.fixture
async def member(db_session) -> User:
    """A regular member with a registered card on team-a."""
    db_session.add(Team(id="team-a", name="Team A"))
    user = User(
        id="u1",
        display_name="Hanako",
        card_id="CARD-0001",
        team_id="team-a",
        grade_cohort=10,
    )
    db_session.add(user)
    await db_session.commit()
    return user


@pytest.fixture
def member_headers(member) -> dict[str, str]:
    return {"Authorization": f"Bearer {create_access_token(member.id)}"}


def make_event(user_id: str, event_type: str, ts: datetime, date_key: str) -> AttendanceEvent:
    """Build a detached event without going through the store."""
    ts = ts.astimezone(timezone.utc)
    return AttendanceEvent(
        id=make_event_id(user_id, ts),
        user_id=user_id,
        card_id="CARD",
        type=event_type,
        timestamp=ts,
        date_key=date_key,
    )
