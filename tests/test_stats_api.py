"""Tests for stats, cache maintenance, reference data and health endpoints."""

from datetime import datetime, timedelta, timezone

import pytest
from httpx import AsyncClient

from app.core.security import create_access_token
from app.services.event_store import EventStore

JST = timezone(timedelta(hours=9))


async def _seed_march(session_factory):
    async with session_factory() as session:
        store = EventStore(session)
        # repeated entries on the same day must not double count
        for hour in (9, 10, 11):
            store.stage("u1", "CARD-0001", "entry", datetime(2025, 3, 3, hour, tzinfo=JST))
        store.stage("u1", "CARD-0001", "entry", datetime(2025, 3, 4, 9, tzinfo=JST))
        store.stage("u1", "CARD-0001", "exit", datetime(2025, 3, 4, 18, tzinfo=JST))
        await store.commit()


@pytest.mark.asyncio
async def test_monthly_stats(async_client: AsyncClient, member, member_headers, session_factory):
    await _seed_march(session_factory)
    resp = await async_client.get("/api/v1/stats/monthly/2025/3", headers=member_headers)
    assert resp.status_code == 200
    days = resp.json()["days"]
    assert len(days) == 31

    march_3 = days["2025-03-03"]
    assert march_3["total_present_count"] == 1
    team = march_3["per_team"][0]
    assert team["team_id"] == "team-a"
    assert team["per_grade"][0] == {
        "grade": 10,
        "school_year": 1,
        "count": 1,
        "present_user_ids": ["u1"],
    }
    assert days["2025-03-04"]["total_present_count"] == 0
    assert days["2025-03-04"]["total_attended_count"] == 1


@pytest.mark.asyncio
async def test_monthly_stats_validates_month(async_client: AsyncClient, member_headers):
    resp = await async_client.get("/api/v1/stats/monthly/2025/13", headers=member_headers)
    assert resp.status_code == 422


@pytest.mark.asyncio
async def test_monthly_stats_requires_login(async_client: AsyncClient):
    assert (await async_client.get("/api/v1/stats/monthly/2025/3")).status_code == 401


@pytest.mark.asyncio
async def test_daily_stats(async_client: AsyncClient, member, member_headers, session_factory):
    await _seed_march(session_factory)
    resp = await async_client.get("/api/v1/stats/daily/2025-03-03", headers=member_headers)
    assert resp.status_code == 200
    assert resp.json()["total_present_count"] == 1

    bad = await async_client.get("/api/v1/stats/daily/03-03-2025", headers=member_headers)
    assert bad.status_code == 400


@pytest.mark.asyncio
async def test_cache_state_and_invalidate(
    async_client: AsyncClient, admin_headers, member_headers, cache_manager
):
    url = "/api/v1/stats/monthly/2025/3/cache"
    assert (await async_client.get(url, headers=admin_headers)).json()["state"] == "absent"

    await async_client.get("/api/v1/stats/monthly/2025/3", headers=member_headers)
    await cache_manager.wait_for_pending()
    assert (await async_client.get(url, headers=admin_headers)).json()["state"] == "valid"

    resp = await async_client.post(
        "/api/v1/stats/monthly/2025/3/invalidate", headers=admin_headers
    )
    assert resp.json()["success"] is True
    assert (await async_client.get(url, headers=admin_headers)).json()["state"] == "invalidated"

    resp = await async_client.post("/api/v1/stats/cache/invalidate-all", headers=admin_headers)
    assert resp.status_code == 200


@pytest.mark.asyncio
async def test_cache_maintenance_is_admin_only(async_client: AsyncClient, member_headers):
    resp = await async_client.post(
        "/api/v1/stats/monthly/2025/3/invalidate", headers=member_headers
    )
    assert resp.status_code == 403
    assert resp.json()["success"] is False


@pytest.mark.asyncio
async def test_invalid_and_unknown_tokens(async_client: AsyncClient):
    bad = {"Authorization": "Bearer not-a-jwt"}
    assert (await async_client.get("/api/v1/teams", headers=bad)).status_code == 401

    ghost = {"Authorization": f"Bearer {create_access_token('nobody')}"}
    assert (await async_client.get("/api/v1/teams", headers=ghost)).status_code == 401


@pytest.mark.asyncio
async def test_users_and_teams(async_client: AsyncClient, admin_headers):
    resp = await async_client.post(
        "/api/v1/teams", json={"id": "t-web", "name": "Web"}, headers=admin_headers
    )
    assert resp.status_code == 201

    resp = await async_client.post(
        "/api/v1/users",
        json={"id": "u9", "display_name": "Taro", "card_id": "CARD-0009", "team_id": "t-web"},
        headers=admin_headers,
    )
    assert resp.status_code == 201
    assert resp.json()["presence_status"] == "inactive"

    dup = await async_client.post(
        "/api/v1/users",
        json={"id": "u10", "display_name": "Jiro", "card_id": "CARD-0009"},
        headers=admin_headers,
    )
    assert dup.status_code == 400

    resp = await async_client.put(
        "/api/v1/users/u9", json={"grade_cohort": 9}, headers=admin_headers
    )
    assert resp.json()["grade_cohort"] == 9

    users = await async_client.get("/api/v1/users", params={"team_id": "t-web"}, headers=admin_headers)
    assert [u["id"] for u in users.json()] == ["u9"]

    missing = await async_client.put("/api/v1/users/ghost", json={}, headers=admin_headers)
    assert missing.status_code == 404


@pytest.mark.asyncio
async def test_health_endpoint(async_client: AsyncClient):
    resp = await async_client.get("/api/v1/health")
    assert resp.status_code == 200
    assert resp.json() == {"db": True}
