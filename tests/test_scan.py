"""Tests for card taps: the /scan endpoint and the recorder behind it."""

from datetime import datetime, timedelta, timezone

import pytest
from httpx import AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import StorageUnavailable
from app.models.user import User
from app.services.event_store import EventStore
from app.services.recorder import record_attendance

JST = timezone(timedelta(hours=9))


@pytest.mark.asyncio
async def test_scan_unregistered_card(async_client: AsyncClient):
    resp = await async_client.post("/api/v1/scan", json={"card_id": "UNKNOWN-01"})
    assert resp.status_code == 200
    data = resp.json()
    assert data["status"] == "unregistered"
    assert data["message"] == "Unregistered Card"
    assert data["event_id"] is None


@pytest.mark.asyncio
async def test_scan_toggles_entry_exit(async_client: AsyncClient, member: User):
    r1 = await async_client.post("/api/v1/scan", json={"card_id": "CARD-0001"})
    data = r1.json()
    assert data["status"] == "success"
    assert data["message"] == "Welcome, Hanako!"
    assert data["sub_message"] == "Checked In"
    assert data["event_type"] == "entry"
    assert data["event_id"].startswith("u1_")

    r2 = await async_client.post("/api/v1/scan", json={"card_id": "CARD-0001"})
    assert r2.json()["event_type"] == "exit"
    assert r2.json()["sub_message"] == "Checked Out"


@pytest.mark.asyncio
async def test_scan_rejects_empty_card(async_client: AsyncClient):
    resp = await async_client.post("/api/v1/scan", json={"card_id": ""})
    assert resp.status_code == 422


@pytest.mark.asyncio
async def test_scan_rejects_invalid_card(async_client: AsyncClient):
    resp = await async_client.post("/api/v1/scan", json={"card_id": "<script>alert(1)</script>"})
    assert resp.status_code == 422


@pytest.mark.asyncio
async def test_scan_rejects_too_long_card(async_client: AsyncClient):
    resp = await async_client.post("/api/v1/scan", json={"card_id": "A" * 65})
    assert resp.status_code == 422


@pytest.mark.asyncio
async def test_record_sets_presence_status(db_session: AsyncSession, member: User):
    now = datetime(2025, 3, 10, 9, tzinfo=JST)
    result = await record_attendance(db_session, "CARD-0001", now=now)
    assert result.status == "success"
    assert result.event_type == "entry"
    assert member.presence_status == "active"

    result = await record_attendance(db_session, "CARD-0001", now=now + timedelta(hours=8))
    assert result.event_type == "exit"
    assert member.presence_status == "inactive"


@pytest.mark.asyncio
async def test_record_starts_fresh_each_day(db_session: AsyncSession, member: User):
    # entry yesterday without an exit does not make today's first tap an exit
    await record_attendance(db_session, "CARD-0001", now=datetime(2025, 3, 9, 20, tzinfo=JST))
    result = await record_attendance(
        db_session, "CARD-0001", now=datetime(2025, 3, 10, 9, tzinfo=JST)
    )
    assert result.event_type == "entry"


@pytest.mark.asyncio
async def test_record_reports_storage_failure(db_session: AsyncSession, member: User, monkeypatch):
    async def broken(*args, **kwargs):
        raise StorageUnavailable("disk on fire")

    monkeypatch.setattr(EventStore, "append_with_presence", broken)
    result = await record_attendance(db_session, "CARD-0001")
    assert result.status == "error"
    assert result.message == "Could not record attendance"
    assert result.sub_message == "Please try again."


@pytest.mark.asyncio
async def test_user_history_endpoint(
    async_client: AsyncClient, db_session: AsyncSession, member: User, member_headers
):
    store = EventStore(db_session)
    await store.append("u1", "CARD-0001", "entry", datetime(2025, 3, 10, 9, tzinfo=JST))
    await store.append("u1", "CARD-0001", "exit", datetime(2025, 3, 11, 18, tzinfo=JST))

    resp = await async_client.get(
        "/api/v1/attendance/users/u1",
        params={"start": "2025-03-10", "end": "2025-03-11"},
        headers=member_headers,
    )
    assert resp.status_code == 200
    assert [e["type"] for e in resp.json()] == ["exit", "entry"]


@pytest.mark.asyncio
async def test_user_history_other_user_forbidden(async_client: AsyncClient, member_headers):
    resp = await async_client.get("/api/v1/attendance/users/someone-else", headers=member_headers)
    assert resp.status_code == 403


@pytest.mark.asyncio
async def test_user_history_rejects_reversed_range(async_client: AsyncClient, member_headers):
    resp = await async_client.get(
        "/api/v1/attendance/users/u1",
        params={"start": "2025-03-11", "end": "2025-03-10"},
        headers=member_headers,
    )
    assert resp.status_code == 400
