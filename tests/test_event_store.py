"""Tests for the date-partitioned event store."""

from datetime import date, datetime, timedelta, timezone

import pytest
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.attendance import AttendanceEvent
from app.models.user import User
from app.services.event_store import EventStore, make_event_id, month_bounds

JST = timezone(timedelta(hours=9))


@pytest.mark.asyncio
async def test_append_files_event_under_business_date(db_session: AsyncSession):
    store = EventStore(db_session)
    ts = datetime(2025, 3, 10, 23, 30, tzinfo=JST)
    event_id = await store.append("u1", "CARD-1", "entry", ts)

    assert event_id == make_event_id("u1", ts)
    event = await db_session.get(AttendanceEvent, event_id)
    assert event.date_key == "2025-03-10"
    assert event.type == "entry"


@pytest.mark.asyncio
async def test_append_rejects_unknown_type(db_session: AsyncSession):
    with pytest.raises(ValueError):
        await EventStore(db_session).append("u1", "CARD-1", "lunch")


@pytest.mark.asyncio
async def test_range_query_newest_first_across_partitions(db_session: AsyncSession):
    store = EventStore(db_session)
    for day, hour in [(9, 9), (10, 9), (10, 18), (11, 9), (12, 9)]:
        await store.append("u1", "C", "entry", datetime(2025, 3, day, hour, tzinfo=JST))
    await store.append("u2", "C", "entry", datetime(2025, 3, 10, 12, tzinfo=JST))

    events = await store.range_query("u1", date(2025, 3, 10), date(2025, 3, 11))
    assert [e.date_key for e in events] == ["2025-03-11", "2025-03-10", "2025-03-10"]
    assert events[1].timestamp > events[2].timestamp

    everyone = await store.range_query(None, date(2025, 3, 10), date(2025, 3, 10))
    assert {e.user_id for e in everyone} == {"u1", "u2"}


@pytest.mark.asyncio
async def test_range_query_for_users(db_session: AsyncSession):
    store = EventStore(db_session)
    ts = datetime(2025, 3, 10, 9, tzinfo=JST)
    for user_id in ("a", "b", "c"):
        await store.append(user_id, "C", "entry", ts)

    events = await store.range_query_for_users(["a", "c"], date(2025, 3, 10), date(2025, 3, 10))
    assert sorted(e.user_id for e in events) == ["a", "c"]
    assert await store.range_query_for_users([], date(2025, 3, 10), date(2025, 3, 10)) == []


@pytest.mark.asyncio
async def test_append_with_presence_updates_user(db_session: AsyncSession):
    user = User(id="u1", display_name="U", card_id="C1")
    db_session.add(user)
    await db_session.commit()

    store = EventStore(db_session)
    await store.append_with_presence(user, "C1", "entry", datetime(2025, 3, 10, 9, tzinfo=JST))
    refreshed = (await db_session.execute(select(User).where(User.id == "u1"))).scalar_one()
    assert refreshed.presence_status == "active"

    await store.append_with_presence(user, "C1", "exit", datetime(2025, 3, 10, 18, tzinfo=JST))
    assert user.presence_status == "inactive"


@pytest.mark.asyncio
async def test_exists_and_count_ids(db_session: AsyncSession):
    store = EventStore(db_session)
    event_id = await store.append("u1", "C", "entry", datetime(2025, 3, 10, 9, tzinfo=JST))
    assert await store.exists_by_id(event_id)
    assert not await store.exists_by_id("u1_0")
    assert await store.count_ids([event_id, "u1_0"]) == 1
    assert await store.count_ids([]) == 0


@pytest.mark.asyncio
async def test_month_fingerprint(db_session: AsyncSession):
    store = EventStore(db_session)
    last = datetime(2025, 3, 31, 20, tzinfo=JST)
    await store.append("u1", "C", "entry", datetime(2025, 3, 1, 9, tzinfo=JST))
    await store.append("u1", "C", "exit", last)
    await store.append("u1", "C", "entry", datetime(2025, 4, 1, 9, tzinfo=JST))

    fp = await store.month_fingerprint(2025, 3)
    assert fp.event_count == 2
    assert fp.entry_count == 1
    assert fp.latest_timestamp == last

    empty = await store.month_fingerprint(2025, 2)
    assert (empty.event_count, empty.entry_count, empty.latest_timestamp) == (0, 0, None)


def test_month_bounds():
    assert month_bounds(2025, 3) == (date(2025, 3, 1), date(2025, 3, 31))
    assert month_bounds(2024, 2) == (date(2024, 2, 1), date(2024, 2, 29))


@pytest.mark.asyncio
async def test_latest_event_ids(db_session: AsyncSession):
    store = EventStore(db_session)
    await store.append("a", "C", "entry", datetime(2025, 3, 10, 9, tzinfo=JST))
    last_a = await store.append("a", "C", "exit", datetime(2025, 3, 10, 18, tzinfo=JST))
    await store.append("b", "C", "entry", datetime(2025, 3, 9, 9, tzinfo=JST))

    latest = await store.latest_event_ids(["a", "b", "c"], date(2025, 3, 10))
    assert latest == {"a": last_a}
