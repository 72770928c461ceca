"""Tests for the timestamp parsing boundary and business-date helpers."""

from datetime import date, datetime, timedelta, timezone

import pytest

from app.core.exceptions import UnparseableTimestamp
from app.core.timeparse import (
    business_today,
    coerce_timestamp,
    ensure_utc,
    parse_date_key,
    to_date_key,
)

EXPECTED = datetime(2025, 3, 10, 0, 30, tzinfo=timezone.utc)


@pytest.mark.parametrize(
    "raw",
    [
        EXPECTED,
        datetime(2025, 3, 10, 0, 30),  # naive is read as UTC
        "2025-03-10T00:30:00Z",
        "2025-03-10T09:30:00+09:00",
        1741566600000,
        1741566600000.0,
        {"_seconds": 1741566600, "_nanoseconds": 0},
        {"seconds": 1741566600, "nanoseconds": 0},
    ],
)
def test_coerce_accepted_shapes(raw):
    assert coerce_timestamp(raw) == EXPECTED


def test_coerce_keeps_nanosecond_fraction():
    ts = coerce_timestamp({"_seconds": 1741566600, "_nanoseconds": 250_000_000})
    assert ts == EXPECTED + timedelta(milliseconds=250)


@pytest.mark.parametrize(
    "raw",
    [None, "", "   ", "yesterday", True, [], {"foo": 1}, {"_seconds": "1"}, object()],
)
def test_coerce_rejects_everything_else(raw):
    with pytest.raises(UnparseableTimestamp):
        coerce_timestamp(raw)


def test_unparseable_is_a_value_error():
    with pytest.raises(ValueError):
        coerce_timestamp("not a date")


def test_date_key_uses_business_timezone():
    # 15:30 UTC is already the next day in Tokyo
    ts = datetime(2025, 3, 10, 15, 30, tzinfo=timezone.utc)
    assert to_date_key(ts) == "2025-03-11"
    assert to_date_key(ts, "UTC") == "2025-03-10"


def test_business_today_and_parse_date_key():
    now = datetime(2025, 12, 31, 16, 0, tzinfo=timezone.utc)
    assert business_today(now) == date(2026, 1, 1)
    assert parse_date_key("2026-01-01") == date(2026, 1, 1)
    with pytest.raises(ValueError):
        parse_date_key("2026/01/01")


def test_ensure_utc_converts_offsets():
    tokyo = timezone(timedelta(hours=9))
    assert ensure_utc(datetime(2025, 3, 10, 9, 30, tzinfo=tokyo)) == EXPECTED
