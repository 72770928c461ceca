"""
Timestamp parsing boundary.

Legacy log rows carry timestamps in several shapes (ISO strings, epoch
milliseconds, exported ``{"_seconds": ..., "_nanoseconds": ...}`` maps).
``coerce_timestamp`` is the only place those shapes are interpreted; it
accepts a closed set of representations and raises
:class:`UnparseableTimestamp` for anything else instead of defaulting.
"""

from __future__ import annotations

from collections.abc import Mapping
from datetime import date, datetime, timezone
from functools import lru_cache
from zoneinfo import ZoneInfo

from app.core.config import settings
from app.core.exceptions import UnparseableTimestamp

DATE_KEY_FORMAT = "%Y-%m-%d"


def ensure_utc(dt: datetime) -> datetime:
    """Normalise a potentially-naive timestamp to UTC-aware."""
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def _from_epoch_ms(value: float, raw: object) -> datetime:
    try:
        return datetime.fromtimestamp(value / 1000, tz=timezone.utc)
    except (OverflowError, OSError, ValueError) as exc:
        raise UnparseableTimestamp(raw) from exc


def _from_seconds_map(raw: Mapping) -> datetime:
    if "_seconds" in raw:
        seconds, nanos = raw.get("_seconds"), raw.get("_nanoseconds", 0)
    else:
        seconds, nanos = raw.get("seconds"), raw.get("nanoseconds", 0)
    if (
        isinstance(seconds, bool)
        or not isinstance(seconds, (int, float))
        or isinstance(nanos, bool)
        or not isinstance(nanos, (int, float))
    ):
        raise UnparseableTimestamp(raw)
    return _from_epoch_ms(seconds * 1000 + nanos / 1_000_000, raw)


def coerce_timestamp(raw: object) -> datetime:
    """Convert one of the accepted raw shapes into a UTC-aware datetime.

    Accepted: ``datetime`` (naive is read as UTC), ISO-8601 strings
    (a trailing ``Z`` is allowed), ``int``/``float`` epoch milliseconds,
    and mappings with ``_seconds``/``_nanoseconds`` or
    ``seconds``/``nanoseconds``.
    """
    if isinstance(raw, datetime):
        return ensure_utc(raw)
    if isinstance(raw, bool):
        raise UnparseableTimestamp(raw)
    if isinstance(raw, (int, float)):
        return _from_epoch_ms(raw, raw)
    if isinstance(raw, str):
        text = raw.strip()
        if not text:
            raise UnparseableTimestamp(raw)
        if text.endswith(("Z", "z")):
            text = text[:-1] + "+00:00"
        try:
            return ensure_utc(datetime.fromisoformat(text))
        except ValueError as exc:
            raise UnparseableTimestamp(raw) from exc
    if isinstance(raw, Mapping) and ("_seconds" in raw or "seconds" in raw):
        return _from_seconds_map(raw)
    raise UnparseableTimestamp(raw)


@lru_cache(maxsize=8)
def business_tz(name: str | None = None) -> ZoneInfo:
    return ZoneInfo(name or settings.BUSINESS_TIMEZONE)


def to_business_time(ts: datetime, tz_name: str | None = None) -> datetime:
    return ensure_utc(ts).astimezone(business_tz(tz_name))


def to_date_key(ts: datetime, tz_name: str | None = None) -> str:
    """Partition key: the calendar date of *ts* in the business timezone."""
    return to_business_time(ts, tz_name).strftime(DATE_KEY_FORMAT)


def date_key_of(day: date) -> str:
    return day.strftime(DATE_KEY_FORMAT)


def parse_date_key(value: str) -> date:
    """Parse a ``YYYY-MM-DD`` key; raises ``ValueError`` when malformed."""
    return datetime.strptime(value, DATE_KEY_FORMAT).date()


def business_today(now: datetime | None = None, tz_name: str | None = None) -> date:
    return to_business_time(now or datetime.now(timezone.utc), tz_name).date()
