"""Shared date helpers for rhythm calculations."""

from datetime import date, datetime, timedelta, timezone
from typing import Any
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

DEFAULT_TIMEZONE = "UTC"


def as_utc(ts: datetime) -> datetime:
    """Treat naive timestamps as UTC; convert aware ones to UTC."""
    if ts.tzinfo is None:
        return ts.replace(tzinfo=timezone.utc)
    return ts.astimezone(timezone.utc)


def timestamp_key(ts: datetime | None) -> str | None:
    """Canonical string form of a watermark timestamp."""
    if ts is None:
        return None
    return as_utc(ts).isoformat()


def normalize_timezone_name(value: Any) -> str | None:
    if not isinstance(value, str):
        return None
    raw = value.strip()
    if not raw:
        return None
    try:
        ZoneInfo(raw)
    except (ZoneInfoNotFoundError, ValueError):
        return None
    return raw


def local_date_for_timezone(ts: datetime, timezone_name: str = DEFAULT_TIMEZONE) -> date:
    """Project a timestamp onto the calendar date of the given timezone."""
    return as_utc(ts).astimezone(ZoneInfo(timezone_name)).date()


def local_day_start(d: date, timezone_name: str = DEFAULT_TIMEZONE) -> datetime:
    """UTC instant of local midnight at the start of ``d``."""
    local = datetime.combine(d, datetime.min.time(), tzinfo=ZoneInfo(timezone_name))
    return local.astimezone(timezone.utc)


def week_start(d: date) -> date:
    """Monday of the ISO week containing ``d``."""
    return d - timedelta(days=d.weekday())


def week_end(d: date) -> date:
    return week_start(d) + timedelta(days=6)


def month_start(d: date) -> date:
    return d.replace(day=1)


def month_end(d: date) -> date:
    first_of_next = (d.replace(day=28) + timedelta(days=4)).replace(day=1)
    return first_of_next - timedelta(days=1)


def month_key(d: date) -> str:
    return f"{d.year}-{d.month:02d}"


def iter_dates(start: date, end: date):
    """Yield every date from ``start`` through ``end`` inclusive."""
    current = start
    while current <= end:
        yield current
        current += timedelta(days=1)
