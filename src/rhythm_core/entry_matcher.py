"""Entry matcher: selects the activity entries relevant to one rhythm.

Match criteria are an explicit predicate: a set of optional equality
constraints over type/category/subcategory/name. An absent constraint is a
wildcard; present constraints are AND-combined. The same predicate drives
both the SQL query and the in-memory ``matches`` check.
"""

import logging
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Any

import psycopg
from psycopg.rows import dict_row

from .errors import UpstreamFailure
from .query_builder import EntryQueryBuilder
from .utils import DEFAULT_TIMEZONE, as_utc, iter_dates, local_day_start

logger = logging.getLogger(__name__)

# Order matters only for deterministic SQL and logging.
_CRITERIA_FIELDS: tuple[str, ...] = ("type", "category", "subcategory", "name")


@dataclass(frozen=True)
class Entry:
    """A matched activity record, read-only from the engine's perspective."""

    id: str
    user_id: str
    timestamp: datetime
    type: str | None = None
    name: str | None = None
    category: str | None = None
    subcategory: str | None = None
    duration_seconds: int | None = None
    count: int | None = None

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> "Entry":
        data = row.get("data") or {}
        count = data.get("count") if isinstance(data, dict) else None
        try:
            count = int(count) if count is not None else None
        except (TypeError, ValueError):
            count = None
        duration = row.get("duration_seconds")
        return cls(
            id=str(row["id"]),
            user_id=str(row["user_id"]),
            timestamp=as_utc(row["timestamp"]),
            type=row.get("type"),
            name=row.get("name"),
            category=row.get("category"),
            subcategory=row.get("subcategory"),
            duration_seconds=int(duration) if duration is not None else None,
            count=count,
        )


@dataclass(frozen=True)
class MatchCriteria:
    type: str | None = None
    category: str | None = None
    subcategory: str | None = None
    name: str | None = None

    @classmethod
    def from_mapping(cls, values: dict[str, Any], prefix: str = "match_") -> "MatchCriteria":
        """Build criteria from a row or payload; blank strings are wildcards."""
        kwargs: dict[str, str | None] = {}
        for field in _CRITERIA_FIELDS:
            raw = values.get(f"{prefix}{field}")
            if isinstance(raw, str) and raw.strip():
                kwargs[field] = raw.strip()
            else:
                kwargs[field] = None
        return cls(**kwargs)

    def constraints(self) -> list[tuple[str, str]]:
        """The set (non-wildcard) constraints as (column, value) pairs."""
        return [
            (field, getattr(self, field))
            for field in _CRITERIA_FIELDS
            if getattr(self, field) is not None
        ]

    def matches(self, entry: Entry) -> bool:
        return all(getattr(entry, field) == value for field, value in self.constraints())

    def apply(self, builder: EntryQueryBuilder) -> EntryQueryBuilder:
        for column, value in self.constraints():
            builder.where_equals(column, value)
        return builder


@dataclass(frozen=True)
class DateRange:
    """Inclusive calendar date range [start, end]."""

    start: date
    end: date

    def __post_init__(self) -> None:
        if self.end < self.start:
            raise ValueError(f"DateRange end {self.end} is before start {self.start}")

    @property
    def num_days(self) -> int:
        return (self.end - self.start).days + 1

    def days(self) -> list[date]:
        return list(iter_dates(self.start, self.end))

    def contains(self, d: date) -> bool:
        return self.start <= d <= self.end

    def timestamp_bounds(self, timezone_name: str = DEFAULT_TIMEZONE) -> tuple[datetime, datetime]:
        """UTC [start, end) instants covering the local calendar days."""
        return (
            local_day_start(self.start, timezone_name),
            local_day_start(self.end + timedelta(days=1), timezone_name),
        )

    @classmethod
    def trailing(cls, end: date, num_days: int) -> "DateRange":
        """The ``num_days`` days ending on ``end`` (inclusive)."""
        return cls(start=end - timedelta(days=num_days - 1), end=end)


async def find_matching_entries(
    conn: psycopg.AsyncConnection[Any],
    user_id: str,
    criteria: MatchCriteria,
    date_range: DateRange | None = None,
    *,
    descending: bool = False,
    timezone_name: str = DEFAULT_TIMEZONE,
) -> list[Entry]:
    """Non-deleted entries of the user matching criteria, ordered by timestamp.

    ``date_range=None`` means the complete history.
    """
    builder = criteria.apply(EntryQueryBuilder().for_user(user_id))
    if date_range is not None:
        builder.between(*date_range.timestamp_bounds(timezone_name))
    query, params = builder.order_by_timestamp("DESC" if descending else "ASC").build()

    try:
        async with conn.cursor(row_factory=dict_row) as cur:
            await cur.execute(query, params)
            rows = await cur.fetchall()
    except psycopg.Error as exc:
        raise UpstreamFailure("entries", f"Entry lookup failed: {exc}") from exc

    entries = [Entry.from_row(r) for r in rows]
    logger.debug(
        "Matched %d entries for user=%s criteria=%s range=%s",
        len(entries),
        user_id,
        criteria.constraints(),
        date_range,
    )
    return entries


async def latest_matching_timestamp(
    conn: psycopg.AsyncConnection[Any],
    user_id: str,
    criteria: MatchCriteria,
) -> datetime | None:
    """Timestamp of the most recent matching entry, the cache watermark."""
    query, params = (
        criteria.apply(EntryQueryBuilder().for_user(user_id))
        .select("timestamp")
        .order_by_timestamp("DESC")
        .limit(1)
        .build()
    )
    try:
        async with conn.cursor(row_factory=dict_row) as cur:
            await cur.execute(query, params)
            row = await cur.fetchone()
    except psycopg.Error as exc:
        raise UpstreamFailure("entries", f"Latest entry lookup failed: {exc}") from exc

    if row is None:
        return None
    return as_utc(row["timestamp"])
