"""Composable query builder for entry lookups.

Translates rhythm match criteria and date windows into parameterized SQL
using psycopg.sql for safe composition; no string interpolation of values,
and column names only from a fixed allow-list.

Usage:
    query, params = (
        EntryQueryBuilder()
        .for_user(user_id)
        .where_equals("category", "mindfulness")
        .between(start_utc, end_utc)
        .order_by_timestamp("ASC")
        .build()
    )
    await cur.execute(query, params)
"""

from __future__ import annotations

from datetime import datetime

from psycopg import sql

ENTRY_COLUMNS: tuple[str, ...] = (
    "id",
    "user_id",
    "timestamp",
    "type",
    "name",
    "category",
    "subcategory",
    "duration_seconds",
    "data",
)

# Columns a rhythm is allowed to constrain on.
MATCHABLE_COLUMNS: frozenset[str] = frozenset({"type", "category", "subcategory", "name"})


class EntryQueryBuilder:
    """Build parameterized SELECTs against the entries table.

    Composable: each method returns self for chaining.
    build() returns (sql.Composed, params_tuple).
    """

    def __init__(self) -> None:
        self._columns: tuple[str, ...] = ENTRY_COLUMNS
        self._user_id: str | None = None
        self._equals: list[tuple[str, str]] = []
        self._start: datetime | None = None
        self._end: datetime | None = None
        self._order_direction: str | None = None
        self._limit: int | None = None

    def select(self, *columns: str) -> EntryQueryBuilder:
        unknown = [c for c in columns if c not in ENTRY_COLUMNS]
        if unknown:
            raise ValueError(f"Unknown entry columns: {unknown}")
        self._columns = tuple(columns)
        return self

    def for_user(self, user_id: str) -> EntryQueryBuilder:
        self._user_id = user_id
        return self

    def where_equals(self, column: str, value: str) -> EntryQueryBuilder:
        """Add an equality constraint on a matchable column."""
        if column not in MATCHABLE_COLUMNS:
            raise ValueError(f"Column {column!r} cannot be used for matching")
        self._equals.append((column, value))
        return self

    def between(self, start: datetime | None, end: datetime | None) -> EntryQueryBuilder:
        """Restrict to start <= timestamp < end. Either bound may be open."""
        self._start = start
        self._end = end
        return self

    def order_by_timestamp(self, direction: str = "ASC") -> EntryQueryBuilder:
        direction = direction.upper()
        if direction not in ("ASC", "DESC"):
            raise ValueError(f"Invalid order direction: {direction!r}")
        self._order_direction = direction
        return self

    def limit(self, n: int) -> EntryQueryBuilder:
        if n < 1:
            raise ValueError("limit must be >= 1")
        self._limit = n
        return self

    def build(self) -> tuple[sql.Composed, tuple]:
        """Compose the final SQL query from collected fragments.

        Returns (query, params) where query is a psycopg.sql.Composed
        and params is a tuple of parameter values.
        """
        if self._user_id is None:
            raise ValueError("No user specified. Call for_user() first.")

        where_parts: list[sql.Composable] = [
            sql.SQL("user_id = %s"),
            sql.SQL("deleted_at IS NULL"),
        ]
        params: list = [self._user_id]

        for column, value in self._equals:
            where_parts.append(sql.SQL("{} = %s").format(sql.Identifier(column)))
            params.append(value)

        if self._start is not None:
            where_parts.append(sql.SQL("timestamp >= %s"))
            params.append(self._start)

        if self._end is not None:
            where_parts.append(sql.SQL("timestamp < %s"))
            params.append(self._end)

        query_parts: list[sql.Composable] = [
            sql.SQL("SELECT "),
            sql.SQL(", ").join(sql.Identifier(c) for c in self._columns),
            sql.SQL(" FROM entries WHERE "),
            sql.SQL(" AND ").join(where_parts),
        ]

        if self._order_direction is not None:
            # id as tiebreaker keeps same-timestamp ordering stable
            query_parts.append(
                sql.SQL(" ORDER BY timestamp {dir}, id {dir}").format(
                    dir=sql.SQL(self._order_direction)
                )
            )

        if self._limit is not None:
            query_parts.append(sql.SQL(" LIMIT %s"))
            params.append(self._limit)

        return sql.Composed(query_parts), tuple(params)
