"""Shared fakes for psycopg async connections."""

from datetime import date, timedelta
from unittest.mock import AsyncMock, MagicMock

from psycopg import sql

from rhythm_core.day_status import DayStatus


class FakeTransaction:
    """Mimics psycopg's async transaction context manager (savepoint)."""

    def __init__(self):
        self.rolled_back = 0

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        if exc_type is not None:
            self.rolled_back += 1
        return False  # don't suppress exceptions


class MockCursorContext:
    def __init__(self, cursor):
        self.cursor = cursor

    async def __aenter__(self):
        return self.cursor

    async def __aexit__(self, *args):
        return False


def make_mock_cursor(rows=None, *, error=None):
    """Async cursor returning ``rows``; ``error`` is raised from execute."""
    rows = rows or []
    cursor = AsyncMock()
    cursor.execute = AsyncMock(side_effect=error)
    cursor.fetchall = AsyncMock(return_value=rows)
    cursor.fetchone = AsyncMock(return_value=rows[0] if rows else None)
    return cursor


def make_mock_conn(rows=None, *, error=None):
    conn = AsyncMock()
    cursor = make_mock_cursor(rows, error=error)
    conn.cursor = MagicMock(return_value=MockCursorContext(cursor))
    conn.transaction = MagicMock(return_value=FakeTransaction())
    conn._fake_cursor = cursor  # expose for assertions
    return conn


def query_str(query: sql.Composed) -> str:
    """Convert a composed SQL object to a string for testing."""
    parts = []
    for part in query._obj:
        if isinstance(part, sql.SQL):
            parts.append(part._obj)
        elif isinstance(part, sql.Composed):
            parts.append(query_str(part))
        elif isinstance(part, sql.Identifier):
            parts.append(f'"{part._obj[0]}"')
        else:
            parts.append(str(part))
    return "".join(parts)


def days_from_pattern(start: date, pattern: str) -> list[DayStatus]:
    """Dense statuses from a compact pattern: M=met, P=partial, .=none.

    Met days carry 600 seconds, partial days 60.
    """
    statuses = []
    for offset, ch in enumerate(pattern):
        d = start + timedelta(days=offset)
        if ch == "M":
            statuses.append(DayStatus(d, "met", total_seconds=600, entry_count=1, total_count=1))
        elif ch == "P":
            statuses.append(DayStatus(d, "partial", total_seconds=60, entry_count=1, total_count=1))
        else:
            statuses.append(DayStatus(d, "none"))
    return statuses
