"""Lifetime totals and journey stage.

Totals always cover the complete matched history; they are never windowed.
"""

from collections.abc import Sequence
from dataclasses import dataclass
from typing import Any, Literal

from .day_status import DayStatus
from .entry_matcher import Entry
from .utils import DEFAULT_TIMEZONE, local_date_for_timezone, month_key, week_start

JourneyStage = Literal["starting", "building", "becoming"]

# weeks_active >= threshold -> stage; checked from the top.
BUILDING_MIN_WEEKS = 2
BECOMING_MIN_WEEKS = 4


@dataclass(frozen=True)
class RhythmTotals:
    total_sessions: int = 0
    total_seconds: int = 0
    total_hours: float = 0.0
    first_entry_date: str | None = None
    weeks_active: int = 0
    months_active: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "total_sessions": self.total_sessions,
            "total_seconds": self.total_seconds,
            "total_hours": self.total_hours,
            "first_entry_date": self.first_entry_date,
            "weeks_active": self.weeks_active,
            "months_active": self.months_active,
        }


def calculate_totals(
    entries: Sequence[Entry],
    days: Sequence[DayStatus],
    *,
    timezone_name: str = DEFAULT_TIMEZONE,
) -> RhythmTotals:
    total_seconds = 0
    first = None
    for entry in entries:
        total_seconds += max(entry.duration_seconds or 0, 0)
        if first is None or entry.timestamp < first:
            first = entry.timestamp

    weeks: set = set()
    months: set[str] = set()
    for day in days:
        if day.is_met:
            weeks.add(week_start(day.date))
            months.add(month_key(day.date))

    return RhythmTotals(
        total_sessions=len(entries),
        total_seconds=total_seconds,
        total_hours=round(total_seconds / 3600, 2),
        first_entry_date=(
            local_date_for_timezone(first, timezone_name).isoformat() if first else None
        ),
        weeks_active=len(weeks),
        months_active=len(months),
    )


def journey_stage(weeks_active: int) -> JourneyStage:
    if weeks_active >= BECOMING_MIN_WEEKS:
        return "becoming"
    if weeks_active >= BUILDING_MIN_WEEKS:
        return "building"
    return "starting"
