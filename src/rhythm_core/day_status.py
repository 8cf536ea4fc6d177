"""Day-status reducer: matched entries -> one status per calendar day.

The output is dense. Every day of the requested range gets exactly one
status, including days without any entry, so downstream consumers never see
gaps.
"""

from collections import defaultdict
from dataclasses import dataclass
from datetime import date
from typing import Any, Iterable, Literal

from .entry_matcher import DateRange, Entry
from .utils import DEFAULT_TIMEZONE, local_date_for_timezone

Status = Literal["met", "partial", "none"]
GoalType = Literal["duration", "count"]

MET: Status = "met"
PARTIAL: Status = "partial"
NONE: Status = "none"


@dataclass(frozen=True)
class DayStatus:
    date: date
    status: Status
    total_seconds: int = 0
    total_count: int = 0
    entry_count: int = 0

    @property
    def is_met(self) -> bool:
        return self.status == MET

    @property
    def has_activity(self) -> bool:
        return self.entry_count > 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "date": self.date.isoformat(),
            "status": self.status,
            "total_seconds": self.total_seconds,
            "total_count": self.total_count,
            "entry_count": self.entry_count,
        }


def _day_amount(total_seconds: int, total_count: int, goal_type: GoalType) -> int:
    return total_seconds if goal_type == "duration" else total_count


def classify_day(amount: int, entry_count: int, threshold: int) -> Status:
    """met: logged and amount >= threshold; partial: logged but short; none: nothing logged."""
    if entry_count == 0:
        return NONE
    if amount >= threshold:
        return MET
    return PARTIAL


def reduce_day_statuses(
    entries: Iterable[Entry],
    threshold: int,
    date_range: DateRange,
    *,
    goal_type: GoalType = "duration",
    timezone_name: str = DEFAULT_TIMEZONE,
) -> list[DayStatus]:
    """Bucket entries by local calendar date and classify every day in range.

    Duration goals sum ``duration_seconds``; count goals sum ``count`` with an
    entry lacking a count contributing 1.
    """
    if threshold < 0:
        raise ValueError(f"threshold must be >= 0, got {threshold}")
    if goal_type not in ("duration", "count"):
        raise ValueError(f"Unknown goal_type: {goal_type!r}")

    buckets: dict[date, dict[str, int]] = defaultdict(
        lambda: {"seconds": 0, "count": 0, "entries": 0}
    )
    for entry in entries:
        day = local_date_for_timezone(entry.timestamp, timezone_name)
        if not date_range.contains(day):
            continue
        bucket = buckets[day]
        bucket["seconds"] += max(entry.duration_seconds or 0, 0)
        bucket["count"] += entry.count if entry.count is not None else 1
        bucket["entries"] += 1

    statuses: list[DayStatus] = []
    for day in date_range.days():
        bucket = buckets.get(day)
        if bucket is None:
            statuses.append(DayStatus(date=day, status=NONE))
            continue
        amount = _day_amount(bucket["seconds"], bucket["count"], goal_type)
        statuses.append(
            DayStatus(
                date=day,
                status=classify_day(amount, bucket["entries"], threshold),
                total_seconds=bucket["seconds"],
                total_count=bucket["count"],
                entry_count=bucket["entries"],
            )
        )
    return statuses


def slice_days(days: list[DayStatus], start: date, end: date) -> list[DayStatus]:
    """Statuses with start <= date <= end, order preserved."""
    return [d for d in days if start <= d.date <= end]
