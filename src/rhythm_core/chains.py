"""Chain calculator: current and longest runs of qualifying units.

A dense day-status sequence is folded into units (days, ISO weeks or
calendar months). Each closed unit is a hit or a miss. The unit containing
``today`` is still in progress: it is a hit once its bar is met, pending
while the bar is still reachable, and a miss once it no longer is. A pending
unit never breaks the current chain and never extends it.
"""

from collections.abc import Sequence
from dataclasses import dataclass
from datetime import date, timedelta
from typing import Any

from .day_status import DayStatus
from .errors import InvalidConfiguration
from .registry import (
    ChainTypeInfo,
    ChainUnit,
    UnitOutcome,
    chain_type,
    get_chain_rule,
    get_chain_type,
    registered_chain_types,
)
from .utils import month_end, month_start, week_start

DEFAULT_CHAIN_TYPE = "weekly_low"


@dataclass(frozen=True)
class ChainStat:
    chain_type: str
    unit: ChainUnit
    current: int
    longest: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "chain_type": self.chain_type,
            "unit": self.unit,
            "current": self.current,
            "longest": self.longest,
        }


def _is_qualifying_day(day: DayStatus, target_seconds: int | None) -> bool:
    if target_seconds is not None:
        return day.has_activity and day.total_seconds >= target_seconds
    return day.is_met


@chain_type(
    "weekly_low",
    unit="weeks",
    label="Weekly (Regular)",
    short_label="3x/wk",
    description="3+ days per week",
    min_days_per_unit=3,
)
@chain_type(
    "weekly_high",
    unit="weeks",
    label="Weekly (High)",
    short_label="5x/wk",
    description="5+ days per week",
    min_days_per_unit=5,
)
@chain_type(
    "daily",
    unit="days",
    label="Daily Chain",
    short_label="Daily",
    description="Every day",
    min_days_per_unit=1,
)
def _qualifying_days_rule(
    unit_days: Sequence[DayStatus],
    info: ChainTypeInfo,
    target_seconds: int | None,
    days_after_today: int,
    in_progress: bool,
) -> UnitOutcome:
    """Hit when enough days in the unit qualify."""
    bar = info.min_days_per_unit or 1
    qualified = sum(1 for d in unit_days if _is_qualifying_day(d, target_seconds))
    if qualified >= bar:
        return "hit"
    if not in_progress:
        return "miss"
    today_open = bool(unit_days) and not _is_qualifying_day(unit_days[-1], target_seconds)
    open_days = days_after_today + (1 if today_open else 0)
    if open_days > 0 and qualified + open_days >= bar:
        return "pending"
    return "miss"


@chain_type(
    "monthly_target",
    unit="months",
    label="Monthly Target",
    short_label="Mo Goal",
    description="Minutes per month",
    requires_target=True,
)
@chain_type(
    "weekly_target",
    unit="weeks",
    label="Weekly Target",
    short_label="Wk Goal",
    description="Minutes per week",
    requires_target=True,
)
def _cumulative_minutes_rule(
    unit_days: Sequence[DayStatus],
    info: ChainTypeInfo,
    target_seconds: int | None,
    days_after_today: int,
    in_progress: bool,
) -> UnitOutcome:
    """Hit when the unit's summed duration reaches the target."""
    if target_seconds is None:
        raise InvalidConfiguration(
            f"Chain type {info.name!r} requires chain_target_minutes",
            field="chain_target_minutes",
        )
    # A unit without any logged day is a miss even for a zero target.
    active = any(d.has_activity for d in unit_days)
    total = sum(d.total_seconds for d in unit_days)
    if active and total >= target_seconds:
        return "hit"
    if in_progress:
        return "pending"
    return "miss"


def unit_key(d: date, unit: ChainUnit) -> date:
    if unit == "weeks":
        return week_start(d)
    if unit == "months":
        return month_start(d)
    return d


def _unit_last_day(key: date, unit: ChainUnit) -> date:
    if unit == "weeks":
        return key + timedelta(days=6)
    if unit == "months":
        return month_end(key)
    return key


def _next_unit_key(key: date, unit: ChainUnit) -> date:
    return _unit_last_day(key, unit) + timedelta(days=1)


def fold_units(
    days: Sequence[DayStatus],
    chain_type_name: str,
    *,
    target_seconds: int | None = None,
    today: date | None = None,
) -> list[tuple[date, UnitOutcome]]:
    """Per-unit outcomes, oldest first, for days up to and including today."""
    info = get_chain_type(chain_type_name)
    rule = get_chain_rule(chain_type_name)
    if info is None or rule is None:
        raise InvalidConfiguration(f"Unknown chain type {chain_type_name!r}", field="chain_type")
    if not days:
        return []

    ordered = sorted(days, key=lambda d: d.date)
    ref = today if today is not None else ordered[-1].date
    # Nothing observed between the last status and today means nothing logged.
    padding = [
        DayStatus(date=ordered[-1].date + timedelta(days=n), status="none")
        for n in range(1, (ref - ordered[-1].date).days + 1)
    ]
    grouped: dict[date, list[DayStatus]] = {}
    for day in ordered + padding:
        if day.date > ref:
            continue
        grouped.setdefault(unit_key(day.date, info.unit), []).append(day)

    current_key = unit_key(ref, info.unit)
    outcomes: list[tuple[date, UnitOutcome]] = []
    for key, unit_days in grouped.items():
        in_progress = key == current_key
        days_after_today = (_unit_last_day(key, info.unit) - ref).days if in_progress else 0
        outcomes.append((key, rule(unit_days, info, target_seconds, days_after_today, in_progress)))
    return outcomes


def _runs(outcomes: list[tuple[date, UnitOutcome]], unit: ChainUnit) -> tuple[int, int]:
    """(current, longest) hit runs; units missing from the sequence are misses."""
    longest = 0
    run = 0
    prev_key: date | None = None
    for key, outcome in outcomes:
        if prev_key is not None and key != _next_unit_key(prev_key, unit):
            run = 0
        if outcome == "hit":
            run += 1
            longest = max(longest, run)
        else:
            run = 0
        prev_key = key

    current = 0
    expected: date | None = None
    for i, (key, outcome) in enumerate(reversed(outcomes)):
        if expected is not None and _next_unit_key(key, unit) != expected:
            break
        expected = key
        if outcome == "hit":
            current += 1
        elif outcome == "pending" and i == 0:
            continue
        else:
            break
    return current, longest


def _target_seconds(chain_target_minutes: int | None) -> int | None:
    if chain_target_minutes is None:
        return None
    return int(chain_target_minutes) * 60


def calculate_chain_stat(
    days: Sequence[DayStatus],
    chain_type_name: str = DEFAULT_CHAIN_TYPE,
    *,
    chain_target_minutes: int | None = None,
    today: date | None = None,
) -> ChainStat:
    info = get_chain_type(chain_type_name)
    if info is None:
        raise InvalidConfiguration(f"Unknown chain type {chain_type_name!r}", field="chain_type")
    if info.requires_target and chain_target_minutes is None:
        raise InvalidConfiguration(
            f"Chain type {chain_type_name!r} requires chain_target_minutes",
            field="chain_target_minutes",
        )
    outcomes = fold_units(
        days,
        chain_type_name,
        target_seconds=_target_seconds(chain_target_minutes),
        today=today,
    )
    current, longest = _runs(outcomes, info.unit)
    return ChainStat(chain_type=chain_type_name, unit=info.unit, current=current, longest=longest)


def calculate_all_chain_stats(
    days: Sequence[DayStatus],
    *,
    chain_target_minutes: int | None = None,
    today: date | None = None,
) -> list[ChainStat]:
    """Stats for every registered chain type computable for this rhythm.

    Target chain types are skipped when no target is configured.
    """
    stats: list[ChainStat] = []
    for name in registered_chain_types():
        info = get_chain_type(name)
        if info is None or (info.requires_target and chain_target_minutes is None):
            continue
        stats.append(
            calculate_chain_stat(
                days,
                name,
                chain_target_minutes=chain_target_minutes,
                today=today,
            )
        )
    return stats
