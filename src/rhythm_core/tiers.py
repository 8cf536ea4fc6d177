"""Weekly tier ratchet.

Tiers are flexible frequency targets that bend rather than break:
- daily: 7 days this week
- most_days: 5-6 days
- few_times: 3-4 days
- weekly: 1-2 days
- starting: nothing yet this week

The achieved tier is recomputed from the week-to-date day statuses on every
read. Nothing is stored, so there is no tier state to drift out of sync, and
since met days only accumulate the tier can only go up within a week.
"""

from collections.abc import Sequence
from dataclasses import dataclass
from datetime import date, timedelta
from typing import Any, Literal

from .day_status import DayStatus
from .utils import week_end, week_start

TierName = Literal["daily", "most_days", "few_times", "weekly", "starting"]

NUDGE_TEMPLATE = "{remaining} more {times} to hit '{tier}'"


@dataclass(frozen=True)
class FrequencyTier:
    name: TierName
    label: str
    short_label: str
    description: str
    min_days: int
    max_days: int


# Most demanding first.
TIERS: tuple[FrequencyTier, ...] = (
    FrequencyTier("daily", "Every Day", "Daily", "7 days per week", 7, 7),
    FrequencyTier("most_days", "Most Days", "5-6x", "5-6 days per week", 5, 6),
    FrequencyTier("few_times", "Several Times", "3-4x", "3-4 days per week", 3, 4),
    FrequencyTier("weekly", "At Least Once", "1-2x", "1-2 days per week", 1, 2),
    FrequencyTier("starting", "Starting", "-", "No activity yet", 0, 0),
)

TIER_ORDER: tuple[TierName, ...] = tuple(t.name for t in TIERS)
_TIERS_BY_NAME: dict[str, FrequencyTier] = {t.name: t for t in TIERS}


def get_tier_info(name: str) -> FrequencyTier:
    return _TIERS_BY_NAME.get(name, TIERS[-1])


def tier_rank(name: str) -> int:
    """0 for starting, increasing with demand."""
    return len(TIER_ORDER) - 1 - TIER_ORDER.index(get_tier_info(name).name)


def tier_for_days(days_completed: int) -> TierName:
    for tier in TIERS:
        if days_completed >= tier.min_days:
            return tier.name
    return "starting"


def next_tier(name: str) -> TierName | None:
    """The next more demanding tier, or None above daily."""
    idx = TIER_ORDER.index(get_tier_info(name).name)
    return TIER_ORDER[idx - 1] if idx > 0 else None


def best_possible_tier(days_completed: int, days_remaining: int) -> TierName:
    return tier_for_days(days_completed + days_remaining)


def days_remaining_in_week(today: date, completed_today: bool) -> int:
    """Days left this week, counting today unless it is already met."""
    after_today = (week_end(today) - today).days
    return after_today if completed_today else after_today + 1


@dataclass(frozen=True)
class WeekProgress:
    start_date: date
    end_date: date
    days_completed: int
    achieved_tier: TierName
    best_possible_tier: TierName
    days_remaining: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "start_date": self.start_date.isoformat(),
            "end_date": self.end_date.isoformat(),
            "days_completed": self.days_completed,
            "achieved_tier": self.achieved_tier,
            "achieved_tier_label": get_tier_info(self.achieved_tier).label,
            "best_possible_tier": self.best_possible_tier,
            "days_remaining": self.days_remaining,
        }


def calculate_week_progress(days: Sequence[DayStatus], today: date) -> WeekProgress:
    """Progress for the Monday-Sunday week containing ``today``.

    Only days up to and including today are considered.
    """
    start = week_start(today)
    end = start + timedelta(days=6)
    met_dates = {d.date for d in days if d.is_met and start <= d.date <= today}
    completed = len(met_dates)
    remaining = days_remaining_in_week(today, today in met_dates)
    return WeekProgress(
        start_date=start,
        end_date=end,
        days_completed=completed,
        achieved_tier=tier_for_days(completed),
        best_possible_tier=best_possible_tier(completed, remaining),
        days_remaining=remaining,
    )


@dataclass(frozen=True)
class Nudge:
    days_needed: int
    tier: TierName
    message: str

    def to_dict(self) -> dict[str, Any]:
        return {"days_needed": self.days_needed, "tier": self.tier, "message": self.message}


def _render_nudge(days_needed: int, tier: FrequencyTier) -> Nudge:
    return Nudge(
        days_needed=days_needed,
        tier=tier.name,
        message=NUDGE_TEMPLATE.format(
            remaining=days_needed,
            times="time" if days_needed == 1 else "times",
            tier=tier.label,
        ),
    )


def generate_nudge(progress: WeekProgress, target_tier: str | None = None) -> Nudge | None:
    """Mid-week nudge, or None when on track or nothing is reachable.

    Without a target the nudge points at the next tier above the achieved
    one. When the target is out of reach this week, the best tier that is
    still reachable (and above the achieved one) is suggested instead.
    """
    target_name = target_tier or next_tier(progress.achieved_tier)
    if target_name is None:
        return None
    target = get_tier_info(target_name)
    days_needed = target.min_days - progress.days_completed
    if days_needed <= 0:
        return None
    if days_needed <= progress.days_remaining:
        return _render_nudge(days_needed, target)

    best = get_tier_info(progress.best_possible_tier)
    if tier_rank(best.name) <= tier_rank(progress.achieved_tier):
        return None
    best_needed = best.min_days - progress.days_completed
    if 0 < best_needed <= progress.days_remaining:
        return _render_nudge(best_needed, best)
    return None
