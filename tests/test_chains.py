"""Tests for the chain calculator (daily, weekly and monthly chains)."""

from datetime import date, timedelta

import pytest
from hypothesis import given, settings
from hypothesis import strategies as st

from conftest import days_from_pattern
from rhythm_core.chains import (
    DEFAULT_CHAIN_TYPE,
    calculate_all_chain_stats,
    calculate_chain_stat,
    fold_units,
)
from rhythm_core.day_status import DayStatus
from rhythm_core.errors import InvalidConfiguration

MON_W1 = date(2026, 2, 2)  # Monday
SUN_W2 = MON_W1 + timedelta(days=13)


class TestWeeklyLow:
    def test_default_chain_type(self):
        assert DEFAULT_CHAIN_TYPE == "weekly_low"

    def test_hit_then_missed_week(self):
        # Mon/Wed/Fri met in week 1, nothing in week 2; today is Sunday of week 2.
        days = days_from_pattern(MON_W1, "M.M.M.." + ".......")
        stat = calculate_chain_stat(days, "weekly_low", today=SUN_W2)
        assert stat.unit == "weeks"
        assert stat.current == 0
        assert stat.longest == 1

    def test_partial_days_do_not_qualify(self):
        days = days_from_pattern(MON_W1, "MPMP...")
        stat = calculate_chain_stat(days, "weekly_low", today=MON_W1 + timedelta(days=6))
        assert stat.longest == 0

    def test_consecutive_hit_weeks(self):
        days = days_from_pattern(MON_W1, "MMM...." + "M.M.M.." + "..MMM..")
        stat = calculate_chain_stat(days, "weekly_low", today=MON_W1 + timedelta(days=20))
        assert (stat.current, stat.longest) == (3, 3)

    def test_gap_week_breaks_run(self):
        days = days_from_pattern(MON_W1, "MMM...." + "......." + "MMM....")
        stat = calculate_chain_stat(days, "weekly_low", today=MON_W1 + timedelta(days=20))
        assert (stat.current, stat.longest) == (1, 1)


class TestInProgressUnit:
    def test_pending_week_keeps_current_chain(self):
        # Two hit weeks, this week has 1 met day on Tuesday: still reachable.
        days = days_from_pattern(MON_W1, "MMM...." + "MMM...." + ".M")
        today = MON_W1 + timedelta(days=15)
        outcomes = fold_units(days, "weekly_low", today=today)
        assert outcomes[-1][1] == "pending"
        stat = calculate_chain_stat(days, "weekly_low", today=today)
        assert (stat.current, stat.longest) == (2, 2)

    def test_unreachable_week_breaks_chain(self):
        # Saturday with 0 met days this week: at most 2 more, bar is 3.
        days = days_from_pattern(MON_W1, "MMM...." + "......")
        today = MON_W1 + timedelta(days=12)
        outcomes = fold_units(days, "weekly_low", today=today)
        assert outcomes[-1][1] == "miss"
        assert calculate_chain_stat(days, "weekly_low", today=today).current == 0

    def test_hit_in_progress_week_counts(self):
        days = days_from_pattern(MON_W1, "MMM...." + "MMM")
        stat = calculate_chain_stat(days, "weekly_low", today=MON_W1 + timedelta(days=9))
        assert (stat.current, stat.longest) == (2, 2)

    def test_today_unlogged_daily_chain_is_pending(self):
        days = days_from_pattern(MON_W1, "MMMM.")
        stat = calculate_chain_stat(days, "daily", today=MON_W1 + timedelta(days=4))
        assert (stat.current, stat.longest) == (4, 4)

    def test_days_after_today_are_ignored(self):
        days = days_from_pattern(MON_W1, "MM.MM")
        stat = calculate_chain_stat(days, "daily", today=MON_W1 + timedelta(days=1))
        assert (stat.current, stat.longest) == (2, 2)


class TestDailyAndHigh:
    def test_daily_longest_and_current(self):
        days = days_from_pattern(MON_W1, "MMM.MMMMM.MM")
        stat = calculate_chain_stat(days, "daily", today=MON_W1 + timedelta(days=11))
        assert (stat.current, stat.longest) == (2, 5)

    def test_weekly_high_needs_five(self):
        days = days_from_pattern(MON_W1, "MMMM..." + "MMMMM..")
        stat = calculate_chain_stat(days, "weekly_high", today=MON_W1 + timedelta(days=13))
        assert (stat.current, stat.longest) == (1, 1)

    def test_target_override_on_day_count_chain(self):
        # 600s met days; a 20-minute target makes none of them qualify.
        days = days_from_pattern(MON_W1, "MMMMMMM")
        stat = calculate_chain_stat(
            days, "daily", chain_target_minutes=20, today=MON_W1 + timedelta(days=6)
        )
        assert stat.longest == 0


class TestTargetChains:
    def test_weekly_target_sums_minutes(self):
        # 3 x 600s = 30 minutes in week 1, 1 x 600s in week 2; today is Monday of week 3.
        days = days_from_pattern(MON_W1, "MMM...." + "M......")
        stat = calculate_chain_stat(
            days, "weekly_target", chain_target_minutes=30, today=MON_W1 + timedelta(days=14)
        )
        assert (stat.current, stat.longest) == (0, 1)

    def test_unmet_target_week_is_pending_until_it_closes(self):
        days = days_from_pattern(MON_W1, "MMM...." + "M......")
        stat = calculate_chain_stat(
            days, "weekly_target", chain_target_minutes=30, today=MON_W1 + timedelta(days=13)
        )
        assert (stat.current, stat.longest) == (1, 1)

    def test_today_past_last_status_counts_as_unlogged(self):
        days = days_from_pattern(MON_W1, "MMM....")
        stat = calculate_chain_stat(days, "weekly_low", today=MON_W1 + timedelta(days=20))
        assert (stat.current, stat.longest) == (0, 1)

    def test_partial_days_count_toward_target(self):
        days = days_from_pattern(MON_W1, "PPPPPPP")
        stat = calculate_chain_stat(
            days, "weekly_target", chain_target_minutes=7, today=MON_W1 + timedelta(days=6)
        )
        assert stat.current == 1

    def test_monthly_target(self):
        jan = [
            DayStatus(date(2026, 1, d), "met", total_seconds=3600, entry_count=1)
            for d in range(1, 32)
        ]
        feb = [DayStatus(date(2026, 2, d), "none") for d in range(1, 11)]
        stat = calculate_chain_stat(
            jan + feb, "monthly_target", chain_target_minutes=600, today=date(2026, 2, 10)
        )
        assert stat.unit == "months"
        # January hit, February still in progress.
        assert (stat.current, stat.longest) == (1, 1)

    def test_target_required(self):
        with pytest.raises(InvalidConfiguration) as exc_info:
            calculate_chain_stat(days_from_pattern(MON_W1, "M"), "weekly_target")
        assert exc_info.value.field == "chain_target_minutes"


class TestErrorsAndAll:
    def test_unknown_chain_type(self):
        with pytest.raises(InvalidConfiguration) as exc_info:
            calculate_chain_stat(days_from_pattern(MON_W1, "M"), "fortnightly")
        assert exc_info.value.field == "chain_type"

    def test_empty_sequence(self):
        stat = calculate_chain_stat([], "daily")
        assert (stat.current, stat.longest) == (0, 0)

    def test_all_skips_target_types_without_target(self):
        days = days_from_pattern(MON_W1, "MMM")
        names = [s.chain_type for s in calculate_all_chain_stats(days)]
        assert names == ["daily", "weekly_high", "weekly_low"]

    def test_all_includes_target_types_with_target(self):
        days = days_from_pattern(MON_W1, "MMM")
        names = [s.chain_type for s in calculate_all_chain_stats(days, chain_target_minutes=10)]
        assert "weekly_target" in names
        assert "monthly_target" in names


class TestChainBounds:
    @settings(max_examples=100)
    @given(
        pattern=st.text(alphabet="MP.", min_size=1, max_size=90),
        chain_type=st.sampled_from(["daily", "weekly_high", "weekly_low"]),
    )
    def test_current_never_exceeds_longest(self, pattern, chain_type):
        days = days_from_pattern(MON_W1, pattern)
        stat = calculate_chain_stat(days, chain_type)
        assert 0 <= stat.current <= stat.longest
        if "M" not in pattern:
            assert stat.longest == 0
