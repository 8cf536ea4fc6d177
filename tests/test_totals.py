"""Tests for lifetime totals and journey stage."""

from datetime import date, datetime, timedelta, timezone

import pytest

from conftest import days_from_pattern
from rhythm_core.entry_matcher import Entry
from rhythm_core.totals import calculate_totals, journey_stage

MON = date(2026, 2, 2)


def _entry(day: date, seconds: int | None, idx: int = 0) -> Entry:
    return Entry(
        id=f"e-{idx}",
        user_id="u-1",
        timestamp=datetime(day.year, day.month, day.day, 7, tzinfo=timezone.utc),
        duration_seconds=seconds,
    )


class TestCalculateTotals:
    def test_empty_history(self):
        totals = calculate_totals([], [])
        assert totals.total_sessions == 0
        assert totals.total_hours == 0.0
        assert totals.first_entry_date is None
        assert totals.weeks_active == 0

    def test_sessions_and_hours(self):
        entries = [_entry(MON, 1800, 0), _entry(MON + timedelta(days=1), 1000, 1), _entry(MON, None, 2)]
        totals = calculate_totals(entries, [])
        assert totals.total_sessions == 3
        assert totals.total_seconds == 2800
        assert totals.total_hours == 0.78

    def test_first_entry_date(self):
        entries = [_entry(MON + timedelta(days=3), 60, 0), _entry(MON, 60, 1)]
        assert calculate_totals(entries, []).first_entry_date == "2026-02-02"

    def test_weeks_and_months_count_met_days_only(self):
        # Week 1 met, week 2 partial only, then a met Monday in March.
        days = days_from_pattern(MON, "M......" + "P......" + "......." + "......." + "M")
        totals = calculate_totals([], days)
        assert totals.weeks_active == 2
        assert totals.months_active == 2


class TestJourneyStage:
    @pytest.mark.parametrize(
        "weeks,expected",
        [
            (0, "starting"),
            (1, "starting"),
            (2, "building"),
            (3, "building"),
            (4, "becoming"),
            (6, "becoming"),
        ],
    )
    def test_boundaries(self, weeks, expected):
        assert journey_stage(weeks) == expected
