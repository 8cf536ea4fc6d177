"""Tests for the encouragement selector fallback chain."""

import random

import psycopg
import pytest

from conftest import make_mock_conn
from rhythm_core.encouragement import (
    Encouragement,
    fill_placeholders,
    load_encouragement_pool,
    select_message,
    stage_fallback,
)
from rhythm_core.errors import UpstreamFailure


def _msg(message, *, stage="building", context="general", activity="general", tier=None, active=True):
    return Encouragement(
        id=message,
        stage=stage,
        context=context,
        message=message,
        activity_type=activity,
        tier_name=tier,
        is_active=active,
    )


POOL = [
    _msg("mind-tier", activity="mindfulness", tier="few_times"),
    _msg("mind-any", activity="mindfulness"),
    _msg("general-tier", tier="few_times"),
    _msg("general-any"),
    _msg("other-stage", stage="becoming"),
    _msg("achieved", context="tier_achieved"),
]


class TestSelectMessage:
    def test_most_specific_wins(self):
        assert select_message(POOL, "building", "general", "mindfulness", "few_times") == "mind-tier"

    def test_activity_tier_agnostic(self):
        assert select_message(POOL, "building", "general", "mindfulness", "daily") == "mind-any"

    def test_general_activity_with_tier(self):
        assert select_message(POOL, "building", "general", "fitness", "few_times") == "general-tier"

    def test_general_tier_agnostic(self):
        assert select_message(POOL, "building", "general", "fitness", "daily") == "general-any"

    def test_no_tier_given_skips_tier_specific(self):
        assert select_message(POOL, "building", "general", "mindfulness") == "mind-any"

    def test_context_filters(self):
        assert select_message(POOL, "building", "tier_achieved", "mindfulness") == "achieved"

    def test_tier_achieved_falls_back_to_general_context(self):
        pool = [_msg("general-any"), _msg("mind-any", activity="mindfulness")]
        assert select_message(pool, "building", "tier_achieved", "mindfulness", "few_times") == "mind-any"

    def test_general_context_fallback_keeps_stage(self):
        pool = [_msg("other-stage", stage="becoming")]
        assert select_message(pool, "building", "tier_achieved") is None

    def test_no_match(self):
        assert select_message(POOL, "starting", "general") is None

    def test_inactive_ignored(self):
        pool = [_msg("off", active=False)]
        assert select_message(pool, "building", "general") is None

    def test_random_choice_among_candidates(self):
        pool = [_msg("a"), _msg("b"), _msg("c")]
        picks = {select_message(pool, "building", "general", rng=random.Random(seed)) for seed in range(30)}
        assert picks <= {"a", "b", "c"}
        assert len(picks) > 1


class TestPlaceholders:
    def test_fill(self):
        assert fill_placeholders("{remaining} more for {tier}", {"remaining": 2, "tier": "Most Days"}) == (
            "2 more for Most Days"
        )

    def test_unknown_left_untouched(self):
        assert fill_placeholders("Keep going {name}", {"tier": "x"}) == "Keep going {name}"

    def test_none_value_left_untouched(self):
        assert fill_placeholders("{remaining} left", {"remaining": None}) == "{remaining} left"

    def test_stage_fallbacks(self):
        assert stage_fallback("starting") == "Every journey begins with a single step"
        assert stage_fallback("building") == "A practice is forming"
        assert stage_fallback("becoming") == "This is who you are now"


class TestLoadPool:
    @pytest.mark.asyncio
    async def test_loads_rows(self):
        rows = [
            {
                "id": 1,
                "stage": "building",
                "context": "general",
                "activity_type": None,
                "tier_name": None,
                "message": "hello",
                "is_active": True,
            }
        ]
        pool = await load_encouragement_pool(make_mock_conn(rows), "building")
        assert [m.message for m in pool] == ["hello"]
        assert pool[0].activity_type == "general"
        assert pool[0].id == "1"

    @pytest.mark.asyncio
    async def test_error_is_upstream_failure(self):
        conn = make_mock_conn(error=psycopg.OperationalError("down"))
        with pytest.raises(UpstreamFailure) as exc_info:
            await load_encouragement_pool(conn, "building")
        assert exc_info.value.source == "encouragements"
