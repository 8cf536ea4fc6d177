"""Encouragement selector.

Picks one message from the externally-authored pool with a prioritized
fallback, most specific filter first:

1. context + activity type + tier
2. context + activity type, tier-agnostic
3. context + "general" activity + tier
4. context + "general" activity, tier-agnostic
5. the same chain again in the "general" context

Tier-agnostic means the message row carries no tier at all. The first
non-empty filter wins and a random message from it is returned.
"""

import logging
import random
import re
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from typing import Any, Literal

import psycopg
from psycopg.rows import dict_row

from .errors import UpstreamFailure
from .totals import JourneyStage

logger = logging.getLogger(__name__)

GENERAL_ACTIVITY = "general"

EncouragementContext = Literal["general", "tier_achieved"]

STAGE_FALLBACK_MESSAGES: dict[str, str] = {
    "starting": "Every journey begins with a single step",
    "building": "A practice is forming",
    "becoming": "This is who you are now",
}

_PLACEHOLDER_RE = re.compile(r"\{(\w+)\}")


@dataclass(frozen=True)
class Encouragement:
    id: str
    stage: str
    context: str
    message: str
    activity_type: str = GENERAL_ACTIVITY
    tier_name: str | None = None
    is_active: bool = True

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> "Encouragement":
        return cls(
            id=str(row["id"]),
            stage=row["stage"],
            context=row["context"],
            message=row["message"],
            activity_type=row.get("activity_type") or GENERAL_ACTIVITY,
            tier_name=row.get("tier_name"),
            is_active=bool(row.get("is_active", True)),
        )


def _candidate_filters(activity_type: str, tier_name: str | None) -> list[tuple[str, str | None]]:
    filters: list[tuple[str, str | None]] = []
    activities = [activity_type]
    if activity_type != GENERAL_ACTIVITY:
        activities.append(GENERAL_ACTIVITY)
    for activity in activities:
        if tier_name is not None:
            filters.append((activity, tier_name))
        filters.append((activity, None))
    return filters


def select_message(
    pool: Sequence[Encouragement],
    stage: JourneyStage,
    context: EncouragementContext,
    activity_type: str = GENERAL_ACTIVITY,
    tier_name: str | None = None,
    *,
    rng: random.Random | None = None,
) -> str | None:
    """Pick a message for the stage/context, or None when the pool has no match."""
    candidates = [m for m in pool if m.is_active and m.stage == stage and m.context == context]
    chooser = rng or random
    for activity, tier in _candidate_filters(activity_type or GENERAL_ACTIVITY, tier_name):
        matched = [m for m in candidates if m.activity_type == activity and m.tier_name == tier]
        if matched:
            return chooser.choice(matched).message

    if context != "general":
        return select_message(pool, stage, "general", activity_type, tier_name, rng=rng)
    return None


def fill_placeholders(message: str, values: Mapping[str, Any]) -> str:
    """Substitute ``{name}`` placeholders; unknown ones are left as-is."""

    def _replace(match: re.Match) -> str:
        key = match.group(1)
        if key in values and values[key] is not None:
            return str(values[key])
        return match.group(0)

    return _PLACEHOLDER_RE.sub(_replace, message)


def stage_fallback(stage: str) -> str:
    return STAGE_FALLBACK_MESSAGES.get(stage, STAGE_FALLBACK_MESSAGES["starting"])


async def load_encouragement_pool(
    conn: psycopg.AsyncConnection[Any],
    stage: JourneyStage,
) -> list[Encouragement]:
    """Active messages for one journey stage."""
    try:
        async with conn.cursor(row_factory=dict_row) as cur:
            await cur.execute(
                """
                SELECT id, stage, context, activity_type, tier_name, message, is_active
                FROM encouragements
                WHERE stage = %s AND is_active = TRUE
                """,
                (stage,),
            )
            rows = await cur.fetchall()
    except psycopg.Error as exc:
        raise UpstreamFailure("encouragements", f"Encouragement lookup failed: {exc}") from exc

    logger.debug("Loaded %d encouragement messages for stage=%s", len(rows), stage)
    return [Encouragement.from_row(r) for r in rows]
