"""Rhythm progress: cache manager plus the read-time pipeline.

Full-history values (chains, totals) are expensive and cached on the rhythm
row, keyed by a watermark (the timestamp of the newest matching entry) and the
local date they were computed on, since the unit containing today is judged
as still in progress. The visualization window (days, week progress, nudge)
is cheap and always recomputed fresh.

Known gap: the watermark only moves when a newer entry arrives. Editing or
backfilling an older entry leaves it unchanged, so the cached chains stay
stale until the next newer entry, a configuration edit (which clears the
blob), or a read with ``force_refresh=True``.
"""

import logging
import random
import time
from dataclasses import dataclass
from datetime import date, datetime, timezone
from typing import Any, Literal

import psycopg

from .chains import ChainStat, calculate_all_chain_stats, calculate_chain_stat
from .config import Config
from .day_status import DayStatus, reduce_day_statuses, slice_days
from .encouragement import (
    fill_placeholders,
    load_encouragement_pool,
    select_message,
    stage_fallback,
)
from .entry_matcher import DateRange, find_matching_entries, latest_matching_timestamp
from .errors import RhythmError, UpstreamFailure
from .metrics import (
    record_cache_hit,
    record_cache_miss,
    record_cache_write_failure,
    record_recompute,
    record_stale_cache_served,
)
from .registry import get_chain_type
from .rhythm_models import (
    CachedChainData,
    CachedChainStat,
    CachedTotals,
    parse_cached_chain_data,
)
from .store import Rhythm, list_rhythms, load_rhythm, save_cached_chain_stats
from .tiers import (
    Nudge,
    WeekProgress,
    calculate_week_progress,
    generate_nudge,
    get_tier_info,
    tier_for_days,
)
from .totals import JourneyStage, RhythmTotals, calculate_totals, journey_stage
from .utils import local_date_for_timezone, timestamp_key, week_start

logger = logging.getLogger(__name__)

CacheStatus = Literal["hit", "miss", "stale"]


@dataclass(frozen=True)
class RhythmProgress:
    rhythm_id: str
    name: str
    week_progress: WeekProgress
    nudge: Nudge | None
    chain: ChainStat
    days: list[DayStatus]
    totals: RhythmTotals
    journey_stage: JourneyStage
    encouragement: str
    cache_status: CacheStatus

    def to_dict(self) -> dict[str, Any]:
        info = get_chain_type(self.chain.chain_type)
        return {
            "rhythm_id": self.rhythm_id,
            "name": self.name,
            "week_progress": {
                **self.week_progress.to_dict(),
                "nudge": self.nudge.to_dict() if self.nudge else None,
            },
            "chain": {
                **self.chain.to_dict(),
                "label": info.label if info else self.chain.chain_type,
                "description": info.description if info else None,
            },
            "days": [d.to_dict() for d in self.days],
            "totals": self.totals.to_dict(),
            "journey_stage": self.journey_stage,
            "encouragement": self.encouragement,
            "cache_status": self.cache_status,
        }


@dataclass(frozen=True)
class RhythmSummary:
    rhythm_id: str
    name: str
    chain_type: str
    journey_stage: JourneyStage
    current_tier: str
    current_tier_label: str
    chain_current: int
    chain_longest: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "rhythm_id": self.rhythm_id,
            "name": self.name,
            "chain_type": self.chain_type,
            "journey_stage": self.journey_stage,
            "current_tier": self.current_tier,
            "current_tier_label": self.current_tier_label,
            "chain_current": self.chain_current,
            "chain_longest": self.chain_longest,
        }


def _cache_is_valid(
    cached: CachedChainData | None,
    chain_type: str,
    watermark_key: str | None,
    fingerprint: str,
    today: date,
) -> bool:
    if cached is None:
        return False
    if cached.computed_for != today:
        return False
    if cached.last_entry_timestamp != watermark_key:
        return False
    if cached.config_fingerprint != fingerprint:
        return False
    return cached.chain_for(chain_type) is not None


def _from_cache(cached: CachedChainData, chain_type: str) -> tuple[ChainStat, RhythmTotals]:
    chain = cached.chain_for(chain_type)
    return ChainStat(**chain.model_dump()), RhythmTotals(**cached.totals.model_dump())


def _target_tier(rhythm: Rhythm) -> str | None:
    if rhythm.config.frequency == "daily":
        return "daily"
    if rhythm.config.frequency_target is not None:
        return tier_for_days(rhythm.config.frequency_target)
    return None


async def _recompute_full_history(
    conn: psycopg.AsyncConnection[Any],
    rhythm: Rhythm,
    *,
    today: date,
    timezone_name: str,
) -> tuple[list[ChainStat], RhythmTotals, int]:
    """Run the whole pipeline over every matching entry."""
    entries = await find_matching_entries(
        conn, rhythm.user_id, rhythm.criteria, None, timezone_name=timezone_name
    )
    days: list[DayStatus] = []
    if entries:
        first_day = local_date_for_timezone(entries[0].timestamp, timezone_name)
        days = reduce_day_statuses(
            entries,
            rhythm.config.threshold,
            DateRange(min(first_day, today), today),
            goal_type=rhythm.config.goal_type,
            timezone_name=timezone_name,
        )
    chains = calculate_all_chain_stats(
        days,
        chain_target_minutes=rhythm.config.chain_target_minutes,
        today=today,
    )
    if not any(c.chain_type == rhythm.chain_type for c in chains):
        chains.append(
            calculate_chain_stat(
                days,
                rhythm.chain_type,
                chain_target_minutes=rhythm.config.chain_target_minutes,
                today=today,
            )
        )
    totals = calculate_totals(entries, days, timezone_name=timezone_name)
    return chains, totals, len(entries)


async def _write_cache(
    conn: psycopg.AsyncConnection[Any],
    rhythm: Rhythm,
    data: CachedChainData,
) -> None:
    """Persist the blob inside a savepoint. Failures are logged, never raised."""
    try:
        async with conn.transaction():
            await save_cached_chain_stats(conn, rhythm.id, data)
    except (UpstreamFailure, psycopg.Error) as exc:
        record_cache_write_failure()
        logger.warning(
            "Cache write failed for rhythm %s: %s",
            rhythm.id,
            exc,
            extra={"rhythm_id": rhythm.id},
        )


async def resolve_chain_and_totals(
    conn: psycopg.AsyncConnection[Any],
    rhythm: Rhythm,
    *,
    now: datetime,
    config: Config,
    force_refresh: bool = False,
) -> tuple[ChainStat, RhythmTotals, CacheStatus]:
    """Full-history chain and totals through the cache.

    A valid blob is served as-is. Otherwise everything is recomputed and the
    blob rewritten. When recomputation fails, a previous blob holding the
    configured chain is served stale; without one the error propagates.
    """
    tz = config.timezone_name
    today = local_date_for_timezone(now, tz)
    fingerprint = rhythm.fingerprint(tz)
    cached = parse_cached_chain_data(rhythm.cached_chain_stats)

    # Savepoint: a failed read must leave the connection usable.
    try:
        async with conn.transaction():
            watermark_key = timestamp_key(
                await latest_matching_timestamp(conn, rhythm.user_id, rhythm.criteria)
            )
            if (
                config.cache_enabled
                and not force_refresh
                and _cache_is_valid(cached, rhythm.chain_type, watermark_key, fingerprint, today)
            ):
                record_cache_hit()
                chain, totals = _from_cache(cached, rhythm.chain_type)
                return chain, totals, "hit"

            record_cache_miss()
            started = time.monotonic()
            chains, totals, entry_count = await _recompute_full_history(
                conn, rhythm, today=today, timezone_name=tz
            )
    except RhythmError as exc:
        if cached is None or cached.chain_for(rhythm.chain_type) is None:
            raise
        record_stale_cache_served()
        logger.warning(
            "Recompute failed for rhythm %s, serving stale cache: %s",
            rhythm.id,
            exc,
            extra={"rhythm_id": rhythm.id, "rhythm_cache_status": "stale"},
        )
        chain, totals = _from_cache(cached, rhythm.chain_type)
        return chain, totals, "stale"

    duration_ms = (time.monotonic() - started) * 1000
    record_recompute(duration_ms, entry_count)
    logger.info(
        "Recomputed rhythm %s over %d entries in %.1fms",
        rhythm.id,
        entry_count,
        duration_ms,
        extra={
            "rhythm_id": rhythm.id,
            "rhythm_cache_status": "miss",
            "rhythm_duration_ms": round(duration_ms, 1),
            "rhythm_entry_count": entry_count,
        },
    )

    if config.cache_enabled:
        data = CachedChainData(
            chains=[CachedChainStat(**c.to_dict()) for c in chains],
            totals=CachedTotals(**totals.to_dict()),
            last_calculated_at=now,
            computed_for=today,
            last_entry_timestamp=watermark_key,
            config_fingerprint=fingerprint,
        )
        await _write_cache(conn, rhythm, data)

    chain = next(c for c in chains if c.chain_type == rhythm.chain_type)
    return chain, totals, "miss"


async def _window_days(
    conn: psycopg.AsyncConnection[Any],
    rhythm: Rhythm,
    *,
    today: date,
    num_days: int,
    timezone_name: str,
) -> tuple[list[DayStatus], WeekProgress]:
    """Fresh day statuses for the trailing window plus this week's progress.

    The fetched range always reaches back to Monday so week progress is
    complete even for windows shorter than a week.
    """
    window = DateRange.trailing(today, num_days)
    fetch_range = DateRange(min(window.start, week_start(today)), today)
    entries = await find_matching_entries(
        conn, rhythm.user_id, rhythm.criteria, fetch_range, timezone_name=timezone_name
    )
    days = reduce_day_statuses(
        entries,
        rhythm.config.threshold,
        fetch_range,
        goal_type=rhythm.config.goal_type,
        timezone_name=timezone_name,
    )
    return slice_days(days, window.start, today), calculate_week_progress(days, today)


async def _encouragement_for(
    conn: psycopg.AsyncConnection[Any],
    rhythm: Rhythm,
    stage: JourneyStage,
    week: WeekProgress,
    nudge: Nudge | None,
    rng: random.Random | None,
) -> str:
    tier = get_tier_info(week.achieved_tier)
    context = "general" if week.achieved_tier == "starting" else "tier_achieved"
    try:
        pool = await load_encouragement_pool(conn, stage)
    except UpstreamFailure as exc:
        logger.warning(
            "Encouragement pool unavailable for rhythm %s: %s",
            rhythm.id,
            exc,
            extra={"rhythm_id": rhythm.id},
        )
        return stage_fallback(stage)

    message = select_message(
        pool,
        stage,
        context,
        rhythm.activity_type,
        week.achieved_tier,
        rng=rng,
    )
    if message is None:
        return stage_fallback(stage)
    return fill_placeholders(
        message,
        {"tier": tier.label, "remaining": nudge.days_needed if nudge else None},
    )


async def get_progress(
    conn: psycopg.AsyncConnection[Any],
    rhythm_id: str,
    user_id: str,
    *,
    now: datetime | None = None,
    config: Config | None = None,
    force_refresh: bool = False,
    rng: random.Random | None = None,
) -> RhythmProgress:
    config = config or Config()
    now = now or datetime.now(timezone.utc)
    tz = config.timezone_name
    today = local_date_for_timezone(now, tz)

    rhythm = await load_rhythm(conn, rhythm_id, user_id)
    chain, totals, cache_status = await resolve_chain_and_totals(
        conn, rhythm, now=now, config=config, force_refresh=force_refresh
    )
    days, week = await _window_days(
        conn,
        rhythm,
        today=today,
        num_days=config.visualization_window_days,
        timezone_name=tz,
    )
    nudge = generate_nudge(week, _target_tier(rhythm))
    stage = journey_stage(totals.weeks_active)
    encouragement = await _encouragement_for(conn, rhythm, stage, week, nudge, rng)

    return RhythmProgress(
        rhythm_id=rhythm.id,
        name=rhythm.name,
        week_progress=week,
        nudge=nudge,
        chain=chain,
        days=days,
        totals=totals,
        journey_stage=stage,
        encouragement=encouragement,
        cache_status=cache_status,
    )


async def list_summaries(
    conn: psycopg.AsyncConnection[Any],
    user_id: str,
    *,
    now: datetime | None = None,
    config: Config | None = None,
) -> list[RhythmSummary]:
    """One summary per non-deleted rhythm, newest first."""
    config = config or Config()
    now = now or datetime.now(timezone.utc)
    tz = config.timezone_name
    today = local_date_for_timezone(now, tz)

    summaries: list[RhythmSummary] = []
    for rhythm in await list_rhythms(conn, user_id):
        chain, totals, _ = await resolve_chain_and_totals(conn, rhythm, now=now, config=config)
        _, week = await _window_days(
            conn,
            rhythm,
            today=today,
            num_days=config.summary_window_days,
            timezone_name=tz,
        )
        summaries.append(
            RhythmSummary(
                rhythm_id=rhythm.id,
                name=rhythm.name,
                chain_type=rhythm.chain_type,
                journey_stage=journey_stage(totals.weeks_active),
                current_tier=week.achieved_tier,
                current_tier_label=get_tier_info(week.achieved_tier).label,
                chain_current=chain.current,
                chain_longest=chain.longest,
            )
        )
    logger.debug("Built %d rhythm summaries for user=%s", len(summaries), user_id)
    return summaries
