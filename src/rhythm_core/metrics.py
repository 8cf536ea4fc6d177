"""In-memory engine metrics.

Requests run on a single event loop, so plain dicts are enough.
"""

import time

_start_time = time.monotonic()

_metrics: dict = {
    "cache_hits": 0,
    "cache_misses": 0,
    "cache_write_failures": 0,
    "stale_cache_served": 0,
    "recomputes": {
        "count": 0,
        "total_duration_ms": 0.0,
        "total_entries": 0,
    },
}


def record_cache_hit() -> None:
    _metrics["cache_hits"] += 1


def record_cache_miss() -> None:
    _metrics["cache_misses"] += 1


def record_cache_write_failure() -> None:
    _metrics["cache_write_failures"] += 1


def record_stale_cache_served() -> None:
    _metrics["stale_cache_served"] += 1


def record_recompute(duration_ms: float, entry_count: int) -> None:
    """Record one full-history recomputation with timing."""
    r = _metrics["recomputes"]
    r["count"] += 1
    r["total_duration_ms"] += duration_ms
    r["total_entries"] += entry_count


def reset_metrics() -> None:
    _metrics["cache_hits"] = 0
    _metrics["cache_misses"] = 0
    _metrics["cache_write_failures"] = 0
    _metrics["stale_cache_served"] = 0
    _metrics["recomputes"] = {"count": 0, "total_duration_ms": 0.0, "total_entries": 0}


def get_metrics() -> dict:
    """Return a snapshot of current metrics."""
    return {
        "uptime_seconds": round(time.monotonic() - _start_time, 1),
        "cache_hits": _metrics["cache_hits"],
        "cache_misses": _metrics["cache_misses"],
        "cache_write_failures": _metrics["cache_write_failures"],
        "stale_cache_served": _metrics["stale_cache_served"],
        "recomputes": dict(_metrics["recomputes"]),
    }
