import logging
from collections.abc import Callable, Sequence
from dataclasses import asdict, dataclass
from typing import Any, Literal

from .day_status import DayStatus

logger = logging.getLogger(__name__)

ChainUnit = Literal["days", "weeks", "months"]
UnitOutcome = Literal["hit", "miss", "pending"]

_VALID_UNITS: frozenset[str] = frozenset({"days", "weeks", "months"})


@dataclass(frozen=True)
class ChainTypeInfo:
    """Metadata declared by a chain rule at registration time."""

    name: str
    unit: ChainUnit
    label: str
    short_label: str
    description: str
    min_days_per_unit: int | None = None
    requires_target: bool = False


# Rule signature:
#   rule(unit_days, info, target_seconds, days_after_today, in_progress) -> UnitOutcome
# ``unit_days`` holds the observed days of one unit (ending at today for the
# in-progress unit); ``days_after_today`` counts unit days not yet observed.
ChainRuleFn = Callable[
    [Sequence[DayStatus], ChainTypeInfo, int | None, int, bool],
    UnitOutcome,
]

# Chain type name -> (metadata, rule). Insertion order is the display order.
_chain_types: dict[str, tuple[ChainTypeInfo, ChainRuleFn]] = {}


def chain_type(
    name: str,
    *,
    unit: ChainUnit,
    label: str,
    short_label: str,
    description: str,
    min_days_per_unit: int | None = None,
    requires_target: bool = False,
) -> Callable[[ChainRuleFn], ChainRuleFn]:
    """Register a unit rule under a chain type name.

    The same rule may be registered under several names with different
    metadata (e.g. weekly_high and weekly_low share the day-count rule).

    Usage:
        @chain_type("weekly_low", unit="weeks", label="Weekly (Regular)",
                    short_label="3x/wk", description="3+ days per week",
                    min_days_per_unit=3)
        def _qualifying_days_rule(unit_days, info, target_seconds, days_after_today, in_progress):
            ...
    """
    if unit not in _VALID_UNITS:
        raise ValueError(f"Invalid unit {unit!r} for chain type {name!r}")
    if min_days_per_unit is None and not requires_target:
        raise ValueError(
            f"Chain type {name!r} needs min_days_per_unit or requires_target"
        )

    info = ChainTypeInfo(
        name=name,
        unit=unit,
        label=label,
        short_label=short_label,
        description=description,
        min_days_per_unit=min_days_per_unit,
        requires_target=requires_target,
    )

    def decorator(fn: ChainRuleFn) -> ChainRuleFn:
        if name in _chain_types:
            raise ValueError(f"Duplicate chain type {name!r}")
        _chain_types[name] = (info, fn)
        logger.debug("Registered chain rule %s for chain_type=%s", fn.__name__, name)
        return fn

    return decorator


def get_chain_type(name: str) -> ChainTypeInfo | None:
    entry = _chain_types.get(name)
    return entry[0] if entry else None


def get_chain_rule(name: str) -> ChainRuleFn | None:
    entry = _chain_types.get(name)
    return entry[1] if entry else None


def registered_chain_types() -> list[str]:
    return list(_chain_types.keys())


def get_chain_type_metadata() -> dict[str, dict[str, Any]]:
    """All declared chain type metadata, keyed by name."""
    return {name: asdict(info) for name, (info, _) in _chain_types.items()}
