"""Rhythm models: Pydantic validation for rhythm configuration and cache blobs.

RhythmConfig guards every configuration write. An invalid combination (for
example a target chain type without a target) is rejected here, so the read
path never has to guess.

CachedChainData is the shape of ``rhythms.cached_chain_stats``. Blobs that do
not parse are treated as absent rather than trusted. ``computed_for`` is the
local date the chains were computed on: the unit containing that day was
still in progress, so the blob only holds for that day.
"""

import hashlib
import json
import logging
from collections.abc import Mapping
from datetime import date, datetime
from typing import Any, Literal

from pydantic import BaseModel, Field, ValidationError, ValidationInfo, field_validator, model_validator

from .chains import DEFAULT_CHAIN_TYPE
from .registry import get_chain_type, registered_chain_types

logger = logging.getLogger(__name__)

MAX_DURATION_THRESHOLD_SECONDS = 86400
DEFAULT_DURATION_THRESHOLD_SECONDS = 360
MAX_GOAL_VALUE = 10000

# Fields whose change alters computed chains or totals.
FINGERPRINT_FIELDS: tuple[str, ...] = (
    "match_type",
    "match_category",
    "match_subcategory",
    "match_name",
    "goal_type",
    "duration_threshold_seconds",
    "goal_value",
    "chain_type",
    "chain_target_minutes",
)


class RhythmConfig(BaseModel):
    """User-editable rhythm configuration.

    Example: "Meditate most days" matching category=mindfulness with a
    6-minute daily bar on the weekly_low chain.
    """

    name: str
    description: str | None = None
    match_type: str | None = None
    match_category: str | None = None
    match_subcategory: str | None = None
    match_name: str | None = None
    goal_type: Literal["duration", "count"] = "duration"
    duration_threshold_seconds: int = DEFAULT_DURATION_THRESHOLD_SECONDS
    goal_value: int = 1
    frequency: Literal["daily", "weekly", "monthly"] = "weekly"
    frequency_target: int | None = None
    chain_type: str = DEFAULT_CHAIN_TYPE
    chain_target_minutes: int | None = Field(default=None, validate_default=True)

    @field_validator("name")
    @classmethod
    def name_not_empty(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("name must not be empty")
        return v

    @field_validator("match_type", "match_category", "match_subcategory", "match_name")
    @classmethod
    def blank_criteria_are_wildcards(cls, v: str | None) -> str | None:
        if v is None:
            return None
        v = v.strip()
        return v or None

    @field_validator("duration_threshold_seconds")
    @classmethod
    def threshold_in_range(cls, v: int) -> int:
        if not 0 <= v <= MAX_DURATION_THRESHOLD_SECONDS:
            raise ValueError(
                f"duration_threshold_seconds must be between 0 and {MAX_DURATION_THRESHOLD_SECONDS}"
            )
        return v

    @field_validator("goal_value")
    @classmethod
    def goal_value_in_range(cls, v: int) -> int:
        if not 0 <= v <= MAX_GOAL_VALUE:
            raise ValueError(f"goal_value must be between 0 and {MAX_GOAL_VALUE}")
        return v

    @field_validator("frequency_target")
    @classmethod
    def frequency_target_in_range(cls, v: int | None) -> int | None:
        if v is not None and not 1 <= v <= 7:
            raise ValueError("frequency_target must be between 1 and 7")
        return v

    @field_validator("chain_type")
    @classmethod
    def chain_type_registered(cls, v: str) -> str:
        if get_chain_type(v) is None:
            raise ValueError(
                f"Unknown chain_type {v!r}. Expected one of {registered_chain_types()}"
            )
        return v

    @field_validator("chain_target_minutes")
    @classmethod
    def chain_target_matches_chain_type(cls, v: int | None, info: ValidationInfo) -> int | None:
        if v is not None and v < 1:
            raise ValueError("chain_target_minutes must be >= 1")
        chain_info = get_chain_type(info.data.get("chain_type", ""))
        if v is None and chain_info is not None and chain_info.requires_target:
            raise ValueError(f"chain_type '{chain_info.name}' requires chain_target_minutes")
        return v

    @model_validator(mode="after")
    def target_chain_needs_duration_goal(self) -> "RhythmConfig":
        info = get_chain_type(self.chain_type)
        if info is not None and info.requires_target and self.goal_type != "duration":
            raise ValueError(f"chain_type '{self.chain_type}' requires goal_type 'duration'")
        return self

    @property
    def threshold(self) -> int:
        """Per-day bar in the goal's unit (seconds or count)."""
        if self.goal_type == "count":
            return self.goal_value
        return self.duration_threshold_seconds


def config_fingerprint(values: Mapping[str, Any], timezone_name: str) -> str:
    """Stable hash of everything that affects cached chains and totals."""
    material = {field: values.get(field) for field in FINGERPRINT_FIELDS}
    material["timezone_name"] = timezone_name
    encoded = json.dumps(material, sort_keys=True, default=str).encode()
    return hashlib.sha256(encoded).hexdigest()[:16]


class CachedChainStat(BaseModel):
    chain_type: str
    unit: Literal["days", "weeks", "months"]
    current: int
    longest: int

    @model_validator(mode="after")
    def current_within_longest(self) -> "CachedChainStat":
        if self.current < 0 or self.longest < 0:
            raise ValueError("chain counts must be >= 0")
        if self.current > self.longest:
            raise ValueError("current chain cannot exceed longest")
        return self


class CachedTotals(BaseModel):
    total_sessions: int = 0
    total_seconds: int = 0
    total_hours: float = 0.0
    first_entry_date: str | None = None
    weeks_active: int = 0
    months_active: int = 0


class CachedChainData(BaseModel):
    chains: list[CachedChainStat]
    totals: CachedTotals
    last_calculated_at: datetime
    computed_for: date | None = None
    last_entry_timestamp: str | None = None
    config_fingerprint: str | None = None

    def chain_for(self, chain_type: str) -> CachedChainStat | None:
        for chain in self.chains:
            if chain.chain_type == chain_type:
                return chain
        return None


def parse_cached_chain_data(blob: Any) -> CachedChainData | None:
    """Parse a stored blob (dict or JSON text). Malformed blobs become None."""
    if blob is None:
        return None
    if isinstance(blob, (str, bytes)):
        try:
            blob = json.loads(blob)
        except ValueError:
            logger.warning("Ignoring cached_chain_stats: not valid JSON")
            return None
    if not isinstance(blob, dict):
        return None
    try:
        return CachedChainData.model_validate(blob)
    except ValidationError as exc:
        logger.warning("Ignoring malformed cached_chain_stats: %s", exc.errors()[:3])
        return None
