"""Rhythm persistence: load, list, create, update, soft delete, cache blob write.

Rhythms are scoped to their owner. A missing, soft-deleted or foreign rhythm
is indistinguishable to callers: all raise RhythmNotFound. Soft delete only
marks the rhythm; entries are never touched.
"""

import logging
import uuid
from collections.abc import Mapping
from dataclasses import dataclass
from datetime import datetime
from typing import Any

import psycopg
from psycopg import sql
from psycopg.rows import dict_row
from psycopg.types.json import Json
from pydantic import ValidationError

from .encouragement import GENERAL_ACTIVITY
from .entry_matcher import MatchCriteria
from .errors import InvalidConfiguration, RhythmNotFound, UpstreamFailure
from .rhythm_models import CachedChainData, RhythmConfig, config_fingerprint

logger = logging.getLogger(__name__)

CONFIG_FIELDS: tuple[str, ...] = tuple(RhythmConfig.model_fields.keys())

RHYTHM_COLUMNS: tuple[str, ...] = (
    "id",
    "user_id",
    *CONFIG_FIELDS,
    "cached_chain_stats",
    "created_at",
    "updated_at",
)

_SELECT_COLUMNS = sql.SQL(", ").join(sql.Identifier(c) for c in RHYTHM_COLUMNS)


@dataclass(frozen=True)
class Rhythm:
    id: str
    user_id: str
    config: RhythmConfig
    cached_chain_stats: Any = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> "Rhythm":
        values = {k: row[k] for k in CONFIG_FIELDS if k in row and row[k] is not None}
        return cls(
            id=str(row["id"]),
            user_id=str(row["user_id"]),
            # Stored rows were validated on write.
            config=RhythmConfig.model_construct(**values),
            cached_chain_stats=row.get("cached_chain_stats"),
            created_at=row.get("created_at"),
            updated_at=row.get("updated_at"),
        )

    @property
    def name(self) -> str:
        return self.config.name

    @property
    def chain_type(self) -> str:
        return self.config.chain_type

    @property
    def criteria(self) -> MatchCriteria:
        return MatchCriteria.from_mapping(self.config.model_dump())

    @property
    def activity_type(self) -> str:
        return self.config.match_category or GENERAL_ACTIVITY

    def fingerprint(self, timezone_name: str) -> str:
        return config_fingerprint(self.config.model_dump(), timezone_name)


def _invalid_configuration(exc: ValidationError) -> InvalidConfiguration:
    first = exc.errors()[0]
    loc = first.get("loc") or ()
    field_name = str(loc[0]) if loc else None
    message = first.get("msg", str(exc)).removeprefix("Value error, ")
    return InvalidConfiguration(message, field=field_name)


def validate_config(values: Mapping[str, Any]) -> RhythmConfig:
    """Validate a full configuration payload or raise InvalidConfiguration."""
    unknown = sorted(set(values) - set(CONFIG_FIELDS))
    if unknown:
        raise InvalidConfiguration(f"Unknown rhythm fields: {unknown}", field=unknown[0])
    try:
        return RhythmConfig.model_validate(dict(values))
    except ValidationError as exc:
        raise _invalid_configuration(exc) from exc


async def load_rhythm(
    conn: psycopg.AsyncConnection[Any],
    rhythm_id: str,
    user_id: str,
) -> Rhythm:
    query = sql.SQL(
        "SELECT {cols} FROM rhythms WHERE id = %s AND user_id = %s AND deleted_at IS NULL"
    ).format(cols=_SELECT_COLUMNS)
    try:
        async with conn.cursor(row_factory=dict_row) as cur:
            await cur.execute(query, (rhythm_id, user_id))
            row = await cur.fetchone()
    except psycopg.Error as exc:
        raise UpstreamFailure("rhythms", f"Rhythm lookup failed: {exc}") from exc
    if row is None:
        raise RhythmNotFound(rhythm_id)
    return Rhythm.from_row(row)


async def list_rhythms(conn: psycopg.AsyncConnection[Any], user_id: str) -> list[Rhythm]:
    """Non-deleted rhythms of the user, newest first."""
    query = sql.SQL(
        "SELECT {cols} FROM rhythms WHERE user_id = %s AND deleted_at IS NULL "
        "ORDER BY created_at DESC, id DESC"
    ).format(cols=_SELECT_COLUMNS)
    try:
        async with conn.cursor(row_factory=dict_row) as cur:
            await cur.execute(query, (user_id,))
            rows = await cur.fetchall()
    except psycopg.Error as exc:
        raise UpstreamFailure("rhythms", f"Rhythm listing failed: {exc}") from exc
    return [Rhythm.from_row(r) for r in rows]


async def create_rhythm(
    conn: psycopg.AsyncConnection[Any],
    user_id: str,
    payload: Mapping[str, Any],
) -> Rhythm:
    config = validate_config(payload)
    values = config.model_dump()
    columns = ["id", "user_id", *CONFIG_FIELDS]
    params = [str(uuid.uuid4()), user_id, *(values[f] for f in CONFIG_FIELDS)]
    query = sql.SQL(
        "INSERT INTO rhythms ({cols}) VALUES ({vals}) RETURNING {ret}"
    ).format(
        cols=sql.SQL(", ").join(sql.Identifier(c) for c in columns),
        vals=sql.SQL(", ").join(sql.Placeholder() for _ in columns),
        ret=_SELECT_COLUMNS,
    )
    try:
        async with conn.cursor(row_factory=dict_row) as cur:
            await cur.execute(query, params)
            row = await cur.fetchone()
    except psycopg.Error as exc:
        raise UpstreamFailure("rhythms", f"Rhythm insert failed: {exc}") from exc

    logger.info(
        "Created rhythm %s for user=%s chain_type=%s",
        row["id"],
        user_id,
        config.chain_type,
        extra={"rhythm_id": str(row["id"])},
    )
    return Rhythm.from_row(row)


async def update_rhythm(
    conn: psycopg.AsyncConnection[Any],
    rhythm_id: str,
    user_id: str,
    changes: Mapping[str, Any],
) -> Rhythm:
    """Apply a partial configuration change. Always clears the cached blob."""
    current = await load_rhythm(conn, rhythm_id, user_id)
    merged = {**current.config.model_dump(), **dict(changes)}
    config = validate_config(merged)
    values = config.model_dump()

    assignments = [
        sql.SQL("{} = %s").format(sql.Identifier(f)) for f in CONFIG_FIELDS
    ]
    assignments.append(sql.SQL("cached_chain_stats = NULL"))
    assignments.append(sql.SQL("updated_at = NOW()"))
    query = sql.SQL(
        "UPDATE rhythms SET {assign} WHERE id = %s AND user_id = %s AND deleted_at IS NULL "
        "RETURNING {ret}"
    ).format(assign=sql.SQL(", ").join(assignments), ret=_SELECT_COLUMNS)
    params = [*(values[f] for f in CONFIG_FIELDS), rhythm_id, user_id]
    try:
        async with conn.cursor(row_factory=dict_row) as cur:
            await cur.execute(query, params)
            row = await cur.fetchone()
    except psycopg.Error as exc:
        raise UpstreamFailure("rhythms", f"Rhythm update failed: {exc}") from exc
    if row is None:
        raise RhythmNotFound(rhythm_id)

    logger.info(
        "Updated rhythm %s fields=%s (cache cleared)",
        rhythm_id,
        sorted(changes),
        extra={"rhythm_id": rhythm_id},
    )
    return Rhythm.from_row(row)


async def soft_delete_rhythm(
    conn: psycopg.AsyncConnection[Any],
    rhythm_id: str,
    user_id: str,
) -> None:
    try:
        async with conn.cursor(row_factory=dict_row) as cur:
            await cur.execute(
                """
                UPDATE rhythms
                SET deleted_at = NOW(), updated_at = NOW()
                WHERE id = %s AND user_id = %s AND deleted_at IS NULL
                RETURNING id
                """,
                (rhythm_id, user_id),
            )
            row = await cur.fetchone()
    except psycopg.Error as exc:
        raise UpstreamFailure("rhythms", f"Rhythm delete failed: {exc}") from exc
    if row is None:
        raise RhythmNotFound(rhythm_id)
    logger.info("Soft-deleted rhythm %s", rhythm_id, extra={"rhythm_id": rhythm_id})


async def save_cached_chain_stats(
    conn: psycopg.AsyncConnection[Any],
    rhythm_id: str,
    data: CachedChainData,
) -> None:
    """Overwrite the cache blob. Last writer wins."""
    try:
        async with conn.cursor() as cur:
            await cur.execute(
                "UPDATE rhythms SET cached_chain_stats = %s WHERE id = %s",
                (Json(data.model_dump(mode="json")), rhythm_id),
            )
    except psycopg.Error as exc:
        raise UpstreamFailure("rhythms", f"Cache write failed: {exc}") from exc
