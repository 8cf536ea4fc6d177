"""Error taxonomy for the rhythm engine.

Codes are stable so request handlers can map them onto transport statuses:
- not_found: rhythm missing, soft-deleted, or owned by another user
- invalid_configuration: rejected at configuration-write time
- upstream_failure: entry store, rhythm store or message pool failed
"""

from __future__ import annotations

from typing import Literal

ErrorCode = Literal["not_found", "invalid_configuration", "upstream_failure"]
UpstreamSource = Literal["entries", "rhythms", "encouragements"]


class RhythmError(Exception):
    code: ErrorCode

    def __init__(
        self,
        *,
        code: ErrorCode,
        message: str,
        field: str | None = None,
    ) -> None:
        super().__init__(message)
        self.code = code
        self.message = message
        self.field = field

    def to_dict(self) -> dict[str, str | None]:
        return {"code": self.code, "message": self.message, "field": self.field}


class RhythmNotFound(RhythmError):
    def __init__(self, rhythm_id: str) -> None:
        super().__init__(code="not_found", message=f"Rhythm {rhythm_id} not found")
        self.rhythm_id = rhythm_id


class InvalidConfiguration(RhythmError):
    def __init__(self, message: str, *, field: str | None = None) -> None:
        super().__init__(code="invalid_configuration", message=message, field=field)


class UpstreamFailure(RhythmError):
    """A collaborator (database table) failed. Never retried here."""

    def __init__(self, source: UpstreamSource, message: str) -> None:
        super().__init__(code="upstream_failure", message=message)
        self.source = source
