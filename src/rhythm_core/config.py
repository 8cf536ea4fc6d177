import os
from dataclasses import dataclass

from .utils import DEFAULT_TIMEZONE, normalize_timezone_name

_TRUE_VALUES = {"1", "true", "yes", "on"}
_FALSE_VALUES = {"0", "false", "no", "off"}
LOG_FORMATS = ("json", "text")


def _parse_bool(name: str, raw: str) -> bool:
    value = raw.strip().lower()
    if value in _TRUE_VALUES:
        return True
    if value in _FALSE_VALUES:
        return False
    raise RuntimeError(f"{name} must be a boolean, got {raw!r}")


def _parse_positive_int(name: str, raw: str) -> int:
    try:
        value = int(raw)
    except ValueError as exc:
        raise RuntimeError(f"{name} must be an integer, got {raw!r}") from exc
    if value < 1:
        raise RuntimeError(f"{name} must be >= 1, got {value}")
    return value


@dataclass(frozen=True)
class Config:
    visualization_window_days: int = 365
    summary_window_days: int = 7
    timezone_name: str = DEFAULT_TIMEZONE
    cache_enabled: bool = True
    log_format: str = "json"

    @classmethod
    def from_env(cls) -> "Config":
        raw_timezone = os.environ.get("RHYTHM_TIMEZONE", DEFAULT_TIMEZONE)
        timezone_name = normalize_timezone_name(raw_timezone)
        if timezone_name is None:
            raise RuntimeError(f"RHYTHM_TIMEZONE is not a valid IANA timezone: {raw_timezone!r}")

        log_format = os.environ.get("RHYTHM_LOG_FORMAT", "json").strip().lower()
        if log_format not in LOG_FORMATS:
            raise RuntimeError(f"RHYTHM_LOG_FORMAT must be one of {LOG_FORMATS}, got {log_format!r}")

        return cls(
            visualization_window_days=_parse_positive_int(
                "RHYTHM_VISUALIZATION_DAYS",
                os.environ.get("RHYTHM_VISUALIZATION_DAYS", "365"),
            ),
            summary_window_days=_parse_positive_int(
                "RHYTHM_SUMMARY_WINDOW_DAYS",
                os.environ.get("RHYTHM_SUMMARY_WINDOW_DAYS", "7"),
            ),
            timezone_name=timezone_name,
            cache_enabled=_parse_bool(
                "RHYTHM_CACHE_ENABLED",
                os.environ.get("RHYTHM_CACHE_ENABLED", "true"),
            ),
            log_format=log_format,
        )
