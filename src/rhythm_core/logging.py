"""Structured log output for processes that embed the rhythm engine.

Modules log through ``logging.getLogger(__name__)`` and attach ``rhythm_*``
extras (rhythm id, cache status, recompute duration, entry count). The host
calls ``setup_logging(config)`` once at startup to route the ``rhythm_core``
logger tree to stderr, as JSON lines or plain text per ``RHYTHM_LOG_FORMAT``.
"""

import json
import logging
import sys
from datetime import datetime, timezone
from typing import IO, Any

from .config import LOG_FORMATS, Config

LOGGER_NAME = "rhythm_core"
EXTRA_PREFIX = "rhythm_"

_TEXT_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def rhythm_extras(record: logging.LogRecord) -> dict[str, Any]:
    return {k: v for k, v in vars(record).items() if k.startswith(EXTRA_PREFIX)}


class JSONFormatter(logging.Formatter):
    """One JSON object per record with the rhythm extras as top-level keys."""

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        payload.update(rhythm_extras(record))
        if record.exc_info and record.exc_info[1] is not None:
            payload["exception"] = self.formatException(record.exc_info)
        return json.dumps(payload, default=str)


class TextFormatter(logging.Formatter):
    """Plain lines; rhythm extras are appended as ``key=value`` pairs."""

    def __init__(self) -> None:
        super().__init__(_TEXT_FORMAT)

    def format(self, record: logging.LogRecord) -> str:
        line = super().format(record)
        extras = rhythm_extras(record)
        if not extras:
            return line
        pairs = " ".join(f"{k}={v}" for k, v in sorted(extras.items()))
        head, sep, tail = line.partition("\n")
        return f"{head} [{pairs}]{sep}{tail}"


def setup_logging(
    config: Config | None = None,
    *,
    level: int = logging.INFO,
    stream: IO[str] | None = None,
) -> logging.Handler:
    """Install one stream handler on the ``rhythm_core`` logger.

    Calling it again replaces the handler it installed before. Records stop
    propagating to the root logger so host handlers do not print them twice.
    """
    config = config or Config.from_env()
    if config.log_format not in LOG_FORMATS:
        raise ValueError(f"Unknown log format: {config.log_format!r}")

    logger = logging.getLogger(LOGGER_NAME)
    for handler in logger.handlers[:]:
        if getattr(handler, "_rhythm_handler", False):
            logger.removeHandler(handler)

    handler = logging.StreamHandler(stream or sys.stderr)
    handler.setLevel(level)
    handler.setFormatter(JSONFormatter() if config.log_format == "json" else TextFormatter())
    handler._rhythm_handler = True  # type: ignore[attr-defined]

    logger.addHandler(handler)
    logger.setLevel(level)
    logger.propagate = False
    return handler
