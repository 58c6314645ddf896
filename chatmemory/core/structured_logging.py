"""Structured logging built on structlog and the standard library.

Every module obtains its logger through `get_logger(__name__)` and logs with
key/value context rather than interpolated strings:

    logger = get_logger(__name__)
    logger.info("Memory stored", index_name=index, memory_id=key)

`configure_logging()` is called once by entry points (the CLI, a hosting
process). Loggers are plain stdlib loggers underneath, so per-module levels set
with `logging.getLogger(name).setLevel(...)` keep working.
"""

from __future__ import annotations

import logging
import sys
from typing import Any, Final

import structlog

DEFAULT_LOG_LEVEL: Final[str] = "INFO"
LOG_FORMAT: Final[str] = "%(message)s"


def _shared_processors() -> list[Any]:
    return [
        structlog.stdlib.filter_by_level,
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]


def configure_logging(level: str = DEFAULT_LOG_LEVEL, json_logs: bool = False) -> None:
    """Configure structlog and the stdlib root logger.

    Args:
        level: Root log level name (e.g. "INFO", "DEBUG").
        json_logs: Render one JSON object per line instead of console output.

    Raises:
        ValueError: If `level` is not a known logging level name.
    """
    numeric = logging.getLevelName(level.upper())
    if not isinstance(numeric, int):
        raise ValueError(f"Unknown log level: {level!r}")

    logging.basicConfig(format=LOG_FORMAT, stream=sys.stderr, level=numeric)
    logging.getLogger().setLevel(numeric)

    renderer: Any = (
        structlog.processors.JSONRenderer()
        if json_logs
        else structlog.dev.ConsoleRenderer(colors=False)
    )
    structlog.configure(
        processors=[*_shared_processors(), renderer],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        # Keep loggers re-resolvable so structlog.testing.capture_logs sees them.
        cache_logger_on_first_use=False,
    )


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    """Return a structured logger bound to the given stdlib logger name."""
    return structlog.stdlib.get_logger(name)
