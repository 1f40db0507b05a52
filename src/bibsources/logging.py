"""Logging setup: stdlib for plugin modules, structlog for the manager."""

from __future__ import annotations

import logging
import sys
from typing import Any

import structlog

DEFAULT_LOG_LEVEL = "INFO"

# request lines from these are noise at INFO
NOISY_LOGGERS = ("httpx", "httpcore")

_configured = False


def _level_number(level: str) -> int:
    value = logging.getLevelName(level.upper())
    return value if isinstance(value, int) else logging.INFO


def _configure_structlog(level: int, json: bool) -> None:
    renderer = structlog.processors.JSONRenderer() if json else structlog.dev.ConsoleRenderer(colors=False)
    structlog.configure(
        processors=[
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.add_log_level,
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(level),
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def configure_logging(level: str = DEFAULT_LOG_LEVEL, json: bool = False) -> None:
    """Configure stdlib logging on stderr and structlog on top of it.

    Safe to call again (the CLI does, after reading Settings); the last call
    wins.
    """
    global _configured
    numeric = _level_number(level)
    logging.basicConfig(format="%(levelname)s %(name)s: %(message)s", stream=sys.stderr, level=numeric, force=True)
    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(max(numeric, logging.WARNING))
    _configure_structlog(numeric, json)
    _configured = True


def get_logger(name: str, **initial_values: Any) -> structlog.stdlib.BoundLogger:
    """Return a bound structured logger.

    Before ``configure_logging`` runs, structlog is pointed at stdlib logging
    and the host application's handlers decide what is shown.
    """
    if not _configured:
        _configure_structlog(_level_number(DEFAULT_LOG_LEVEL), json=False)
    logger = structlog.get_logger(name)
    if initial_values:
        return logger.bind(**initial_values)
    return logger


__all__ = ["configure_logging", "get_logger"]
