"""Logging configuration."""

import logging
import sys
from typing import Any

import structlog

from teamsync.settings import settings

# Event keys whose values must never reach a log sink
_CREDENTIAL_KEYS = frozenset({"password", "password_hash", "credential", "credential_hash"})


def _redact_credentials(logger: Any, method_name: str, event_dict: dict[str, Any]) -> dict[str, Any]:
    for key in _CREDENTIAL_KEYS & event_dict.keys():
        event_dict[key] = "***"
    return event_dict


def configure_logging(log_level: str | None = None, log_format: str | None = None) -> None:
    """Configure structured logging.

    Args:
        log_level: Level name; defaults to ``settings.log_level``
        log_format: ``console`` or ``json``; defaults to ``settings.log_format``
    """
    level = (log_level or settings.log_level).upper()
    shared = [
        structlog.contextvars.merge_contextvars,
        _redact_credentials,
        structlog.processors.add_log_level,
    ]

    if (log_format or settings.log_format) == "json":
        processors = shared + [
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ]
    else:
        processors = shared + [
            structlog.processors.TimeStamper(fmt="%Y-%m-%d %H:%M:%S"),
            structlog.dev.ConsoleRenderer(),
        ]

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(logging.getLevelName(level)),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=sys.stdout),
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(format="%(message)s", stream=sys.stdout, level=getattr(logging, level))
    # SQL echo only when debugging queries
    sql_level = logging.INFO if level == "DEBUG" else logging.WARNING
    logging.getLogger("sqlalchemy.engine").setLevel(sql_level)


def get_logger(name: str) -> structlog.BoundLogger:
    """Get a logger instance."""
    return structlog.get_logger(name)
