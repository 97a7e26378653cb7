"""structlog setup shared by the API process and the CLI.

Request-scoped fields (``request_id``, ``path``) are bound by
:class:`backend.app.utils.RequestContextMiddleware` and merged in from
contextvars, so every event emitted while serving a request carries them.
"""

from __future__ import annotations

import logging
import sys
from typing import Any

import structlog
from structlog.types import EventDict, Processor

from .settings import settings

SERVICE_NAME = "isle-concierge"
SERVICE_VERSION = "0.1.0"

QUIET_LOGGERS = ("httpx", "httpcore", "uvicorn.access")


def stamp_service(logger: Any, method_name: str, event_dict: EventDict) -> EventDict:
    event_dict.setdefault("service", SERVICE_NAME)
    event_dict.setdefault("version", SERVICE_VERSION)
    event_dict.setdefault("environment", settings.SENTRY_ENVIRONMENT)
    return event_dict


def strip_uvicorn_color(logger: Any, method_name: str, event_dict: EventDict) -> EventDict:
    # uvicorn duplicates the message with ANSI codes under this key
    event_dict.pop("color_message", None)
    return event_dict


def build_processors(json_logs: bool) -> list[Processor]:
    chain: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        stamp_service,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
    ]
    if json_logs:
        chain += [
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            strip_uvicorn_color,
            structlog.processors.JSONRenderer(),
        ]
    else:
        chain += [
            structlog.processors.TimeStamper(fmt="%H:%M:%S"),
            structlog.processors.StackInfoRenderer(),
            structlog.dev.ConsoleRenderer(),
        ]
    return chain


def configure_structlog(json_logs: bool = False, level: int | str | None = None) -> None:
    """
    Configure structlog and the stdlib root logger.

    Args:
        json_logs: Emit one JSON object per line. Console rendering is only
                   used when this is False and settings.DEBUG is on.
        level: Root log level; DEBUG when settings.DEBUG is on, INFO otherwise.
    """
    structlog.configure(
        processors=build_processors(json_logs or not settings.DEBUG),
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    if level is None:
        level = logging.DEBUG if settings.DEBUG else logging.INFO
    logging.basicConfig(format="%(message)s", stream=sys.stdout, level=level)
    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    """Usage: ``logger = get_logger(__name__); logger.info("engine_ready", pois=29)``."""
    return structlog.get_logger(name)


__all__ = ["SERVICE_NAME", "SERVICE_VERSION", "configure_structlog", "get_logger"]
