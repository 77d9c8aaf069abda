"""Structured logging configuration using structlog.

Console output in debug, one JSON object per line otherwise. Client
tokens used as rate-limit identities are masked before rendering.
"""

import logging
import sys
from typing import Any

import structlog
from structlog.types import EventDict, Processor

from geonotes.core.config import get_settings

# Every Upstash call is an httpx request
_QUIET_LOGGERS = ("uvicorn.access", "httpx", "httpcore")

_TOKEN_PREFIX = "token:"
_VISIBLE_TOKEN_CHARS = 4


def add_app_context(
    logger: logging.Logger, method_name: str, event_dict: EventDict
) -> EventDict:
    """Add application name, version and environment to log events."""
    settings = get_settings()
    event_dict["app"] = settings.app_name
    event_dict["version"] = settings.app_version
    event_dict["env"] = settings.environment
    return event_dict


def mask_client_token(
    logger: logging.Logger, method_name: str, event_dict: EventDict
) -> EventDict:
    """Shorten ``token:<secret>`` identities to their first few characters."""
    identity = event_dict.get("identity")
    if isinstance(identity, str) and identity.startswith(_TOKEN_PREFIX):
        secret = identity[len(_TOKEN_PREFIX):]
        event_dict["identity"] = f"{_TOKEN_PREFIX}{secret[:_VISIBLE_TOKEN_CHARS]}***"
    return event_dict


def setup_logging() -> None:
    """Configure structlog and the stdlib root logger."""
    settings = get_settings()

    processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        add_app_context,
        mask_client_token,
    ]
    if settings.debug:
        processors.append(structlog.dev.ConsoleRenderer(colors=True))
    else:
        processors += [
            structlog.processors.dict_tracebacks,
            structlog.processors.JSONRenderer(),
        ]

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, settings.log_level),
    )
    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def get_logger(name: str | None = None) -> Any:
    """Get a structured logger instance."""
    return structlog.get_logger(name)
