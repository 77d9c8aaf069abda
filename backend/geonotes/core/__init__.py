"""Core module exports."""

from geonotes.core.config import CacheTunables, Settings, get_settings
from geonotes.core.exceptions import (
    AppError,
    NotAMemberError,
    NotFoundError,
    PresenceUnavailableError,
    RateLimitError,
    RoomUnavailableError,
    SessionEndedError,
    ValidationError,
)
from geonotes.core.logging import get_logger, setup_logging

__all__ = [
    # Config
    "CacheTunables",
    "Settings",
    "get_settings",
    # Logging
    "get_logger",
    "setup_logging",
    # Exceptions
    "AppError",
    "NotAMemberError",
    "NotFoundError",
    "PresenceUnavailableError",
    "RateLimitError",
    "RoomUnavailableError",
    "SessionEndedError",
    "ValidationError",
]
