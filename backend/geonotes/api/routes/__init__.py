"""Routes module exports."""

from geonotes.api.routes.chat import router as chat_router
from geonotes.api.routes.health import router as health_router

__all__ = [
    "chat_router",
    "health_router",
]
