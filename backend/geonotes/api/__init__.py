"""API module exports."""

from geonotes.api.deps import Cache, ClientIdentity, Limiter, Presence
from geonotes.api.routes import chat_router, health_router

__all__ = [
    # Routers
    "chat_router",
    "health_router",
    # Dependencies
    "Cache",
    "ClientIdentity",
    "Limiter",
    "Presence",
]
