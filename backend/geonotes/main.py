"""FastAPI application entry point."""

import asyncio
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from typing import Any

from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware

from geonotes.api import chat_router, health_router
from geonotes.core.config import Settings, get_settings
from geonotes.core.exceptions import (
    AppError,
    app_exception_handler,
    http_exception_handler,
    unhandled_exception_handler,
)
from geonotes.core.logging import get_logger, setup_logging
from geonotes.services.cache import CacheManager, build_backends
from geonotes.services.presence import PresenceDirectory
from geonotes.services.rate_limit import RateLimiter

# Initialize logging first
setup_logging()
logger = get_logger(__name__)

_CONNECT_ATTEMPTS = 3


def build_services(settings: Settings) -> tuple[CacheManager, RateLimiter, PresenceDirectory]:
    """Construct the cache, limiter and presence services from settings."""
    tunables = settings.tunables()
    backends = build_backends(settings.cache_backends, timeout=tunables.backend_timeout)
    cache = CacheManager(backends, tunables)
    return cache, RateLimiter(cache, tunables), PresenceDirectory(cache.backends, tunables)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan manager.

    Startup:
    - Build services once and connect every cache backend

    Shutdown:
    - Close backend clients (in-flight writes are not awaited)
    """
    settings = get_settings()

    logger.info(
        "Starting application",
        app_name=settings.app_name,
        version=settings.app_version,
        debug=settings.debug,
    )

    # Services may be pre-installed (tests)
    if getattr(app.state, "cache", None) is None:
        cache, rate_limiter, presence = build_services(settings)
        app.state.cache = cache
        app.state.rate_limiter = rate_limiter
        app.state.presence = presence

    # Retry transient connection failures; start degraded rather than fail
    healthy = 0
    for attempt in range(_CONNECT_ATTEMPTS):
        healthy = await app.state.cache.connect()
        if healthy or not app.state.cache.backends:
            break
        if attempt < _CONNECT_ATTEMPTS - 1:
            logger.warning("No cache backend reachable, retrying...", attempt=attempt + 1)
            await asyncio.sleep(2 ** attempt)
    if not healthy:
        logger.warning("No cache backend reachable; cache in memory, chat unavailable")

    yield

    logger.info("Shutting down application")
    await app.state.cache.close()
    logger.info("Cache backend connections closed")


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = get_settings()

    app = FastAPI(
        title=settings.app_name,
        description="Location-based notes and chat: cache, rate limiting and presence",
        version=settings.app_version,
        lifespan=lifespan,
        docs_url="/docs" if settings.debug else None,
        redoc_url="/redoc" if settings.debug else None,
        openapi_url="/openapi.json" if settings.debug else None,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["Content-Type", "X-Client-Token"],
    )

    from starlette.middleware.base import BaseHTTPMiddleware

    class SecurityHeadersMiddleware(BaseHTTPMiddleware):
        async def dispatch(self, request: Any, call_next: Any) -> Any:
            response = await call_next(request)
            response.headers["X-Content-Type-Options"] = "nosniff"
            response.headers["X-Frame-Options"] = "DENY"
            response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
            return response

    app.add_middleware(SecurityHeadersMiddleware)

    # Register exception handlers
    app.add_exception_handler(AppError, app_exception_handler)  # type: ignore[arg-type]
    app.add_exception_handler(HTTPException, http_exception_handler)  # type: ignore[arg-type]
    app.add_exception_handler(Exception, unhandled_exception_handler)

    # Include routers
    app.include_router(health_router)
    app.include_router(chat_router, prefix="/api/v1")

    return app


# Create application instance
app = create_app()
