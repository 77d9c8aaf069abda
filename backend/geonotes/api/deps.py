"""API dependencies for FastAPI routes."""

from typing import Annotated

from fastapi import Depends, Header, Request

from geonotes.core.exceptions import RateLimitError
from geonotes.services.cache import CacheManager
from geonotes.services.presence import PresenceDirectory
from geonotes.services.rate_limit import RateDecision, RateLimiter


def get_cache_manager(request: Request) -> CacheManager:
    """Cache manager built once in the application lifespan."""
    return request.app.state.cache  # type: ignore[no-any-return]


def get_rate_limiter(request: Request) -> RateLimiter:
    return request.app.state.rate_limiter  # type: ignore[no-any-return]


def get_presence(request: Request) -> PresenceDirectory:
    return request.app.state.presence  # type: ignore[no-any-return]


def get_client_identity(
    request: Request,
    x_client_token: Annotated[str | None, Header()] = None,
) -> str:
    """Identify the requester for rate limiting.

    Uses the long-lived client token when sent, otherwise the client IP.
    """
    if x_client_token and x_client_token.strip():
        return f"token:{x_client_token.strip()[:128]}"

    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded:
        return f"ip:{forwarded.split(',')[0].strip()}"
    return f"ip:{request.client.host if request.client else 'unknown'}"


def _enforce(decision: RateDecision, reason: str) -> None:
    if not decision.allowed:
        raise RateLimitError(retry_after=decision.retry_after, reason=reason)


async def check_message_rate_limit(
    identity: str,
    rate_limiter: RateLimiter,
    scope: str,
    text: str,
) -> None:
    """Throttle chat sends: per-minute and per-hour quotas, cooldown, then duplicate content.

    Raises:
        RateLimitError: If any window is exceeded
    """
    _enforce(await rate_limiter.check_minute(identity, scope=f"{scope}:minute"), "minute")
    _enforce(await rate_limiter.check_hour(identity, scope=f"{scope}:hour"), "hour")
    _enforce(await rate_limiter.check_cooldown(identity, scope=f"{scope}:cooldown"), "cooldown")
    _enforce(await rate_limiter.check_duplicate(identity, text, scope=f"{scope}:dup"), "duplicate")


async def check_daily_limit(identity: str, rate_limiter: RateLimiter, scope: str) -> None:
    """Enforce the per-client daily quota for a scope.

    Raises:
        RateLimitError: If the daily quota is used up
    """
    _enforce(await rate_limiter.check_daily(identity, scope=f"{scope}:daily"), "daily")


# Type aliases for cleaner route signatures
Cache = Annotated[CacheManager, Depends(get_cache_manager)]
Limiter = Annotated[RateLimiter, Depends(get_rate_limiter)]
Presence = Annotated[PresenceDirectory, Depends(get_presence)]
ClientIdentity = Annotated[str, Depends(get_client_identity)]
