"""Health check and monitoring endpoints."""

import asyncio
import time
from datetime import datetime, timezone
from typing import Any

from fastapi import APIRouter, status
from fastapi.responses import JSONResponse

from geonotes.api.deps import Cache, Presence
from geonotes.api.schemas import HealthResponse, ServiceHealth
from geonotes.core.config import get_settings

router = APIRouter(tags=["Health"])


@router.get("/health/live", summary="Liveness probe")
async def liveness() -> dict[str, str]:
    """Returns 200 while the process is running. No dependencies are checked."""
    return {
        "status": "ok",
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }


@router.get(
    "/health",
    response_model=HealthResponse,
    summary="Comprehensive health check",
)
async def health_check(cache: Cache) -> HealthResponse:
    """
    Per-backend health for the cache tier.

    - **healthy**: every configured backend answers
    - **degraded**: some backends down, or none configured (in-memory fallback)
    - **unhealthy**: backends configured but none reachable
    """
    settings = get_settings()
    services: dict[str, ServiceHealth] = {}

    async def _timed(backend: Any) -> tuple[str, bool, float]:
        start = time.perf_counter()
        healthy = await backend.ping()
        return backend.name, healthy, (time.perf_counter() - start) * 1000

    results = await asyncio.gather(*(_timed(b) for b in cache.backends), return_exceptions=True)
    for result in results:
        if isinstance(result, BaseException):
            continue
        name, healthy, latency = result
        services[name] = ServiceHealth(
            status="healthy" if healthy else "unhealthy",
            latency_ms=round(latency, 2),
            details={"type": "redis", "provider": "upstash"},
        )

    healthy_count = sum(1 for s in services.values() if s.status == "healthy")
    if not cache.backends:
        overall = "degraded"
        services["cache"] = ServiceHealth(status="degraded", details={"type": "memory"})
    elif healthy_count == len(cache.backends):
        overall = "healthy"
    elif healthy_count:
        overall = "degraded"
    else:
        overall = "unhealthy"

    return HealthResponse(
        status=overall,
        timestamp=datetime.now(timezone.utc),
        version=settings.app_version,
        services=services,
    )


@router.get("/health/ready", summary="Readiness probe")
async def readiness(cache: Cache, presence: Presence) -> JSONResponse:
    """
    Ready when presence has a live backend.

    Re-pings backends marked unhealthy first, so a recovered Redis rejoins
    the pool. Returns 503 when chat cannot be served.
    """
    healthy = await cache.refresh_health()
    if not presence.is_available:
        return JSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            content={
                "status": "not_ready",
                "reason": "presence_unavailable",
                "healthy_backends": healthy,
                "timestamp": datetime.now(timezone.utc).isoformat(),
            },
        )
    return JSONResponse(
        status_code=status.HTTP_200_OK,
        content={
            "status": "ready",
            "healthy_backends": healthy,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        },
    )


@router.get("/health/cache", summary="Cache statistics")
async def cache_stats(cache: Cache) -> dict[str, Any]:
    """Redis pool summary, or fallback entry count when running in memory."""
    return {
        **cache.stats(),
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }
