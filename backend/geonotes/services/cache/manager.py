"""Multi-backend cache manager with in-memory fallback."""

import asyncio
from collections.abc import Awaitable, Callable, Sequence
from typing import Any, TypeVar

import orjson

from geonotes.core.config import CacheTunables
from geonotes.core.logging import get_logger
from geonotes.services.cache.backend import KeyValueBackend
from geonotes.services.cache.fallback import FallbackStore
from geonotes.services.cache.keys import (
    KEY_PREFIX_EMOJIS,
    KEY_PREFIX_HOUSES,
    emoji_viewport_key,
    popular_key,
    top_key,
    viewport_key,
)

logger = get_logger(__name__)

T = TypeVar("T")


class CacheManager:
    """Fans cache traffic across redundant backends.

    Reads take the first hit in configured order. Writes and deletes go to
    every healthy backend concurrently, best-effort: backends may diverge.
    Counters hit exactly one backend so they are never double-counted. When
    no backend is healthy, everything is served from a process-local
    ``FallbackStore``. Backend failures are logged and never raised.
    """

    def __init__(
        self,
        backends: Sequence[KeyValueBackend] = (),
        tunables: CacheTunables | None = None,
        fallback: FallbackStore | None = None,
    ) -> None:
        self._tunables = tunables or CacheTunables()
        self._backends: list[KeyValueBackend] = list(backends)
        if fallback is None:
            fallback = FallbackStore(default_ttl=self._tunables.fallback_default_ttl)
        self._fallback = fallback

    @property
    def backends(self) -> list[KeyValueBackend]:
        return list(self._backends)

    @property
    def fallback(self) -> FallbackStore:
        return self._fallback

    @property
    def is_available(self) -> bool:
        """True when at least one backend is healthy."""
        return bool(self.healthy_backends())

    def healthy_backends(self) -> list[KeyValueBackend]:
        return [b for b in self._backends if b.is_healthy()]

    # ========== Lifecycle ==========

    async def connect(self) -> int:
        """Connect every backend; returns how many came up healthy."""
        if not self._backends:
            logger.info("No cache backends configured, using in-memory fallback")
            return 0
        results = await asyncio.gather(
            *(b.connect() for b in self._backends),
            return_exceptions=True,
        )
        healthy = sum(1 for r in results if r is True)
        logger.info("Cache backends connected", healthy=healthy, configured=len(self._backends))
        return healthy

    async def refresh_health(self) -> int:
        """Re-ping unhealthy backends so recovered ones rejoin the pool."""
        stale = [b for b in self._backends if not b.is_healthy()]
        if stale:
            await asyncio.gather(*(b.ping() for b in stale), return_exceptions=True)
        return len(self.healthy_backends())

    async def close(self) -> None:
        await asyncio.gather(*(b.close() for b in self._backends), return_exceptions=True)

    # ========== Core operations ==========

    async def get(self, key: str) -> Any | None:
        """Return the first hit across healthy backends, else the fallback value."""
        for backend in self.healthy_backends():
            try:
                raw = await backend.get(key)
            except Exception as e:
                logger.warning("Cache get failed, trying next backend", backend=backend.name, key=key, error=str(e))
                continue
            if raw is None:
                continue
            try:
                return orjson.loads(raw)
            except orjson.JSONDecodeError:
                logger.debug("Cache JSON decode failed", backend=backend.name, key=key)
                continue
        return self._fallback.get(key)

    async def set(self, key: str, value: Any, ttl: int | None = None) -> None:
        """Write to every healthy backend; the fallback takes it once none is healthy."""
        ttl = ttl or self._tunables.fallback_default_ttl
        backends = self.healthy_backends()
        if not backends:
            self._fallback.set(key, value, ttl)
            return
        try:
            payload = orjson.dumps(value).decode()
        except TypeError as e:
            logger.warning("Cache value not serializable", key=key, error=str(e))
            return
        results = await asyncio.gather(
            *(b.set(key, payload, ttl) for b in backends),
            return_exceptions=True,
        )
        for backend, result in zip(backends, results):
            if isinstance(result, BaseException):
                logger.warning("Cache set failed", backend=backend.name, key=key, error=str(result))
        # Every backend dropped out during the write; keep the value readable here
        if not self.healthy_backends():
            self._fallback.set(key, value, ttl)

    async def delete(self, key: str) -> None:
        """Delete from every healthy backend and always from the fallback."""
        backends = self.healthy_backends()
        if backends:
            results = await asyncio.gather(
                *(b.delete(key) for b in backends),
                return_exceptions=True,
            )
            for backend, result in zip(backends, results):
                if isinstance(result, BaseException):
                    logger.warning("Cache delete failed", backend=backend.name, key=key, error=str(result))
        self._fallback.delete(key)

    async def incr(self, key: str, ttl: int = 60) -> int:
        """Increment a fixed-window counter; the window starts on the first hit."""
        for backend in self.healthy_backends():
            try:
                count = await backend.incr(key)
            except Exception as e:
                logger.warning("Cache incr failed, trying next backend", backend=backend.name, key=key, error=str(e))
                continue
            if count == 1:
                try:
                    await backend.expire(key, ttl)
                except Exception as e:
                    # The hit is already counted here; never count it again elsewhere
                    logger.warning("Cache expire failed, counter has no TTL", backend=backend.name, key=key, error=str(e))
            return count
        return self._fallback.incr(key, ttl)

    async def clear_pattern(self, pattern: str) -> int:
        """Delete keys matching a glob on every healthy backend, in batches.

        The fallback store is cleared entirely regardless of the pattern.
        Returns the number of backend keys deleted.
        """
        batch_size = self._tunables.scan_batch_size
        deleted = 0
        for backend in self.healthy_backends():
            try:
                batch: list[str] = []
                async for key in backend.scan_keys(pattern, batch_size):
                    batch.append(key)
                    if len(batch) >= batch_size:
                        deleted += await backend.delete(*batch)
                        batch = []
                if batch:
                    deleted += await backend.delete(*batch)
            except Exception as e:
                logger.warning("Cache clear pattern failed", backend=backend.name, pattern=pattern, error=str(e))
        self._fallback.clear()
        return deleted

    async def get_or_set(
        self,
        key: str,
        fetch: Callable[[], Awaitable[T]],
        ttl: int | None = None,
    ) -> T | Any:
        """Read-through cache. Errors from ``fetch`` propagate and nothing is cached."""
        cached = await self.get(key)
        if cached is not None:
            return cached
        data = await fetch()
        if data is not None:
            await self.set(key, data, ttl)
        return data

    # ========== Typed accessors ==========

    async def get_viewport(self, south: float, north: float, west: float, east: float, limit: int) -> Any | None:
        return await self.get(viewport_key(south, north, west, east, limit))

    async def set_viewport(
        self, south: float, north: float, west: float, east: float, limit: int, data: Any
    ) -> None:
        await self.set(viewport_key(south, north, west, east, limit), data, self._tunables.viewport_ttl)

    async def get_emoji_viewport(
        self, south: float, north: float, west: float, east: float, limit: int
    ) -> Any | None:
        return await self.get(emoji_viewport_key(south, north, west, east, limit))

    async def set_emoji_viewport(
        self, south: float, north: float, west: float, east: float, limit: int, data: Any
    ) -> None:
        await self.set(emoji_viewport_key(south, north, west, east, limit), data, self._tunables.emoji_viewport_ttl)

    async def get_top(self, limit: int) -> Any | None:
        return await self.get(top_key(limit))

    async def set_top(self, limit: int, data: Any) -> None:
        await self.set(top_key(limit), data, self._tunables.top_n_ttl)

    async def get_popular(self, area: str) -> Any | None:
        return await self.get(popular_key(area))

    async def set_popular(self, area: str, data: Any) -> None:
        await self.set(popular_key(area), data, self._tunables.popular_ttl)

    async def clear_houses(self) -> int:
        return await self.clear_pattern(f"{KEY_PREFIX_HOUSES}:*")

    async def clear_emojis(self) -> int:
        return await self.clear_pattern(f"{KEY_PREFIX_EMOJIS}:*")

    # ========== Stats ==========

    def stats(self) -> dict[str, Any]:
        healthy = self.healthy_backends()
        if healthy:
            return {
                "type": "redis",
                "connected": True,
                "instances": len(healthy),
                "backends": [
                    {"name": b.name, "healthy": b.is_healthy()} for b in self._backends
                ],
            }
        return {
            "type": "memory",
            "connected": False,
            "entries": len(self._fallback),
        }
