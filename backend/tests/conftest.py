"""Test configuration and fixtures.

Provides:
- A controllable clock shared by fake backends and the fallback store
- An in-memory stand-in for the Upstash async client
- Connected backends, cache manager, rate limiter and presence directory
- HTTP client with services pre-installed on app.state
"""

import fnmatch
from collections.abc import AsyncGenerator
from datetime import datetime, timedelta, timezone
from typing import Any

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from geonotes.core.config import CacheTunables
from geonotes.services.cache import CacheManager, FallbackStore, UpstashBackend
from geonotes.services.presence import PresenceDirectory
from geonotes.services.rate_limit import RateLimiter


# =============================================================================
# Clock
# =============================================================================

class FakeClock:
    """Monotonic seconds plus a matching UTC wall clock, advanced by hand."""

    def __init__(self, start: datetime | None = None) -> None:
        self.seconds = 1_000.0
        self.wall = start or datetime(2024, 6, 1, 12, 0, 0, tzinfo=timezone.utc)

    def __call__(self) -> float:
        return self.seconds

    def utcnow(self) -> datetime:
        return self.wall

    def advance(self, seconds: float) -> None:
        self.seconds += seconds
        self.wall += timedelta(seconds=seconds)


# =============================================================================
# Fake Upstash client
# =============================================================================

def _redis_slice(items: list[str], start: int, stop: int) -> list[str]:
    n = len(items)
    if start < 0:
        start = max(n + start, 0)
    if stop < 0:
        stop = n + stop
    stop = min(stop, n - 1)
    if start > stop:
        return []
    return items[start : stop + 1]


class FakeRedis:
    """Subset of ``upstash_redis.asyncio.Redis`` backed by dicts, with TTLs."""

    def __init__(self, clock: FakeClock) -> None:
        self._clock = clock
        self.data: dict[str, Any] = {}
        self.expires: dict[str, float] = {}
        self.calls: list[str] = []
        self._scan_snapshot: list[str] = []

    def _alive(self, key: str) -> bool:
        exp = self.expires.get(key)
        if exp is not None and exp <= self._clock():
            self.data.pop(key, None)
            self.expires.pop(key, None)
        return key in self.data

    def ttl(self, key: str) -> float | None:
        if not self._alive(key):
            return None
        exp = self.expires.get(key)
        return None if exp is None else exp - self._clock()

    async def ping(self) -> str:
        return "PONG"

    async def close(self) -> None:
        self.calls.append("close")

    async def get(self, key: str) -> str | None:
        self.calls.append("get")
        return self.data[key] if self._alive(key) else None

    async def set(self, key: str, value: str, ex: int | None = None) -> str:
        self.calls.append("set")
        self.data[key] = value
        if ex:
            self.expires[key] = self._clock() + ex
        else:
            self.expires.pop(key, None)
        return "OK"

    async def delete(self, *keys: str) -> int:
        self.calls.append("delete")
        removed = 0
        for key in keys:
            if self._alive(key):
                removed += 1
            self.data.pop(key, None)
            self.expires.pop(key, None)
        return removed

    async def incr(self, key: str) -> int:
        self.calls.append("incr")
        value = int(self.data[key]) + 1 if self._alive(key) else 1
        self.data[key] = str(value)
        return value

    async def expire(self, key: str, seconds: int) -> int:
        self.calls.append("expire")
        if not self._alive(key):
            return 0
        self.expires[key] = self._clock() + seconds
        return 1

    async def scan(self, cursor: int, match: str | None = None, count: int | None = None) -> tuple[int, list[str]]:
        self.calls.append("scan")
        # Snapshot on a fresh cursor so deletes mid-scan don't skip keys
        if cursor == 0:
            self._scan_snapshot = sorted(
                k for k in list(self.data) if self._alive(k) and fnmatch.fnmatchcase(k, match or "*")
            )
        keys = self._scan_snapshot
        count = count or 10
        page = keys[cursor : cursor + count]
        next_cursor = cursor + count
        return (next_cursor if next_cursor < len(keys) else 0), page

    async def sadd(self, key: str, *members: str) -> int:
        self._alive(key)
        current = self.data.setdefault(key, set())
        before = len(current)
        current.update(members)
        return len(current) - before

    async def srem(self, key: str, *members: str) -> int:
        if not self._alive(key):
            return 0
        current = self.data[key]
        before = len(current)
        current.difference_update(members)
        if not current:
            self.data.pop(key, None)
            self.expires.pop(key, None)
        return before - len(current)

    async def smembers(self, key: str) -> list[str]:
        return sorted(self.data[key]) if self._alive(key) else []

    async def sismember(self, key: str, member: str) -> int:
        return int(self._alive(key) and member in self.data[key])

    async def lpush(self, key: str, *values: str) -> int:
        self._alive(key)
        current = self.data.setdefault(key, [])
        for value in values:
            current.insert(0, value)
        return len(current)

    async def ltrim(self, key: str, start: int, stop: int) -> str:
        if self._alive(key):
            kept = _redis_slice(self.data[key], start, stop)
            if kept:
                self.data[key] = kept
            else:
                self.data.pop(key, None)
                self.expires.pop(key, None)
        return "OK"

    async def lrange(self, key: str, start: int, stop: int) -> list[str]:
        return _redis_slice(self.data[key], start, stop) if self._alive(key) else []

    async def llen(self, key: str) -> int:
        return len(self.data[key]) if self._alive(key) else 0


# =============================================================================
# Fixtures
# =============================================================================

@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def tunables() -> CacheTunables:
    return CacheTunables()


def make_backend(clock: FakeClock, name: str = "redis[0]") -> tuple[UpstashBackend, FakeRedis]:
    client = FakeRedis(clock)
    backend = UpstashBackend("https://fake.upstash.io", "tok", name=name, client=client)
    return backend, client


@pytest_asyncio.fixture
async def backend_pair(clock: FakeClock) -> tuple[UpstashBackend, FakeRedis]:
    backend, client = make_backend(clock)
    await backend.connect()
    return backend, client


@pytest_asyncio.fixture
async def cache_manager(clock: FakeClock, tunables: CacheTunables, backend_pair) -> CacheManager:
    backend, _ = backend_pair
    return CacheManager([backend], tunables, FallbackStore(tunables.fallback_default_ttl, clock=clock))


@pytest.fixture
def memory_cache(clock: FakeClock, tunables: CacheTunables) -> CacheManager:
    """Cache manager with no backends: pure fallback mode."""
    return CacheManager([], tunables, FallbackStore(tunables.fallback_default_ttl, clock=clock))


@pytest.fixture
def presence(backend_pair, tunables: CacheTunables, clock: FakeClock) -> PresenceDirectory:
    backend, _ = backend_pair
    return PresenceDirectory([backend], tunables, now=clock.utcnow)


@pytest.fixture
def rate_limiter(cache_manager: CacheManager, tunables: CacheTunables, clock: FakeClock) -> RateLimiter:
    return RateLimiter(cache_manager, tunables, now=clock.utcnow)


@pytest_asyncio.fixture
async def client(
    cache_manager: CacheManager,
    rate_limiter: RateLimiter,
    presence: PresenceDirectory,
) -> AsyncGenerator[AsyncClient, None]:
    """Async test client with services installed on app.state."""
    from geonotes.main import create_app

    app = create_app()
    app.state.cache = cache_manager
    app.state.rate_limiter = rate_limiter
    app.state.presence = presence

    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac
