"""Key-value backends - one remote Redis instance per object."""

import asyncio
from abc import ABC, abstractmethod
from collections.abc import AsyncIterator
from typing import Any

import httpx
from upstash_redis.asyncio import Redis

from geonotes.core.logging import get_logger

logger = get_logger(__name__)


class KeyValueBackend(ABC):
    """A single remote key-value store.

    Operations raise on I/O failure; callers decide whether to absorb the
    error. ``connect`` and ``ping`` swallow errors and report them through
    the health flag; a timed-out or unreachable operation clears it too.
    """

    name: str

    @abstractmethod
    async def connect(self) -> bool:
        """Establish the client and verify reachability."""

    @abstractmethod
    def is_healthy(self) -> bool:
        """Whether the last connectivity check succeeded."""

    @abstractmethod
    async def ping(self) -> bool:
        """Re-check reachability and update the health flag."""

    @abstractmethod
    async def close(self) -> None:
        """Release the underlying client."""

    # ========== String operations ==========

    @abstractmethod
    async def get(self, key: str) -> str | None: ...

    @abstractmethod
    async def set(self, key: str, value: str, ttl: int) -> None: ...

    @abstractmethod
    async def delete(self, *keys: str) -> int: ...

    @abstractmethod
    async def incr(self, key: str) -> int: ...

    @abstractmethod
    async def expire(self, key: str, ttl: int) -> None: ...

    @abstractmethod
    def scan_keys(self, pattern: str, batch_size: int = 500) -> AsyncIterator[str]: ...

    # ========== Set operations ==========

    @abstractmethod
    async def sadd(self, key: str, *members: str) -> int: ...

    @abstractmethod
    async def srem(self, key: str, *members: str) -> int: ...

    @abstractmethod
    async def smembers(self, key: str) -> list[str]: ...

    @abstractmethod
    async def sismember(self, key: str, member: str) -> bool: ...

    # ========== List operations ==========

    @abstractmethod
    async def lpush(self, key: str, *values: str) -> int: ...

    @abstractmethod
    async def ltrim(self, key: str, start: int, stop: int) -> None: ...

    @abstractmethod
    async def lrange(self, key: str, start: int, stop: int) -> list[str]: ...

    @abstractmethod
    async def llen(self, key: str) -> int: ...


class UpstashBackend(KeyValueBackend):
    """Upstash Redis over its REST API."""

    def __init__(
        self,
        url: str,
        token: str,
        *,
        name: str | None = None,
        timeout: float = 5.0,
        client: Any | None = None,
    ) -> None:
        self.url = url
        self.name = name or url
        self._token = token
        self._timeout = timeout
        self._client: Any | None = client
        self._healthy = False

    def is_healthy(self) -> bool:
        return self._client is not None and self._healthy

    async def connect(self) -> bool:
        if self._client is None:
            try:
                self._client = Redis(url=self.url, token=self._token)
            except Exception as e:
                logger.warning("Failed to initialize cache backend", backend=self.name, error=str(e))
                self._healthy = False
                return False
        healthy = await self.ping()
        if healthy:
            logger.info("Cache backend connected", backend=self.name)
        else:
            logger.warning("Cache backend unreachable", backend=self.name)
        return healthy

    async def ping(self) -> bool:
        if self._client is None:
            self._healthy = False
            return False
        try:
            result = await asyncio.wait_for(self._client.ping(), timeout=self._timeout)
            self._healthy = bool(result)
        except asyncio.TimeoutError:
            logger.warning("Cache backend ping timed out", backend=self.name, timeout=self._timeout)
            self._healthy = False
        except Exception as e:
            logger.warning("Cache backend ping failed", backend=self.name, error=str(e))
            self._healthy = False
        return self._healthy

    async def close(self) -> None:
        client, self._client = self._client, None
        self._healthy = False
        if client is not None and hasattr(client, "close"):
            try:
                await client.close()
            except Exception as e:
                logger.debug("Cache backend close failed", backend=self.name, error=str(e))

    def _require_client(self) -> Any:
        if self._client is None:
            raise ConnectionError(f"Cache backend {self.name} is not connected")
        return self._client

    async def _call(self, method: str, *args: Any, **kwargs: Any) -> Any:
        """Run one client command; timeouts and transport errors mark the backend unhealthy."""
        client = self._require_client()
        try:
            return await asyncio.wait_for(
                getattr(client, method)(*args, **kwargs),
                timeout=self._timeout,
            )
        except (asyncio.TimeoutError, OSError, httpx.TransportError) as e:
            if self._healthy:
                logger.warning(
                    "Cache backend marked unhealthy",
                    backend=self.name,
                    operation=method,
                    error=str(e) or type(e).__name__,
                )
            self._healthy = False
            raise

    async def get(self, key: str) -> str | None:
        result = await self._call("get", key)
        return result if isinstance(result, str) else None

    async def set(self, key: str, value: str, ttl: int) -> None:
        await self._call("set", key, value, ex=ttl)

    async def delete(self, *keys: str) -> int:
        if not keys:
            return 0
        return int(await self._call("delete", *keys) or 0)

    async def incr(self, key: str) -> int:
        return int(await self._call("incr", key))

    async def expire(self, key: str, ttl: int) -> None:
        await self._call("expire", key, ttl)

    async def scan_keys(self, pattern: str, batch_size: int = 500) -> AsyncIterator[str]:
        cursor = 0
        while True:
            cursor, keys = await self._call("scan", cursor, match=pattern, count=batch_size)
            for key in keys:
                yield key
            if int(cursor) == 0:
                break

    async def sadd(self, key: str, *members: str) -> int:
        return int(await self._call("sadd", key, *members) or 0)

    async def srem(self, key: str, *members: str) -> int:
        return int(await self._call("srem", key, *members) or 0)

    async def smembers(self, key: str) -> list[str]:
        result = await self._call("smembers", key)
        return list(result) if result else []

    async def sismember(self, key: str, member: str) -> bool:
        return bool(await self._call("sismember", key, member))

    async def lpush(self, key: str, *values: str) -> int:
        return int(await self._call("lpush", key, *values) or 0)

    async def ltrim(self, key: str, start: int, stop: int) -> None:
        await self._call("ltrim", key, start, stop)

    async def lrange(self, key: str, start: int, stop: int) -> list[str]:
        result = await self._call("lrange", key, start, stop)
        return list(result) if result else []

    async def llen(self, key: str) -> int:
        return int(await self._call("llen", key) or 0)


def build_backends(
    endpoints: list[tuple[str, str]],
    *,
    timeout: float = 5.0,
) -> list[KeyValueBackend]:
    """Create one backend per configured (url, token) pair, in order."""
    return [
        UpstashBackend(url, token, name=f"redis[{idx}]", timeout=timeout)
        for idx, (url, token) in enumerate(endpoints)
    ]
