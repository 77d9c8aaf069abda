"""Process-local store used only while no backend is reachable."""

import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any


@dataclass
class _Entry:
    value: Any
    written_at: float
    ttl: float


@dataclass
class _Counter:
    count: int
    expires_at: float


class FallbackStore:
    """In-memory map with lazy per-key expiry.

    Expired entries are evicted when read; there is no background sweep.
    Counters use fixed windows: the expiry is set on the first increment
    and never extended.
    """

    def __init__(
        self,
        default_ttl: int = 300,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._default_ttl = default_ttl
        self._clock = clock
        self._entries: dict[str, _Entry] = {}
        self._counters: dict[str, _Counter] = {}

    def __len__(self) -> int:
        return len(self._entries)

    def get(self, key: str) -> Any | None:
        entry = self._entries.get(key)
        if entry is None:
            return None
        if self._clock() - entry.written_at >= entry.ttl:
            del self._entries[key]
            return None
        return entry.value

    def set(self, key: str, value: Any, ttl: int | None = None) -> None:
        ttl = ttl if ttl and ttl > 0 else self._default_ttl
        self._entries[key] = _Entry(value=value, written_at=self._clock(), ttl=float(ttl))

    def delete(self, key: str) -> None:
        self._entries.pop(key, None)
        self._counters.pop(key, None)

    def incr(self, key: str, ttl: int) -> int:
        now = self._clock()
        counter = self._counters.get(key)
        if counter is None or counter.expires_at <= now:
            self._counters[key] = _Counter(count=1, expires_at=now + max(1, ttl))
            return 1
        counter.count += 1
        return counter.count

    def clear(self) -> None:
        """Drop every cached entry. Counters keep running to their window end."""
        self._entries.clear()
