"""Rate limiting on top of CacheManager counters.

Identity is an opaque client token persisted by the caller, not an
authenticated user: a client that regenerates its token starts with a
fresh quota. The limiter only counts. Callers compare the returned
count against their threshold and decide whether to reject.

Windows:
- Daily quota keyed by UTC date, expiring at the next UTC midnight
- Per-minute and per-hour fixed windows for coarse throttling
- Cooldown: more than one hit inside ``cooldown_seconds`` is a violation
- Duplicate suppression keyed by a hash of the normalized content
"""

from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

from geonotes.core.config import CacheTunables
from geonotes.core.logging import get_logger
from geonotes.services.cache.keys import content_fingerprint, daily_rate_key, rate_key
from geonotes.services.cache.manager import CacheManager

logger = get_logger(__name__)

MINUTE_WINDOW = 60
HOUR_WINDOW = 3600


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def seconds_until_utc_midnight(now: datetime) -> int:
    """Seconds from ``now`` to the next UTC midnight, at least 1."""
    now = now.astimezone(timezone.utc)
    tomorrow = (now + timedelta(days=1)).replace(hour=0, minute=0, second=0, microsecond=0)
    return max(1, int((tomorrow - now).total_seconds()))


@dataclass(frozen=True)
class RateDecision:
    """A counted hit compared against a limit."""

    count: int
    limit: int
    retry_after: int

    @property
    def allowed(self) -> bool:
        return self.count <= self.limit

    @property
    def remaining(self) -> int:
        return max(0, self.limit - self.count)


class RateLimiter:
    """Counts hits per client token in fixed windows."""

    def __init__(
        self,
        cache: CacheManager,
        tunables: CacheTunables | None = None,
        now: Callable[[], datetime] = _utc_now,
    ) -> None:
        self._cache = cache
        self._tunables = tunables or CacheTunables()
        self._now = now

    # ========== Raw counters ==========

    async def count_daily(self, identity: str, scope: str = "daily") -> int:
        now = self._now()
        key = daily_rate_key(scope, identity, now.astimezone(timezone.utc).date())
        return await self._cache.incr(key, seconds_until_utc_midnight(now))

    async def count_minute(self, identity: str, scope: str = "minute") -> int:
        return await self._cache.incr(rate_key(scope, identity), MINUTE_WINDOW)

    async def count_hour(self, identity: str, scope: str = "hour") -> int:
        return await self._cache.incr(rate_key(scope, identity), HOUR_WINDOW)

    async def count_cooldown(self, identity: str, scope: str = "cooldown") -> int:
        return await self._cache.incr(rate_key(scope, identity), self._tunables.cooldown_seconds)

    async def count_duplicate(self, *fields: object, scope: str = "dup") -> int:
        """Count submissions of the same normalized content within the dedup window."""
        key = rate_key(scope, content_fingerprint(*fields))
        return await self._cache.incr(key, self._tunables.duplicate_window_seconds)

    # ========== Decisions ==========

    async def check_daily(self, identity: str, scope: str = "daily") -> RateDecision:
        count = await self.count_daily(identity, scope)
        return self._decide(
            "daily", identity, count, self._tunables.daily_quota,
            seconds_until_utc_midnight(self._now()),
        )

    async def check_minute(self, identity: str, scope: str = "minute") -> RateDecision:
        count = await self.count_minute(identity, scope)
        return self._decide("minute", identity, count, self._tunables.minute_quota, MINUTE_WINDOW)

    async def check_hour(self, identity: str, scope: str = "hour") -> RateDecision:
        count = await self.count_hour(identity, scope)
        return self._decide("hour", identity, count, self._tunables.hour_quota, HOUR_WINDOW)

    async def check_cooldown(self, identity: str, scope: str = "cooldown") -> RateDecision:
        count = await self.count_cooldown(identity, scope)
        return self._decide("cooldown", identity, count, 1, self._tunables.cooldown_seconds)

    async def check_duplicate(self, *fields: object, scope: str = "dup") -> RateDecision:
        count = await self.count_duplicate(*fields, scope=scope)
        return self._decide(
            "duplicate", scope, count, self._tunables.duplicate_threshold,
            self._tunables.duplicate_window_seconds,
        )

    def _decide(self, window: str, identity: str, count: int, limit: int, retry_after: int) -> RateDecision:
        decision = RateDecision(count=count, limit=limit, retry_after=retry_after)
        if not decision.allowed:
            logger.info("Rate limit exceeded", window=window, identity=identity, count=count, limit=limit)
        return decision
