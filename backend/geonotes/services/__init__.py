"""Services module exports."""

from geonotes.services.cache import CacheManager, FallbackStore, KeyValueBackend, UpstashBackend
from geonotes.services.presence import PresenceDirectory
from geonotes.services.rate_limit import RateDecision, RateLimiter

__all__ = [
    # Cache
    "CacheManager",
    "FallbackStore",
    "KeyValueBackend",
    "UpstashBackend",
    # Presence
    "PresenceDirectory",
    # Rate Limiting
    "RateDecision",
    "RateLimiter",
]
