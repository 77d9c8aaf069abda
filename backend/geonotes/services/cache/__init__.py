"""Multi-tier cache over redundant Upstash Redis backends.

- Reads: first hit across healthy backends in configured order
- Writes/deletes: fanned out to every healthy backend, best-effort
- Counters: single backend per increment, TTL attached on creation
- Graceful degradation to a process-local store when no backend is up
"""

from geonotes.services.cache.backend import KeyValueBackend, UpstashBackend, build_backends
from geonotes.services.cache.fallback import FallbackStore
from geonotes.services.cache.keys import (
    KEY_PREFIX_EMOJIS,
    KEY_PREFIX_HOUSES,
    KEY_PREFIX_RATE,
    content_fingerprint,
    emoji_viewport_key,
    make_key,
    popular_key,
    top_key,
    viewport_key,
    zone_id_for,
)
from geonotes.services.cache.manager import CacheManager

__all__ = [
    # Key prefix constants
    "KEY_PREFIX_EMOJIS",
    "KEY_PREFIX_HOUSES",
    "KEY_PREFIX_RATE",
    # Key helpers
    "content_fingerprint",
    "emoji_viewport_key",
    "make_key",
    "popular_key",
    "top_key",
    "viewport_key",
    "zone_id_for",
    # Backends
    "KeyValueBackend",
    "UpstashBackend",
    "build_backends",
    "FallbackStore",
    # Manager
    "CacheManager",
]
