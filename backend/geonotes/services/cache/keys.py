"""Cache key prefixes and derived-key helpers."""

import hashlib
from datetime import date

# Cache key prefixes - using Redis naming conventions
KEY_PREFIX_HOUSES = "houses"  # houses:bounds:{s}:{n}:{w}:{e}:{limit}, houses:top:{limit}
KEY_PREFIX_EMOJIS = "emojis"  # emojis:bounds:{s}:{n}:{w}:{e}:{limit}
KEY_PREFIX_RATE = "rate"  # rate:{scope}:{identity}[:{window}]
KEY_PREFIX_ZONE = "chat_zone"  # chat_zone:{zone_id} -> set of user ids
KEY_PREFIX_ZONE_MESSAGES = "chat_messages"  # chat_messages:{zone_id} -> list, newest first
KEY_PREFIX_USER_SESSION = "user_session"  # user_session:{user_id} -> json profile
KEY_PREFIX_PRIVATE_ROOM = "private_chat_room"  # private_chat_room:{room_id} -> json
KEY_PREFIX_PRIVATE_ROOM_SESSION = "private_chat_room_session"  # -> session id
KEY_PREFIX_PRIVATE_SESSION = "private_chat_session"  # private_chat_session:{session_id} -> json
KEY_PREFIX_PRIVATE_MESSAGES = "private_chat_messages"  # private_chat_messages:{session_id} -> list

# ~11m at the equator; near-identical viewports share one entry
BOUNDS_PRECISION = 4
# One decimal degree grid cell per chat zone
ZONE_PRECISION = 1


def make_key(prefix: str, *parts: str | int) -> str:
    """Create a cache key from prefix and parts."""
    return f"{prefix}:{':'.join(str(p) for p in parts)}"


def _fmt(value: float, precision: int) -> str:
    # "-0.0000" and "0.0000" must collapse onto one key
    text = f"{float(value):.{precision}f}"
    return text[1:] if text.startswith("-") and float(text) == 0 else text


def _bounds_parts(south: float, north: float, west: float, east: float) -> list[str]:
    return [_fmt(v, BOUNDS_PRECISION) for v in (south, north, west, east)]


def viewport_key(south: float, north: float, west: float, east: float, limit: int) -> str:
    """Key for a houses-in-viewport query."""
    return make_key(KEY_PREFIX_HOUSES, "bounds", *_bounds_parts(south, north, west, east), limit)


def emoji_viewport_key(south: float, north: float, west: float, east: float, limit: int) -> str:
    """Key for an emoji-reactions-in-viewport query."""
    return make_key(KEY_PREFIX_EMOJIS, "bounds", *_bounds_parts(south, north, west, east), limit)


def top_key(limit: int) -> str:
    """Key for the "top N" houses query."""
    return make_key(KEY_PREFIX_HOUSES, "top", limit)


def popular_key(area: str) -> str:
    return make_key(KEY_PREFIX_HOUSES, "popular", area)


def zone_id_for(lat: float, lng: float) -> str:
    """Grid-cell chat zone id, e.g. ``40.4_-3.7``."""
    return f"{_fmt(lat, ZONE_PRECISION)}_{_fmt(lng, ZONE_PRECISION)}"


def parse_zone_id(zone_id: str) -> tuple[float, float] | None:
    """Recover the cell coordinates from a zone id, or None for non-grid ids."""
    lat_str, sep, lng_str = zone_id.partition("_")
    if not sep:
        return None
    try:
        return float(lat_str), float(lng_str)
    except ValueError:
        return None


def rate_key(scope: str, identity: str, window: str | int | None = None) -> str:
    if window is None:
        return make_key(KEY_PREFIX_RATE, scope, identity)
    return make_key(KEY_PREFIX_RATE, scope, identity, window)


def daily_rate_key(scope: str, identity: str, day: date) -> str:
    """Fixed-window key for a UTC calendar day."""
    return rate_key(scope, identity, day.isoformat())


def content_fingerprint(*fields: object) -> str:
    """Stable hash of whitespace- and case-normalized fields."""
    normalized = "\x1f".join(
        " ".join(str(f).split()).lower() if f is not None else "" for f in fields
    )
    return hashlib.sha256(normalized.encode("utf-8")).hexdigest()[:32]
