"""Ephemeral chat presence: zone membership, sessions and message logs.

Two chat flows share one Redis backend:

- Zone chat: anonymous users join a grid-cell zone (``40.4_-3.7``), post to
  a bounded newest-first log and poll it. Membership is re-checked on every
  send or read.
- Private chat: a 1:1 room dropped on the map. The creator waits, a second
  user joins and the session becomes active. Either participant leaving
  tears down the room, session and log for both.

Membership sets and session records carry independent TTLs and may drift;
stale session entries are skipped when listing members, never repaired.

Unlike ``CacheManager`` there is no in-memory fallback: presence has to be
shared across server instances, so an unreachable backend surfaces as
``PresenceUnavailableError``.
"""

import functools
import uuid
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from typing import Any, Literal, ParamSpec, TypeVar

import orjson

from geonotes.core.config import CacheTunables
from geonotes.core.exceptions import (
    AppError,
    NotAMemberError,
    NotFoundError,
    PresenceUnavailableError,
    RoomUnavailableError,
    SessionEndedError,
    ValidationError,
)
from geonotes.core.logging import get_logger
from geonotes.services.cache.backend import KeyValueBackend
from geonotes.services.cache.keys import (
    KEY_PREFIX_PRIVATE_MESSAGES,
    KEY_PREFIX_PRIVATE_ROOM,
    KEY_PREFIX_PRIVATE_ROOM_SESSION,
    KEY_PREFIX_PRIVATE_SESSION,
    KEY_PREFIX_USER_SESSION,
    KEY_PREFIX_ZONE,
    KEY_PREFIX_ZONE_MESSAGES,
    make_key,
    parse_zone_id,
)

logger = get_logger(__name__)

P = ParamSpec("P")
R = TypeVar("R")

RoomStatus = Literal["waiting", "active"]
SessionStatus = Literal["waiting", "active", "ended"]


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def generate_id(prefix: str) -> str:
    """Opaque id such as ``room_1718000000000_3f9a1c2b7``."""
    millis = int(_utc_now().timestamp() * 1000)
    return f"{prefix}_{millis}_{uuid.uuid4().hex[:9]}"


# ============================================================
# Records
# ============================================================

@dataclass
class UserSession:
    username: str
    gender: str
    zone_id: str
    joined_at: str


@dataclass
class ZoneMember:
    user_id: str
    username: str
    gender: str
    joined_at: str


@dataclass
class ChatMessage:
    id: str
    username: str
    gender: str
    message: str
    timestamp: str
    user_id: str | None = None
    zone_id: str | None = None
    session_id: str | None = None


@dataclass
class Participant:
    username: str
    gender: str
    joined_at: str


@dataclass
class PrivateRoom:
    id: str
    lat: float
    lng: float
    created_at: str
    user_count: int = 1
    status: RoomStatus = "waiting"


@dataclass
class PrivateSession:
    id: str
    room_id: str
    created_at: str
    users: list[Participant] = field(default_factory=list)
    status: SessionStatus = "waiting"


@dataclass
class ZoneJoin:
    user_id: str
    zone_id: str
    users_in_zone: list[ZoneMember]


@dataclass
class MessagePage:
    messages: list[ChatMessage]
    total: int
    has_more: bool
    zone_id: str


@dataclass
class PrivateMessagePage:
    messages: list[ChatMessage]
    session_id: str
    status: SessionStatus
    active: bool = True


@dataclass
class ActiveZone:
    zone_id: str
    lat: float
    lng: float
    user_count: int
    private: bool = False


def to_dict(record: Any) -> dict[str, Any]:
    """JSON-ready dict for any presence record."""
    return asdict(record)


def _dumps(record: Any) -> str:
    return orjson.dumps(asdict(record)).decode()


def _load_session(raw: str) -> PrivateSession:
    data = orjson.loads(raw)
    data["users"] = [Participant(**u) for u in data.get("users", [])]
    return PrivateSession(**data)


def _presence_op(fn: Callable[P, Awaitable[R]]) -> Callable[P, Awaitable[R]]:
    """Turn backend I/O errors into ``PresenceUnavailableError``; domain errors pass through."""

    @functools.wraps(fn)
    async def wrapper(*args: P.args, **kwargs: P.kwargs) -> R:
        try:
            return await fn(*args, **kwargs)
        except AppError:
            raise
        except Exception as e:
            logger.error("Presence backend operation failed", operation=fn.__name__, error=str(e))
            raise PresenceUnavailableError() from e

    return wrapper


class PresenceDirectory:
    """Zone and private-chat presence backed by the first healthy backend."""

    def __init__(
        self,
        backends: Sequence[KeyValueBackend],
        tunables: CacheTunables | None = None,
        now: Callable[[], datetime] = _utc_now,
    ) -> None:
        self._backends = list(backends)
        self._tunables = tunables or CacheTunables()
        self._now = now

    @property
    def is_available(self) -> bool:
        return any(b.is_healthy() for b in self._backends)

    def _backend(self) -> KeyValueBackend:
        for backend in self._backends:
            if backend.is_healthy():
                return backend
        raise PresenceUnavailableError()

    def _timestamp(self) -> str:
        return self._now().isoformat()

    def _clip(self, text: str) -> str:
        text = (text or "").strip()
        if not text:
            raise ValidationError("Message text is required")
        return text[: self._tunables.message_max_length]

    async def _push_message(self, backend: KeyValueBackend, key: str, message: ChatMessage, ttl: int) -> None:
        await backend.lpush(key, _dumps(message))
        await backend.ltrim(key, 0, self._tunables.message_log_capacity - 1)
        await backend.expire(key, ttl)

    @staticmethod
    def _parse_messages(raw: list[str]) -> list[ChatMessage]:
        # Stored newest first; callers get chronological order
        return [ChatMessage(**orjson.loads(m)) for m in reversed(raw)]

    # ========== Zone chat ==========

    @_presence_op
    async def join(
        self,
        zone_id: str,
        username: str,
        gender: str,
        user_id: str | None = None,
    ) -> ZoneJoin:
        """Add a user to a zone and return who is currently there."""
        if not zone_id or not username or not gender:
            raise ValidationError()
        backend = self._backend()
        user_id = user_id or generate_id("user")
        ttl = self._tunables.session_ttl
        session_key = make_key(KEY_PREFIX_USER_SESSION, user_id)

        previous = await backend.get(session_key)
        if previous is not None:
            old_zone = orjson.loads(previous).get("zone_id")
            if old_zone and old_zone != zone_id:
                await backend.srem(make_key(KEY_PREFIX_ZONE, old_zone), user_id)

        session = UserSession(username=username, gender=gender, zone_id=zone_id, joined_at=self._timestamp())
        await backend.set(session_key, _dumps(session), ttl)

        zone_key = make_key(KEY_PREFIX_ZONE, zone_id)
        await backend.sadd(zone_key, user_id)
        await backend.expire(zone_key, ttl)

        members = await self._resolve_members(backend, zone_id)
        logger.info("User joined zone", zone_id=zone_id, user_id=user_id, members=len(members))
        return ZoneJoin(user_id=user_id, zone_id=zone_id, users_in_zone=members)

    @_presence_op
    async def leave(self, zone_id: str, user_id: str) -> None:
        """Remove a user from a zone. Leaving twice is not an error."""
        if not zone_id or not user_id:
            raise ValidationError()
        backend = self._backend()
        await backend.srem(make_key(KEY_PREFIX_ZONE, zone_id), user_id)
        await backend.delete(make_key(KEY_PREFIX_USER_SESSION, user_id))
        logger.info("User left zone", zone_id=zone_id, user_id=user_id)

    @_presence_op
    async def post_message(self, zone_id: str, user_id: str, text: str) -> ChatMessage:
        """Append a message to the zone log; only current members may post."""
        if not zone_id or not user_id:
            raise ValidationError()
        backend = self._backend()
        if not await backend.sismember(make_key(KEY_PREFIX_ZONE, zone_id), user_id):
            raise NotAMemberError()

        raw_session = await backend.get(make_key(KEY_PREFIX_USER_SESSION, user_id))
        if raw_session is None:
            raise NotAMemberError("User session expired")
        session = UserSession(**orjson.loads(raw_session))

        message = ChatMessage(
            id=generate_id("msg"),
            user_id=user_id,
            username=session.username,
            gender=session.gender,
            message=self._clip(text),
            timestamp=self._timestamp(),
            zone_id=zone_id,
        )
        await self._push_message(
            backend,
            make_key(KEY_PREFIX_ZONE_MESSAGES, zone_id),
            message,
            self._tunables.message_log_ttl,
        )
        return message

    @_presence_op
    async def list_messages(self, zone_id: str, user_id: str, limit: int = 100) -> MessagePage:
        """Most recent ``limit`` messages in chronological order."""
        if not zone_id or not user_id:
            raise ValidationError()
        limit = max(1, limit)
        backend = self._backend()
        if not await backend.sismember(make_key(KEY_PREFIX_ZONE, zone_id), user_id):
            raise NotAMemberError()

        key = make_key(KEY_PREFIX_ZONE_MESSAGES, zone_id)
        raw = await backend.lrange(key, 0, limit - 1)
        total = await backend.llen(key)
        return MessagePage(
            messages=self._parse_messages(raw),
            total=total,
            has_more=total > limit,
            zone_id=zone_id,
        )

    @_presence_op
    async def list_members(self, zone_id: str) -> list[ZoneMember]:
        return await self._resolve_members(self._backend(), zone_id)

    async def _resolve_members(self, backend: KeyValueBackend, zone_id: str) -> list[ZoneMember]:
        members: list[ZoneMember] = []
        for user_id in sorted(await backend.smembers(make_key(KEY_PREFIX_ZONE, zone_id))):
            raw = await backend.get(make_key(KEY_PREFIX_USER_SESSION, user_id))
            if raw is None:
                continue
            session = UserSession(**orjson.loads(raw))
            members.append(
                ZoneMember(
                    user_id=user_id,
                    username=session.username,
                    gender=session.gender,
                    joined_at=session.joined_at,
                )
            )
        return members

    @_presence_op
    async def list_active_zones(self) -> list[ActiveZone]:
        """Non-empty grid zones plus private rooms still waiting for a partner."""
        backend = self._backend()
        zones: list[ActiveZone] = []
        batch = self._tunables.scan_batch_size

        zone_prefix = f"{KEY_PREFIX_ZONE}:"
        async for key in backend.scan_keys(f"{zone_prefix}*", batch):
            zone_id = key[len(zone_prefix):]
            coords = parse_zone_id(zone_id)
            if coords is None:
                continue
            user_ids = await backend.smembers(key)
            if user_ids:
                zones.append(ActiveZone(zone_id=zone_id, lat=coords[0], lng=coords[1], user_count=len(user_ids)))

        async for key in backend.scan_keys(f"{KEY_PREFIX_PRIVATE_ROOM}:*", batch):
            raw = await backend.get(key)
            if raw is None:
                continue
            try:
                room = PrivateRoom(**orjson.loads(raw))
            except (orjson.JSONDecodeError, TypeError):
                logger.debug("Skipping malformed private room", key=key)
                continue
            if room.status == "waiting":
                zones.append(
                    ActiveZone(
                        zone_id=room.id,
                        lat=room.lat,
                        lng=room.lng,
                        user_count=room.user_count,
                        private=True,
                    )
                )
        return zones

    # ========== Private chat ==========

    def _new_room(self, lat: float, lng: float) -> PrivateRoom:
        return PrivateRoom(
            id=generate_id("room"),
            lat=float(lat),
            lng=float(lng),
            created_at=self._timestamp(),
        )

    @_presence_op
    async def create_private(self, lat: float, lng: float) -> PrivateRoom:
        """Drop an empty private room on the map."""
        backend = self._backend()
        room = self._new_room(lat, lng)
        await backend.set(make_key(KEY_PREFIX_PRIVATE_ROOM, room.id), _dumps(room), self._tunables.private_room_ttl)
        logger.info("Private room created", room_id=room.id)
        return room

    @_presence_op
    async def create_and_join_private(
        self,
        lat: float,
        lng: float,
        username: str,
        gender: str,
    ) -> tuple[PrivateRoom, PrivateSession]:
        """Create a room with its creator waiting in a new session."""
        if not username or not gender:
            raise ValidationError()
        backend = self._backend()
        ttl = self._tunables.private_room_ttl
        room = self._new_room(lat, lng)
        session = PrivateSession(
            id=generate_id("session"),
            room_id=room.id,
            created_at=room.created_at,
            users=[Participant(username=username, gender=gender, joined_at=room.created_at)],
        )
        await backend.set(make_key(KEY_PREFIX_PRIVATE_ROOM, room.id), _dumps(room), ttl)
        await backend.set(make_key(KEY_PREFIX_PRIVATE_SESSION, session.id), _dumps(session), ttl)
        await backend.set(make_key(KEY_PREFIX_PRIVATE_ROOM_SESSION, room.id), session.id, ttl)
        logger.info("Private room created and joined", room_id=room.id, session_id=session.id)
        return room, session

    @_presence_op
    async def join_private(self, room_id: str, username: str, gender: str) -> tuple[PrivateRoom, PrivateSession]:
        """Second participant joins; room and session become active together."""
        if not room_id or not username or not gender:
            raise ValidationError()
        backend = self._backend()
        ttl = self._tunables.private_room_ttl
        room_key = make_key(KEY_PREFIX_PRIVATE_ROOM, room_id)

        raw_room = await backend.get(room_key)
        if raw_room is None:
            raise NotFoundError("Chat room")
        room = PrivateRoom(**orjson.loads(raw_room))
        if room.status != "waiting":
            raise RoomUnavailableError()

        session_id = await backend.get(make_key(KEY_PREFIX_PRIVATE_ROOM_SESSION, room_id))
        raw_session = await backend.get(make_key(KEY_PREFIX_PRIVATE_SESSION, session_id)) if session_id else None
        if raw_session is None:
            raise NotFoundError("Chat session")
        session = _load_session(raw_session)
        if session.status != "waiting":
            raise RoomUnavailableError()

        session.users.append(Participant(username=username, gender=gender, joined_at=self._timestamp()))
        session.status = "active"
        room.user_count = 2
        room.status = "active"

        await backend.set(room_key, _dumps(room), ttl)
        await backend.set(make_key(KEY_PREFIX_PRIVATE_SESSION, session.id), _dumps(session), ttl)
        await backend.delete(make_key(KEY_PREFIX_PRIVATE_ROOM_SESSION, room_id))
        logger.info("Private chat active", room_id=room_id, session_id=session.id)
        return room, session

    @_presence_op
    async def post_private_message(
        self,
        session_id: str,
        username: str,
        gender: str,
        text: str,
    ) -> ChatMessage:
        if not session_id or not username or not gender:
            raise ValidationError()
        backend = self._backend()
        raw = await backend.get(make_key(KEY_PREFIX_PRIVATE_SESSION, session_id))
        if raw is None:
            # Orphaned log from an expired session
            await backend.delete(make_key(KEY_PREFIX_PRIVATE_MESSAGES, session_id))
            raise SessionEndedError()
        session = _load_session(raw)
        if session.status == "ended":
            await self._teardown(backend, session)
            raise SessionEndedError("Chat session has ended")
        if session.status != "active":
            raise RoomUnavailableError("Waiting for a second participant")

        message = ChatMessage(
            id=generate_id("msg"),
            username=username,
            gender=gender,
            message=self._clip(text),
            timestamp=self._timestamp(),
            session_id=session_id,
        )
        await self._push_message(
            backend,
            make_key(KEY_PREFIX_PRIVATE_MESSAGES, session_id),
            message,
            self._tunables.private_room_ttl,
        )
        return message

    @_presence_op
    async def list_private_messages(self, session_id: str) -> PrivateMessagePage:
        """Poll a private session; raises ``SessionEndedError`` once it is gone."""
        if not session_id:
            raise ValidationError()
        backend = self._backend()
        raw = await backend.get(make_key(KEY_PREFIX_PRIVATE_SESSION, session_id))
        if raw is None:
            raise SessionEndedError()
        session = _load_session(raw)
        if session.status == "ended":
            raise SessionEndedError("Chat session has ended")

        raw_messages = await backend.lrange(
            make_key(KEY_PREFIX_PRIVATE_MESSAGES, session_id), 0, self._tunables.message_log_capacity - 1
        )
        return PrivateMessagePage(
            messages=self._parse_messages(raw_messages),
            session_id=session_id,
            status=session.status,
        )

    @_presence_op
    async def leave_private(self, session_id: str) -> None:
        """End the conversation for both participants and delete everything."""
        if not session_id:
            raise ValidationError()
        backend = self._backend()
        raw = await backend.get(make_key(KEY_PREFIX_PRIVATE_SESSION, session_id))
        if raw is None:
            raise SessionEndedError()
        session = _load_session(raw)
        session.status = "ended"
        await self._teardown(backend, session)
        logger.info("Private chat ended", room_id=session.room_id, session_id=session_id)

    async def _teardown(self, backend: KeyValueBackend, session: PrivateSession) -> None:
        await backend.delete(
            make_key(KEY_PREFIX_PRIVATE_SESSION, session.id),
            make_key(KEY_PREFIX_PRIVATE_MESSAGES, session.id),
            make_key(KEY_PREFIX_PRIVATE_ROOM, session.room_id),
            make_key(KEY_PREFIX_PRIVATE_ROOM_SESSION, session.room_id),
        )
