"""Chat API endpoints: grid-cell zones and 1:1 private rooms."""

from typing import Any

from fastapi import APIRouter, Query

from geonotes.api.deps import (
    ClientIdentity,
    Limiter,
    Presence,
    check_daily_limit,
    check_message_rate_limit,
)
from geonotes.api.schemas import (
    MessageSentResponse,
    PrivateCreateAndJoinRequest,
    PrivateCreateRequest,
    PrivateJoinRequest,
    PrivateLeaveRequest,
    PrivateMessageRequest,
    ZoneJoinRequest,
    ZoneLeaveRequest,
    ZoneMessageRequest,
)
from geonotes.core.logging import get_logger
from geonotes.services.presence import to_dict

logger = get_logger(__name__)
router = APIRouter(prefix="/chat", tags=["Chat"])


# ========== Zone chat ==========

@router.post("/join", summary="Join a chat zone")
async def join_zone(request: ZoneJoinRequest, presence: Presence) -> dict[str, Any]:
    result = await presence.join(
        request.zone_id,
        request.username,
        request.gender,
        user_id=request.user_id,
    )
    return {
        "user_id": result.user_id,
        "users_in_zone": [to_dict(u) for u in result.users_in_zone],
        "message": f"Joined chat zone {result.zone_id}",
    }


@router.post("/leave", summary="Leave a chat zone")
async def leave_zone(request: ZoneLeaveRequest, presence: Presence) -> dict[str, str]:
    await presence.leave(request.zone_id, request.user_id)
    return {"message": f"Left chat zone {request.zone_id}"}


@router.post(
    "/message",
    response_model=MessageSentResponse,
    summary="Send a message to a zone",
    responses={403: {"description": "User not in zone"}, 429: {"description": "Rate limit exceeded"}},
)
async def send_zone_message(
    request: ZoneMessageRequest,
    presence: Presence,
    rate_limiter: Limiter,
    identity: ClientIdentity,
) -> MessageSentResponse:
    await check_message_rate_limit(identity, rate_limiter, "zone", request.message)
    message = await presence.post_message(request.zone_id, request.user_id, request.message)
    return MessageSentResponse(message_id=message.id)


@router.get("/messages/{zone_id}", summary="Poll zone messages")
async def get_zone_messages(
    zone_id: str,
    presence: Presence,
    user_id: str = Query(..., min_length=1),
    limit: int = Query(default=100, ge=1, le=100),
) -> dict[str, Any]:
    page = await presence.list_messages(zone_id, user_id, limit)
    return to_dict(page)


@router.get("/users/{zone_id}", summary="List users in a zone")
async def get_zone_users(zone_id: str, presence: Presence) -> dict[str, Any]:
    users = await presence.list_members(zone_id)
    return {"users": [to_dict(u) for u in users], "count": len(users), "zone_id": zone_id}


@router.get("/zones", summary="List active zones and waiting private rooms")
async def get_active_zones(presence: Presence) -> dict[str, Any]:
    zones = await presence.list_active_zones()
    return {"zones": [to_dict(z) for z in zones], "total_zones": len(zones)}


# ========== Private chat ==========

@router.post("/private/create", summary="Create an empty private room")
async def create_private_room(
    request: PrivateCreateRequest,
    presence: Presence,
    rate_limiter: Limiter,
    identity: ClientIdentity,
) -> dict[str, Any]:
    await check_daily_limit(identity, rate_limiter, "private")
    room = await presence.create_private(request.lat, request.lng)
    return {"chat_room": to_dict(room), "message": "Private chat room created"}


@router.post("/private/create-and-join", summary="Create a private room and wait in it")
async def create_and_join_private_room(
    request: PrivateCreateAndJoinRequest,
    presence: Presence,
    rate_limiter: Limiter,
    identity: ClientIdentity,
) -> dict[str, Any]:
    await check_daily_limit(identity, rate_limiter, "private")
    room, session = await presence.create_and_join_private(
        request.lat, request.lng, request.username, request.gender
    )
    return {
        "chat_room": to_dict(room),
        "chat_session": to_dict(session),
        "message": "Private chat room created and joined",
    }


@router.post(
    "/private/join",
    summary="Join a waiting private room",
    responses={404: {"description": "Room not found"}, 409: {"description": "Room not available"}},
)
async def join_private_room(request: PrivateJoinRequest, presence: Presence) -> dict[str, Any]:
    room, session = await presence.join_private(request.chat_room_id, request.username, request.gender)
    return {
        "chat_session": to_dict(session),
        "user_count": room.user_count,
        "message": "Joined private chat",
    }


@router.post(
    "/private/message",
    response_model=MessageSentResponse,
    summary="Send a private message",
    responses={404: {"description": "Session ended"}, 429: {"description": "Rate limit exceeded"}},
)
async def send_private_message(
    request: PrivateMessageRequest,
    presence: Presence,
    rate_limiter: Limiter,
    identity: ClientIdentity,
) -> MessageSentResponse:
    await check_message_rate_limit(identity, rate_limiter, "private", request.message)
    message = await presence.post_private_message(
        request.session_id, request.username, request.gender, request.message
    )
    return MessageSentResponse(message_id=message.id)


@router.get(
    "/private/messages/{session_id}",
    summary="Poll a private session",
    responses={404: {"description": "Session ended"}},
)
async def get_private_messages(session_id: str, presence: Presence) -> dict[str, Any]:
    page = await presence.list_private_messages(session_id)
    return to_dict(page)


@router.post("/private/leave", summary="Leave and end a private chat for both users")
async def leave_private_room(request: PrivateLeaveRequest, presence: Presence) -> dict[str, Any]:
    await presence.leave_private(request.session_id)
    return {"message": "Left private chat - session ended for both users", "ended": True}
