"""Pydantic schemas for API requests and responses."""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field


# ============================================================
# Zone Chat Schemas
# ============================================================

class ZoneJoinRequest(BaseModel):
    """Schema for joining a grid-cell chat zone."""

    username: str = Field(..., min_length=1, max_length=50)
    gender: str = Field(..., min_length=1, max_length=20)
    zone_id: str = Field(..., min_length=1, max_length=64)
    user_id: str | None = Field(default=None, max_length=64)


class ZoneLeaveRequest(BaseModel):
    user_id: str = Field(..., min_length=1, max_length=64)
    zone_id: str = Field(..., min_length=1, max_length=64)


class ZoneMessageRequest(BaseModel):
    user_id: str = Field(..., min_length=1, max_length=64)
    zone_id: str = Field(..., min_length=1, max_length=64)
    message: str = Field(..., min_length=1, max_length=2000)


# ============================================================
# Private Chat Schemas
# ============================================================

class PrivateCreateRequest(BaseModel):
    lat: float = Field(..., ge=-90, le=90)
    lng: float = Field(..., ge=-180, le=180)


class PrivateCreateAndJoinRequest(PrivateCreateRequest):
    username: str = Field(..., min_length=1, max_length=50)
    gender: str = Field(..., min_length=1, max_length=20)


class PrivateJoinRequest(BaseModel):
    chat_room_id: str = Field(..., min_length=1, max_length=64)
    username: str = Field(..., min_length=1, max_length=50)
    gender: str = Field(..., min_length=1, max_length=20)


class PrivateMessageRequest(BaseModel):
    session_id: str = Field(..., min_length=1, max_length=64)
    username: str = Field(..., min_length=1, max_length=50)
    gender: str = Field(..., min_length=1, max_length=20)
    message: str = Field(..., min_length=1, max_length=2000)


class PrivateLeaveRequest(BaseModel):
    session_id: str = Field(..., min_length=1, max_length=64)


# ============================================================
# Common Schemas
# ============================================================

class MessageSentResponse(BaseModel):
    message: str = "Message sent"
    message_id: str


class SuccessResponse(BaseModel):
    success: bool = True
    message: str | None = None


# ============================================================
# Health Schemas
# ============================================================

class ServiceHealth(BaseModel):
    """Health status for a single dependency."""

    status: str = Field(..., pattern=r"^(healthy|degraded|unhealthy)$")
    latency_ms: float | None = None
    details: dict[str, Any] | None = None


class HealthResponse(BaseModel):
    status: str = Field(..., pattern=r"^(healthy|degraded|unhealthy)$")
    timestamp: datetime
    version: str
    services: dict[str, ServiceHealth]
