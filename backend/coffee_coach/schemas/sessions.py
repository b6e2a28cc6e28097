"""Schemas for session endpoints."""

from __future__ import annotations

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class _CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class SessionCreateRequest(_CamelModel):
    avatar_id: Optional[str] = Field(default=None, alias="avatarId")
    voice_id: Optional[str] = Field(default=None, alias="voiceId")


class SessionDescription(BaseModel):
    type: Optional[str] = None
    sdp: Optional[str] = None


class StartRequest(_CamelModel):
    session_id: Optional[str] = Field(default=None, alias="sessionId")
    answer: Optional[SessionDescription] = None


class IceRequest(_CamelModel):
    session_id: Optional[str] = Field(default=None, alias="sessionId")
    candidate: Optional[Any] = None


class SpeakRequest(_CamelModel):
    session_id: Optional[str] = Field(default=None, alias="sessionId")
    text: Optional[str] = None


class StopRequest(_CamelModel):
    session_id: Optional[str] = Field(default=None, alias="sessionId")


class SessionResponse(_CamelModel):
    session_id: str = Field(alias="sessionId")
    session_url: Optional[str] = Field(default=None, alias="sessionUrl")
    offer: Dict[str, Any]
    ice_servers: Optional[List[Any]] = Field(default=None, alias="iceServers")
    raw: Dict[str, Any]


class MessageResponse(BaseModel):
    message: str
    raw: Dict[str, Any]


class CleanupResult(_CamelModel):
    session_id: str = Field(alias="sessionId")
    success: bool
    error: Optional[str] = None


class CleanupResponse(_CamelModel):
    message: str
    results: List[CleanupResult]
    cleared_sessions: int = Field(alias="clearedSessions")


class HealthResponse(_CamelModel):
    status: str
    provider_configured: bool = Field(alias="providerConfigured")
    active_sessions: int = Field(alias="activeSessions")
