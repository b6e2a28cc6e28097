"""Health endpoint."""

from __future__ import annotations

from fastapi import APIRouter, Depends

from coffee_coach.api.dependencies import get_app_settings, get_relay
from coffee_coach.config import Settings
from coffee_coach.schemas.sessions import HealthResponse
from coffee_coach.services.session_relay import SessionRelay

router = APIRouter()


@router.get("", response_model=HealthResponse)
async def health(
    settings: Settings = Depends(get_app_settings),
    relay: SessionRelay = Depends(get_relay),
) -> HealthResponse:
    return HealthResponse(
        status="ok" if settings.provider_configured else "degraded",
        provider_configured=settings.provider_configured,
        active_sessions=len(relay.registry),
    )
