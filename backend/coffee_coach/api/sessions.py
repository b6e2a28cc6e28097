"""Streaming session endpoints."""

from __future__ import annotations

import logging
from typing import Any, Dict

from fastapi import APIRouter, Depends

from coffee_coach.api.dependencies import get_relay
from coffee_coach.schemas.sessions import (
    CleanupResponse,
    IceRequest,
    MessageResponse,
    SessionCreateRequest,
    SessionResponse,
    SpeakRequest,
    StartRequest,
    StopRequest,
)
from coffee_coach.services.session_relay import SessionRelay

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/session", response_model=SessionResponse)
async def create_session(
    payload: SessionCreateRequest | None = None,
    relay: SessionRelay = Depends(get_relay),
) -> Dict[str, Any]:
    logger.info("Received POST /api/session")
    payload = payload or SessionCreateRequest()
    return await relay.create_session(payload.avatar_id, payload.voice_id)


@router.post("/start")
async def start_session(
    payload: StartRequest | None = None,
    relay: SessionRelay = Depends(get_relay),
) -> Dict[str, Any]:
    logger.info("Received POST /api/start")
    payload = payload or StartRequest()
    answer = payload.answer.model_dump() if payload.answer else None
    return await relay.submit_answer(payload.session_id, answer)


@router.post("/ice")
async def submit_ice_candidate(
    payload: IceRequest | None = None,
    relay: SessionRelay = Depends(get_relay),
) -> Dict[str, Any]:
    logger.info("Received POST /api/ice")
    payload = payload or IceRequest()
    return await relay.submit_ice_candidate(payload.session_id, payload.candidate)


@router.post("/speak", response_model=MessageResponse)
async def speak(
    payload: SpeakRequest | None = None,
    relay: SessionRelay = Depends(get_relay),
) -> Dict[str, Any]:
    logger.info("Received POST /api/speak")
    payload = payload or SpeakRequest()
    return await relay.speak(payload.session_id, payload.text)


@router.post("/stop", response_model=MessageResponse)
async def stop_session(
    payload: StopRequest | None = None,
    relay: SessionRelay = Depends(get_relay),
) -> Dict[str, Any]:
    logger.info("Received POST /api/stop")
    payload = payload or StopRequest()
    return await relay.stop_session(payload.session_id)


@router.post("/cleanup", response_model=CleanupResponse)
async def cleanup_sessions(
    relay: SessionRelay = Depends(get_relay),
) -> Dict[str, Any]:
    logger.info("Received POST /api/cleanup")
    return await relay.cleanup_all_sessions()
