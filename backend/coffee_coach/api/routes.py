"""Top-level router composition."""

from fastapi import APIRouter

from . import health, sessions

api_router = APIRouter()
api_router.include_router(health.router, prefix="/health", tags=["Health"])
api_router.include_router(sessions.router, tags=["Sessions"])
