"""Request-scoped access to the objects built in ``create_app``."""

from __future__ import annotations

from fastapi import Request

from coffee_coach.config import Settings
from coffee_coach.services.session_relay import SessionRelay


def get_relay(request: Request) -> SessionRelay:
    return request.app.state.relay


def get_app_settings(request: Request) -> Settings:
    return request.app.state.settings
