"""Error types raised by the relay and translated into JSON responses.

Every relay failure carries the HTTP status it maps to and knows how to
render itself as the ``{error, code?, message?}`` body the mobile app
expects.
"""

from __future__ import annotations

from typing import Any, Dict, Optional

from fastapi import status


class RelayError(Exception):
    """Base class for failures surfaced by the session relay."""

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(self, error: str, *, message: Optional[str] = None) -> None:
        self.error = error
        self.message = message
        super().__init__(message or error)

    def to_payload(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"error": self.error}
        if self.message:
            payload["message"] = self.message
        return payload


class ConfigError(RelayError):
    """Raised when the vendor credentials are missing."""


class BadRequest(RelayError):
    """Raised when a required field is missing or malformed."""

    status_code = status.HTTP_400_BAD_REQUEST


class NoActiveAvatar(RelayError):
    """Raised when the vendor avatar list has no ACTIVE entry."""

    def __init__(self, raw: Any = None) -> None:
        self.raw = raw
        super().__init__("No ACTIVE avatars available")

    def to_payload(self) -> Dict[str, Any]:
        payload = super().to_payload()
        if self.raw is not None:
            payload["raw"] = self.raw
        return payload


class UpstreamError(RelayError):
    """Raised for a vendor response that is not a success.

    ``status`` is the vendor HTTP status and ``body`` the raw response text.
    ``code`` and ``vendor_message`` are lifted from the body when it is JSON.
    """

    def __init__(
        self,
        status_code: int,
        body: str,
        *,
        error: str = "upstream request failed",
        payload: Optional[Dict[str, Any]] = None,
    ) -> None:
        self.status_code = status_code
        self.body = body
        self.payload = payload or {}
        self.code = self.payload.get("code")
        vendor_message = self.payload.get("message")
        super().__init__(error, message=vendor_message if isinstance(vendor_message, str) else None)

    def to_payload(self) -> Dict[str, Any]:
        payload = super().to_payload()
        if self.code is not None:
            payload["code"] = self.code
        payload["raw"] = self.payload or self.body
        return payload

    def __str__(self) -> str:
        return f"{self.error}: {self.status_code} {self.body}"


class SessionLimitReached(RelayError):
    """Raised when the vendor concurrency cap persists after every retry."""

    status_code = status.HTTP_429_TOO_MANY_REQUESTS

    def __init__(self, code: int, attempts: int, wait_hint: str) -> None:
        self.code = code
        self.attempts = attempts
        super().__init__("Session limit reached", message=wait_hint)

    def to_payload(self) -> Dict[str, Any]:
        payload = super().to_payload()
        payload["code"] = self.code
        return payload
