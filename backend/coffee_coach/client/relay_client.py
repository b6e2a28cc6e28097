"""HTTP client for the relay endpoints, used by the bridge and the screens."""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, Dict, Mapping, Optional

import aiohttp

logger = logging.getLogger(__name__)

DEFAULT_RELAY_URL = "http://localhost:4001"

# A total-timeout expiry surfaces as asyncio.TimeoutError, not a ClientError.
TRANSPORT_ERRORS = (aiohttp.ClientError, asyncio.TimeoutError)


class RelayRequestError(Exception):
    """Raised when the relay answers with a non-2xx status."""

    def __init__(self, status: int, payload: Dict[str, Any], path: str) -> None:
        self.status = status
        self.payload = payload
        self.path = path
        super().__init__(f"Relay {path} failed: {status} {payload}")

    @property
    def code(self) -> Optional[int]:
        return self.payload.get("code")

    @property
    def message(self) -> Optional[str]:
        return self.payload.get("message") or self.payload.get("error")


class RelayClient:
    def __init__(self, base_url: str = DEFAULT_RELAY_URL, timeout: float = 60.0) -> None:
        self.base_url = base_url.rstrip("/")
        self._timeout = aiohttp.ClientTimeout(total=timeout)

    async def create_session(
        self, avatar_id: Optional[str] = None, voice_id: Optional[str] = None
    ) -> Dict[str, Any]:
        body: Dict[str, Any] = {}
        if avatar_id:
            body["avatarId"] = avatar_id
        if voice_id:
            body["voiceId"] = voice_id
        return await self._post("/api/session", body)

    async def start_session(
        self, session_id: str, answer: Mapping[str, Any]
    ) -> Dict[str, Any]:
        return await self._post("/api/start", {"sessionId": session_id, "answer": dict(answer)})

    async def send_ice_candidate(self, session_id: str, candidate: Any) -> Dict[str, Any]:
        return await self._post("/api/ice", {"sessionId": session_id, "candidate": candidate})

    async def speak(self, session_id: str, text: str) -> Dict[str, Any]:
        return await self._post("/api/speak", {"sessionId": session_id, "text": text})

    async def stop_session(self, session_id: str) -> Dict[str, Any]:
        return await self._post("/api/stop", {"sessionId": session_id})

    async def cleanup(self) -> Dict[str, Any]:
        return await self._post("/api/cleanup", None)

    async def _post(self, path: str, body: Optional[Dict[str, Any]]) -> Dict[str, Any]:
        async with aiohttp.ClientSession(timeout=self._timeout) as client:
            async with client.post(self.base_url + path, json=body) as response:
                if 200 <= response.status < 300:
                    try:
                        payload = await response.json(content_type=None)
                    except ValueError:
                        logger.warning("Relay %s returned a non-JSON body", path)
                        return {}
                    if payload is None:
                        return {}
                    return payload if isinstance(payload, dict) else {"data": payload}

                text = await response.text()
                logger.error("Relay %s failed: %s %s", path, response.status, text)
                raise RelayRequestError(response.status, _error_payload(text), path)


def _error_payload(text: str) -> Dict[str, Any]:
    try:
        payload = json.loads(text) if text else {}
    except ValueError:
        return {"error": text}
    return payload if isinstance(payload, dict) else {"error": text}
