"""HeyGen streaming API client."""

from __future__ import annotations

import json
import logging
from typing import Any, Dict, List, Mapping, Optional

import aiohttp

from coffee_coach.errors import ConfigError, UpstreamError

logger = logging.getLogger(__name__)


class HeyGenClient:
    """Thin client for HeyGen's streaming avatar REST API."""

    def __init__(
        self,
        api_key: str | None,
        base_url: str,
        timeout: float = 30.0,
    ) -> None:
        self._api_key = api_key
        self._base_url = base_url.rstrip("/")
        self._timeout = aiohttp.ClientTimeout(total=timeout)

    async def list_avatars(self) -> List[Dict[str, Any]]:
        data = await self._request("GET", "/v1/streaming/avatar.list", operation="avatar.list")
        avatars = data.get("data") or []
        logger.debug("HeyGen returned %d streaming avatars", len(avatars))
        return avatars

    async def new_session(
        self, avatar_id: str, voice_id: Optional[str] = None
    ) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"avatar_id": avatar_id}
        if voice_id:
            payload["voice"] = {"voice_id": voice_id}
        logger.debug("streaming.new request body: %s", payload)
        return await self._request(
            "POST", "/v1/streaming.new", json_body=payload, operation="streaming.new"
        )

    async def start_session(
        self, session_id: str, answer: Mapping[str, Any]
    ) -> Dict[str, Any]:
        return await self._request(
            "POST",
            "/v1/streaming.start",
            json_body={"session_id": session_id, "sdp": dict(answer)},
            operation="streaming.start",
        )

    async def send_ice_candidate(
        self, session_id: str, candidate: Any
    ) -> Dict[str, Any]:
        return await self._request(
            "POST",
            "/v1/streaming.ice",
            json_body={"session_id": session_id, "candidate": candidate},
            operation="streaming.ice",
        )

    async def speak(self, session_id: str, text: str) -> Dict[str, Any]:
        return await self._request(
            "POST",
            "/v1/streaming.task",
            json_body={"session_id": session_id, "text": text, "task_type": "repeat"},
            operation="streaming.task",
        )

    async def stop_session(self, session_id: str) -> Dict[str, Any]:
        return await self._request(
            "POST",
            "/v1/streaming.stop",
            json_body={"session_id": session_id},
            operation="streaming.stop",
        )

    async def _request(
        self,
        method: str,
        path: str,
        *,
        operation: str,
        json_body: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        if not self._api_key:
            logger.error("HEYGEN_API_KEY environment variable is not set")
            raise ConfigError("HEYGEN_API_KEY missing in environment")

        headers = {"X-Api-Key": self._api_key}
        if json_body is not None:
            headers["Content-Type"] = "application/json"

        try:
            async with aiohttp.ClientSession(timeout=self._timeout) as client:
                async with client.request(
                    method,
                    self._base_url + path,
                    headers=headers,
                    json=json_body,
                ) as response:
                    if not 200 <= response.status < 300:
                        text = await response.text()
                        logger.error(
                            "HeyGen API Error (%s): %s %s", operation, response.status, text
                        )
                        raise UpstreamError(
                            response.status,
                            text,
                            error=f"{operation} failed",
                            payload=_decode(text),
                        )
                    try:
                        payload = await response.json(content_type=None)
                    except ValueError:
                        logger.warning("HeyGen returned a non-JSON body for %s", operation)
                        payload = {}
        except (aiohttp.ClientError, TimeoutError) as exc:
            logger.error("HeyGen %s request failed: %s", operation, exc)
            raise UpstreamError(
                502, str(exc), error=f"{operation} request failed"
            ) from exc

        logger.info("HeyGen API Success (%s)", operation)
        if payload is None:
            return {}
        return payload if isinstance(payload, dict) else {"data": payload}


def _decode(text: str) -> Dict[str, Any]:
    if not text:
        return {}
    try:
        decoded = json.loads(text)
    except ValueError:
        logger.warning("HeyGen returned a non-JSON body: %s", text[:200])
        return {}
    return decoded if isinstance(decoded, dict) else {"data": decoded}
