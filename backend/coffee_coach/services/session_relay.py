"""Session relay: validates app requests and forwards them to the vendor."""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Mapping, Optional

from coffee_coach.config import Settings
from coffee_coach.errors import (
    BadRequest,
    ConfigError,
    NoActiveAvatar,
    SessionLimitReached,
    UpstreamError,
)
from coffee_coach.services.retry import RetriesExhausted, RetryPolicy, Sleep, retry_on_codes
from coffee_coach.services.session_registry import SessionRegistry
from coffee_coach.services.streaming_provider import StreamingProvider

logger = logging.getLogger(__name__)


class SessionRelay:
    """Relay operations exposed to the mobile app.

    The relay owns no vendor state beyond the ids in ``registry``; at most
    one of them is tracked at a time.
    """

    def __init__(
        self,
        provider: StreamingProvider,
        registry: SessionRegistry,
        *,
        api_key_configured: bool,
        retry_policy: Optional[RetryPolicy] = None,
        sleep: Optional[Sleep] = None,
    ) -> None:
        self._provider = provider
        self._registry = registry
        self._api_key_configured = api_key_configured
        self._retry_policy = retry_policy or RetryPolicy()
        self._sleep = sleep

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        provider: StreamingProvider,
        registry: Optional[SessionRegistry] = None,
        sleep: Optional[Sleep] = None,
    ) -> "SessionRelay":
        policy = RetryPolicy(
            max_attempts=settings.session_limit_max_attempts,
            delay=settings.session_limit_retry_delay,
            error_codes=frozenset(settings.session_limit_error_codes),
        )
        return cls(
            provider,
            registry or SessionRegistry(),
            api_key_configured=settings.provider_configured,
            retry_policy=policy,
            sleep=sleep,
        )

    @property
    def registry(self) -> SessionRegistry:
        return self._registry

    async def create_session(
        self, avatar_id: Optional[str] = None, voice_id: Optional[str] = None
    ) -> Dict[str, Any]:
        self._require_config()

        # Free tier allows a single concurrent session; release ours first.
        if len(self._registry):
            logger.info("Evicting %d tracked session(s) before creating a new one", len(self._registry))
            await self.cleanup_all_sessions()

        if not avatar_id:
            avatar_id = await self._pick_active_avatar()

        try:
            init = await retry_on_codes(
                lambda: self._provider.new_session(avatar_id, voice_id),
                self._retry_policy,
                sleep=self._sleep,
            )
        except RetriesExhausted as exc:
            logger.error(
                "Session limit persisted after %d attempts: %s",
                exc.attempts,
                exc.last_error,
            )
            raise SessionLimitReached(
                code=exc.last_error.code,
                attempts=exc.attempts,
                wait_hint=self._retry_policy.wait_hint(),
            ) from exc

        data = init.get("data") or {}
        session_id = data.get("session_id")
        offer = data.get("sdp")
        if not session_id:
            raise UpstreamError(500, str(init), error="sessionId not found", payload=init)
        if not offer:
            raise UpstreamError(500, str(init), error="SDP offer not found", payload=init)

        self._registry.add(session_id)
        logger.info("Created streaming session %s for avatar %s", session_id, avatar_id)
        return {
            "sessionId": session_id,
            "sessionUrl": data.get("realtime_endpoint"),
            "offer": offer,
            "iceServers": data.get("ice_servers2") or data.get("ice_servers"),
            "raw": init,
        }

    async def submit_answer(
        self, session_id: Optional[str], answer: Optional[Mapping[str, Any]]
    ) -> Dict[str, Any]:
        self._require_config()
        if (
            not session_id
            or not isinstance(answer, Mapping)
            or not answer.get("type")
            or not answer.get("sdp")
        ):
            raise BadRequest("sessionId and SDP answer {type,sdp} required")
        answer = {"type": answer["type"], "sdp": answer["sdp"]}
        return await self._provider.start_session(session_id, answer)

    async def submit_ice_candidate(
        self, session_id: Optional[str], candidate: Any
    ) -> Dict[str, Any]:
        self._require_config()
        if not session_id or not candidate:
            raise BadRequest("sessionId and candidate required")
        return await self._provider.send_ice_candidate(session_id, candidate)

    async def speak(self, session_id: Optional[str], text: Optional[str]) -> Dict[str, Any]:
        self._require_config()
        if not session_id or not text or not text.strip():
            raise BadRequest("sessionId and text required")
        raw = await self._provider.speak(session_id, text)
        return {"message": "Speak request sent", "raw": raw}

    async def stop_session(self, session_id: Optional[str]) -> Dict[str, Any]:
        self._require_config()
        if not session_id:
            raise BadRequest("sessionId is required to stop a session")

        if not self._registry.discard(session_id):
            logger.info("Session %s is not tracked, stopping it anyway", session_id)
        raw = await self._provider.stop_session(session_id)
        return {"message": "Session stopped successfully", "raw": raw}

    async def cleanup_all_sessions(self) -> Dict[str, Any]:
        self._require_config()
        session_ids = self._registry.snapshot()
        results: List[Dict[str, Any]] = []
        for session_id in session_ids:
            try:
                await self._provider.stop_session(session_id)
            except UpstreamError as exc:
                logger.warning("Failed to stop session %s: %s", session_id, exc)
                results.append({"sessionId": session_id, "success": False, "error": str(exc)})
            else:
                results.append({"sessionId": session_id, "success": True})
        self._registry.clear()
        return {
            "message": f"Cleaned up {len(session_ids)} sessions",
            "results": results,
            "clearedSessions": len(session_ids),
        }

    async def _pick_active_avatar(self) -> str:
        avatars = await self._provider.list_avatars()
        for avatar in avatars:
            if avatar.get("status") == "ACTIVE" and avatar.get("avatar_id"):
                logger.info("Using ACTIVE avatar_id: %s", avatar["avatar_id"])
                return avatar["avatar_id"]
        raise NoActiveAvatar(raw=avatars)

    def _require_config(self) -> None:
        if not self._api_key_configured:
            logger.error("HEYGEN_API_KEY environment variable is not set")
            raise ConfigError("HEYGEN_API_KEY missing in environment")
