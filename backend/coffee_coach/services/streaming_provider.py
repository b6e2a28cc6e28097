"""Streaming avatar provider interface."""

from __future__ import annotations

from typing import Any, Dict, List, Mapping, Optional, Protocol


class StreamingProvider(Protocol):
    async def list_avatars(self) -> List[Dict[str, Any]]:
        """Return the vendor's streaming avatar entries."""
        raise NotImplementedError

    async def new_session(
        self, avatar_id: str, voice_id: Optional[str] = None
    ) -> Dict[str, Any]:
        """Create a streaming session and return the decoded vendor body."""
        raise NotImplementedError

    async def start_session(
        self, session_id: str, answer: Mapping[str, Any]
    ) -> Dict[str, Any]:
        raise NotImplementedError

    async def send_ice_candidate(
        self, session_id: str, candidate: Any
    ) -> Dict[str, Any]:
        raise NotImplementedError

    async def speak(self, session_id: str, text: str) -> Dict[str, Any]:
        raise NotImplementedError

    async def stop_session(self, session_id: str) -> Dict[str, Any]:
        raise NotImplementedError
