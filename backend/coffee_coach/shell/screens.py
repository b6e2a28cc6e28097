"""Screen controllers for the two interaction modes.

``DirectScreen`` speaks the avatar's scripted line as soon as the stream is
up. ``ChatScreen`` takes a user prompt, answers it with a canned persona
reply and ends the session once the bridge reports the speech finished.
Both only drive the relay client and the bridge; they hold UI state, no
protocol logic.
"""

from __future__ import annotations

import asyncio
import enum
import logging
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Optional

from coffee_coach.client.relay_client import TRANSPORT_ERRORS, RelayClient, RelayRequestError
from coffee_coach.client.webrtc_bridge import AvatarBridge, EventSink
from coffee_coach.config import SESSION_LIMIT_ERROR_CODE
from coffee_coach.shell.avatars import AvatarDescriptor
from coffee_coach.shell.personas import compose_reply, get_persona

logger = logging.getLogger(__name__)

BridgeFactory = Callable[[EventSink], AvatarBridge]
Sleep = Callable[[float], Awaitable[Any]]

MIN_PROMPT_LENGTH = 5
MAX_PROMPT_LENGTH = 200


class PromptError(ValueError):
    """Raised when a chat prompt cannot be sent."""


class ChatPhase(str, enum.Enum):
    INPUT = "input"
    SPEAKING = "speaking"
    COMPLETED = "completed"


@dataclass
class ChatTranscript:
    prompt: str
    spoken_text: str
    duration: float


def describe_relay_error(exc: RelayRequestError) -> str:
    if exc.status == 429 and exc.code == SESSION_LIMIT_ERROR_CODE:
        hint = exc.message or "Please wait 10 minutes or upgrade your plan."
        return f"Session Limit Reached: {hint}"
    return f"Backend error {exc.status}: {exc.message}"


def default_bridge_factory(relay: RelayClient) -> BridgeFactory:
    return lambda emit: AvatarBridge(relay, emit)


class AvatarScreen:
    """Session plumbing shared by both modes."""

    def __init__(
        self,
        avatar: AvatarDescriptor,
        relay: RelayClient,
        bridge_factory: Optional[BridgeFactory] = None,
    ) -> None:
        self.avatar = avatar
        self._relay = relay
        self.bridge = (bridge_factory or default_bridge_factory(relay))(self.handle_event)

        self.is_loading = False
        self.bridge_ready = False
        self.is_connected = False
        self.is_speaking = False
        self.status_message = ""
        self.error_message = ""
        self.session_data: Optional[Dict[str, Any]] = None

    @property
    def session_id(self) -> Optional[str]:
        return self.session_data["sessionId"] if self.session_data else None

    async def open_session(self) -> bool:
        """Create a relay session and hand it to the bridge."""
        self.is_loading = True
        self.error_message = ""
        try:
            data = await self._relay.create_session(self.avatar.id, self.avatar.voice_id)
        except RelayRequestError as exc:
            self.error_message = describe_relay_error(exc)
            return False
        except TRANSPORT_ERRORS as exc:
            self.error_message = f"Backend unreachable: {exc}"
            return False
        finally:
            self.is_loading = False

        if not data.get("sessionId"):
            logger.error("Missing sessionId in relay response: %s", data)
            self.error_message = "Invalid response: sessionId not found."
            return False

        self.session_data = {
            "sessionId": data["sessionId"],
            "sessionUrl": data.get("sessionUrl"),
            "offer": data.get("offer"),
            "iceServers": data.get("iceServers"),
            "backendUrl": self._relay.base_url,
        }
        await self.bridge.initialize(self.session_data)
        return True

    async def stop_session(self) -> None:
        if not self.session_data:
            logger.info("No active session to stop.")
            return
        session_id = self.session_id
        self.session_data = None
        try:
            await self._relay.stop_session(session_id)
        except (RelayRequestError, *TRANSPORT_ERRORS) as exc:
            logger.error("Error stopping session %s: %s", session_id, exc)
        await self.bridge.disconnect()

    async def handle_event(self, event: Dict[str, Any]) -> None:
        kind = event.get("type")
        if kind == "ready":
            self.bridge_ready = True
        elif kind == "status":
            self.status_message = event.get("message", "")
            state = event.get("state")
            if state == "connected" and not self.is_connected:
                self.is_connected = True
                await self.on_connected()
            elif state == "disconnected":
                self.is_connected = False
        elif kind == "speaking":
            self.is_speaking = True
            await self.on_speaking(event)
        elif kind == "speech_ended":
            self.is_speaking = False
            await self.on_speech_ended(event)
        elif kind == "error":
            self.error_message = f"Avatar error: {event.get('message')}"
            await self.on_error(event)
        elif kind == "debug":
            logger.debug("Bridge: %s", event.get("message"))
        else:
            logger.info("Unknown bridge event: %s", event)

    async def on_connected(self) -> None:
        pass

    async def on_speaking(self, event: Dict[str, Any]) -> None:
        pass

    async def on_speech_ended(self, event: Dict[str, Any]) -> None:
        pass

    async def on_error(self, event: Dict[str, Any]) -> None:
        pass


class DirectScreen(AvatarScreen):
    """Speaks the avatar's scripted line immediately after connecting."""

    @property
    def script(self) -> str:
        return get_persona(self.avatar.display_name).direct_script

    async def start(self) -> bool:
        return await self.open_session()

    async def say(self, text: str) -> None:
        await self.bridge.speak(text)

    async def stop(self) -> None:
        await self.stop_session()

    async def on_connected(self) -> None:
        await self.bridge.speak(self.script)


class ChatScreen(AvatarScreen):
    """Prompt in, templated reply spoken, session closed when it ends."""

    def __init__(
        self,
        avatar: AvatarDescriptor,
        relay: RelayClient,
        bridge_factory: Optional[BridgeFactory] = None,
        *,
        speak_delay: float = 5.0,
        on_complete: Optional[Callable[[ChatTranscript], None]] = None,
        sleep: Optional[Sleep] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        super().__init__(avatar, relay, bridge_factory)
        self.speak_delay = speak_delay
        self._on_complete = on_complete
        self._sleep = sleep or asyncio.sleep
        self._clock = clock

        self.phase = ChatPhase.INPUT
        self.prompt = ""
        self.reply = ""
        self.spoken_text = ""
        self.transcript: Optional[ChatTranscript] = None
        self._speech_started_at: Optional[float] = None

    async def start(self, prompt: str) -> bool:
        prompt = prompt.strip()
        if not prompt:
            raise PromptError("Please enter a message")
        if len(prompt) < MIN_PROMPT_LENGTH:
            raise PromptError("Message too short")
        if len(prompt) > MAX_PROMPT_LENGTH:
            raise PromptError("Message too long")

        logger.info("Starting chat session with prompt: %s", prompt)
        self.phase = ChatPhase.SPEAKING
        self.prompt = prompt
        self.reply = compose_reply(self.avatar.display_name, prompt)
        self.transcript = None
        self._speech_started_at = None

        if not await self.open_session():
            self.phase = ChatPhase.INPUT
            return False
        return True

    async def complete(self) -> Optional[ChatTranscript]:
        if self.phase is ChatPhase.COMPLETED:
            logger.info("Session already completed, ignoring duplicate call")
            return self.transcript
        self.phase = ChatPhase.COMPLETED
        self.is_speaking = False
        await self.stop_session()

        duration = 0.0
        if self._speech_started_at is not None:
            duration = self._clock() - self._speech_started_at
        self.transcript = ChatTranscript(
            prompt=self.prompt, spoken_text=self.spoken_text, duration=duration
        )
        if self._on_complete:
            self._on_complete(self.transcript)
        return self.transcript

    def reset(self) -> None:
        self.phase = ChatPhase.INPUT
        self.prompt = ""
        self.reply = ""
        self.spoken_text = ""
        self.error_message = ""
        self.is_speaking = False
        self.session_data = None
        self.transcript = None
        self._speech_started_at = None

    async def on_connected(self) -> None:
        if self.phase is not ChatPhase.SPEAKING:
            return
        # Give the vendor session a moment before the first task.
        await self._sleep(self.speak_delay)
        if self.phase is ChatPhase.SPEAKING and self.session_data:
            self._speech_started_at = self._clock()
            await self.bridge.speak(self.reply)

    async def on_speaking(self, event: Dict[str, Any]) -> None:
        self.spoken_text = event.get("text", "")
        if self._speech_started_at is None:
            self._speech_started_at = self._clock()

    async def on_speech_ended(self, event: Dict[str, Any]) -> None:
        await self.complete()

    async def on_error(self, event: Dict[str, Any]) -> None:
        self.phase = ChatPhase.INPUT
