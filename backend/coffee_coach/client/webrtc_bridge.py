"""WebRTC bridge between the app screens and the avatar stream.

The bridge owns one ``RTCPeerConnection`` per session and talks to the
screens through plain dict messages:

* commands in: ``{"type": "initialize" | "speak" | "disconnect", ...}``
* events out: ``{"type": "ready" | "status" | "speaking" | "speech_ended"
  | "error" | "debug", ...}``

Neither "connected" nor "speech finished" is reported by the vendor to this
client, so both are inferred: connected on the first inbound video frame or
after ``connect_timeout`` seconds, speech finished after a duration
estimated from the word count.
"""

from __future__ import annotations

import asyncio
import enum
import json
import logging
from typing import Any, Awaitable, Callable, Dict, List, Mapping, Optional, Union

from aiortc import (
    RTCConfiguration,
    RTCIceCandidate,
    RTCIceServer,
    RTCPeerConnection,
    RTCSessionDescription,
)
from aiortc.mediastreams import MediaStreamError
from aiortc.sdp import candidate_from_sdp

from coffee_coach.client.relay_client import TRANSPORT_ERRORS, RelayClient, RelayRequestError
from coffee_coach.client.signalling import SignallingChannel, SignallingError

logger = logging.getLogger(__name__)

DEFAULT_ICE_SERVERS = [{"urls": "stun:stun.l.google.com:19302"}]
SESSION_NOT_READY_CODE = 400006
CONNECTED_MESSAGE = "Avatar connected!"

EventSink = Callable[[Dict[str, Any]], Awaitable[None]]
Sleep = Callable[[float], Awaitable[Any]]


class BridgeState(str, enum.Enum):
    IDLE = "idle"
    NEGOTIATING = "negotiating"
    CONNECTED = "connected"
    SPEAKING = "speaking"
    DISCONNECTED = "disconnected"


class BridgeError(Exception):
    """Raised for setup failures inside the bridge; reported as events."""


def estimate_speech_duration(
    text: str, words_per_minute: float = 150.0, minimum: float = 3.0
) -> float:
    """Seconds the avatar is expected to need to say ``text``."""
    words = len(text.split())
    return max(minimum, words / words_per_minute * 60.0)


def ice_servers_from(entries: Optional[List[Mapping[str, Any]]]) -> List[RTCIceServer]:
    servers = []
    for entry in entries or DEFAULT_ICE_SERVERS:
        urls = entry.get("urls") or entry.get("url")
        if not urls:
            continue
        servers.append(
            RTCIceServer(
                urls=urls,
                username=entry.get("username"),
                credential=entry.get("credential"),
            )
        )
    return servers


def local_ice_candidates(sdp: str) -> List[Dict[str, Any]]:
    """Extract browser-style candidate dicts from a gathered SDP."""
    candidates: List[Dict[str, Any]] = []
    section: List[str] = []
    mid: Optional[str] = None
    index = -1

    def flush() -> None:
        for line in section:
            candidates.append(
                {"candidate": line, "sdpMid": mid, "sdpMLineIndex": index}
            )

    for line in sdp.splitlines():
        if line.startswith("m="):
            flush()
            section, mid = [], None
            index += 1
        elif index < 0:
            continue
        elif line.startswith("a=mid:"):
            mid = line[len("a=mid:"):]
        elif line.startswith("a=candidate:"):
            section.append(line[len("a="):])
    flush()
    return candidates


def candidate_from_message(data: Union[str, Mapping[str, Any]]) -> RTCIceCandidate:
    """Turn a browser-style ICE candidate into an aiortc candidate."""
    if isinstance(data, str):
        data = {"candidate": data}
    raw = data.get("candidate") or ""
    if raw.startswith("candidate:"):
        raw = raw.split(":", 1)[1]
    candidate = candidate_from_sdp(raw)
    candidate.sdpMid = data.get("sdpMid")
    candidate.sdpMLineIndex = data.get("sdpMLineIndex")
    return candidate


class AvatarBridge:
    """Single-session WebRTC state machine driven by dict commands."""

    def __init__(
        self,
        relay: RelayClient,
        emit: EventSink,
        *,
        peer_factory: Callable[..., Any] = RTCPeerConnection,
        signalling_factory: Callable[..., Any] = SignallingChannel,
        connect_timeout: float = 3.0,
        words_per_minute: float = 150.0,
        min_speech_seconds: float = 3.0,
        speak_retries: int = 3,
        speak_retry_delay: float = 2.0,
        sleep: Optional[Sleep] = None,
    ) -> None:
        self._relay = relay
        self._sink = emit
        self._peer_factory = peer_factory
        self._signalling_factory = signalling_factory
        self._connect_timeout = connect_timeout
        self._words_per_minute = words_per_minute
        self._min_speech_seconds = min_speech_seconds
        self._speak_retries = speak_retries
        self._speak_retry_delay = speak_retry_delay
        self._sleep = sleep or asyncio.sleep

        self.state = BridgeState.IDLE
        self.peer_connection: Any = None
        self.signalling: Any = None
        self.session_data: Optional[Dict[str, Any]] = None
        self._initializing = False
        self._generation = 0
        self._tracks: List[Any] = []
        self._tasks: Dict[str, asyncio.Task] = {}

    @property
    def session_id(self) -> Optional[str]:
        return self.session_data.get("sessionId") if self.session_data else None

    async def start(self) -> None:
        """Announce that the bridge accepts commands."""
        await self._emit({"type": "ready"})

    async def handle_command(self, message: Union[str, Mapping[str, Any]]) -> None:
        if isinstance(message, str):
            try:
                message = json.loads(message)
            except ValueError:
                logger.error("Ignoring non-JSON command: %s", message[:200])
                return
        command = message.get("type")
        await self._emit({"type": "debug", "message": f"Command received in bridge: {command}"})

        if command == "initialize":
            await self.initialize(message.get("sessionData") or {})
        elif command == "speak":
            await self.speak(message.get("text") or "")
        elif command == "disconnect":
            await self.disconnect()
        else:
            logger.info("Unknown bridge command: %s", message)

    async def initialize(self, session_data: Mapping[str, Any]) -> None:
        if self._initializing:
            logger.info("Initialization already in progress, ignoring duplicate call")
            return
        if self.peer_connection is not None:
            await self._teardown()

        self._initializing = True
        generation = self._generation
        self.session_data = dict(session_data)
        logger.info(
            "Session data received: id=%s offer=%s url=%s ice=%s",
            self.session_id,
            bool(self.session_data.get("offer")),
            bool(self.session_data.get("sessionUrl")),
            bool(self.session_data.get("iceServers")),
        )
        try:
            await self._set_state(BridgeState.NEGOTIATING, "Setting up WebRTC connection...")
            self._setup_peer_connection()
            await self._open_signalling(generation)
            if self._is_stale(generation):
                return
            await self._set_remote_description()
            if self._is_stale(generation):
                return
            await self._create_and_send_answer(generation)
        except Exception as exc:
            if self._is_stale(generation):
                logger.info("Initialization abandoned after disconnect: %s", exc)
                return
            logger.exception("Failed to initialize session")
            await self._teardown()
            await self._set_state(BridgeState.DISCONNECTED, f"Connection failed: {exc}")
            await self._emit({"type": "error", "message": f"Connection failed: {exc}"})
        finally:
            if generation == self._generation:
                self._initializing = False

    async def speak(self, text: str) -> None:
        if not self.session_data or self.peer_connection is None:
            logger.error("Session data missing - cannot speak")
            await self._emit({"type": "error", "message": "No active avatar session"})
            return
        if not text.strip():
            await self._emit({"type": "error", "message": "Nothing to say"})
            return
        if self.state is BridgeState.NEGOTIATING:
            await self._mark_connected("Speak requested before media, assuming connected")

        await self._status("Avatar is speaking...")
        for attempt in range(self._speak_retries + 1):
            try:
                await self._relay.speak(self.session_id, text)
                break
            except RelayRequestError as exc:
                if exc.code == SESSION_NOT_READY_CODE and attempt < self._speak_retries:
                    logger.info(
                        "Session not ready, retrying in %.1fs (attempt %d/%d)",
                        self._speak_retry_delay,
                        attempt + 1,
                        self._speak_retries,
                    )
                    await self._status("Session not ready, retrying...")
                    await self._sleep(self._speak_retry_delay)
                    continue
                await self._speak_failed(exc)
                return
            except TRANSPORT_ERRORS as exc:
                await self._speak_failed(exc)
                return

        self.state = BridgeState.SPEAKING
        await self._status(f'Avatar is speaking: "{text[:30]}..."')
        await self._emit({"type": "speaking", "text": text})

        duration = estimate_speech_duration(
            text, self._words_per_minute, self._min_speech_seconds
        )
        logger.info("Monitoring speech completion, estimated %.1fs", duration)
        self._spawn("speech", self._finish_speech(text, duration))

    async def disconnect(self) -> None:
        await self._teardown()
        self.session_data = None
        await self._set_state(BridgeState.DISCONNECTED, "Avatar disconnected")

    async def _teardown(self) -> None:
        self._generation += 1
        self._initializing = False
        for name in list(self._tasks):
            self._cancel(name)
        if self.peer_connection is not None:
            await self.peer_connection.close()
            self.peer_connection = None
        if self.signalling is not None:
            await self.signalling.close()
            self.signalling = None
        for track in self._tracks:
            track.stop()
        self._tracks.clear()

    def _setup_peer_connection(self) -> None:
        config = RTCConfiguration(
            iceServers=ice_servers_from(self.session_data.get("iceServers"))
        )
        pc = self._peer_factory(configuration=config)
        pc.on("track", self._on_track)
        pc.on("connectionstatechange", self._on_connection_state_change)
        self.peer_connection = pc
        logger.info("RTCPeerConnection created")

    async def _open_signalling(self, generation: int) -> None:
        url = self.session_data.get("sessionUrl")
        if not url:
            await self._status("No signalling URL, continuing without it")
            return
        channel = self._signalling_factory(url, self._on_signalling_message)
        try:
            await channel.open()
        except SignallingError as exc:
            logger.error("Signalling failed, attempting direct connection: %s", exc)
            await self._status("Signalling failed, trying direct connection...")
            return
        if self._is_stale(generation):
            await channel.close()
            return
        self.signalling = channel
        await self._status("Signalling connected")

    async def _set_remote_description(self) -> None:
        offer = self.session_data.get("offer")
        if not offer or not offer.get("sdp"):
            raise BridgeError("No SDP offer provided")
        await self.peer_connection.setRemoteDescription(
            RTCSessionDescription(sdp=offer["sdp"], type=offer.get("type", "offer"))
        )
        await self._status("Remote description set")

    async def _create_and_send_answer(self, generation: int) -> None:
        pc = self.peer_connection
        answer = await pc.createAnswer()
        await pc.setLocalDescription(answer)
        if self._is_stale(generation):
            return
        local = pc.localDescription
        await self._status("Answer created, sending to relay...")

        result = await self._relay.start_session(
            self.session_id, {"type": local.type, "sdp": local.sdp}
        )
        logger.debug("Session started: %s", result)
        if self._is_stale(generation):
            return
        await self._status("Session started, waiting for avatar...")
        self._spawn("connect", self._force_connect_after_timeout())

        for candidate in local_ice_candidates(local.sdp):
            if self._is_stale(generation):
                return
            await self._send_ice_candidate(candidate)

    def _is_stale(self, generation: int) -> bool:
        return generation != self._generation

    async def _send_ice_candidate(self, candidate: Dict[str, Any]) -> None:
        if self.signalling is not None and self.signalling.is_open:
            try:
                await self.signalling.send_json({"type": "ice-candidate", "candidate": candidate})
                return
            except SignallingError as exc:
                logger.warning("Signalling send failed, falling back to relay: %s", exc)
        try:
            await self._relay.send_ice_candidate(self.session_id, candidate)
        except (RelayRequestError, *TRANSPORT_ERRORS) as exc:
            logger.error("Failed to send ICE candidate via relay: %s", exc)

    async def _on_signalling_message(self, message: Mapping[str, Any]) -> None:
        kind = message.get("type")
        if kind == "ice-candidate":
            if message.get("candidate") and self.peer_connection is not None:
                await self.peer_connection.addIceCandidate(
                    candidate_from_message(message["candidate"])
                )
        elif kind == "session-update":
            await self._status("Session updated")
        else:
            logger.info("Unknown signalling message: %s", message)

    def _on_track(self, track: Any) -> None:
        logger.info("Received remote %s track", track.kind)
        self._tracks.append(track)
        if track.kind == "video":
            self._spawn("media", self._watch_media(track))

    async def _on_connection_state_change(self) -> None:
        if self.peer_connection is None:
            return
        state = self.peer_connection.connectionState
        logger.info("Connection state changed to: %s", state)
        if state == "connected":
            await self._status("WebRTC connected, preparing avatar...")
        elif state == "connecting":
            await self._status("Connecting to avatar...")

    async def _watch_media(self, track: Any) -> None:
        try:
            await track.recv()
        except MediaStreamError:
            logger.info("Video track ended before the first frame")
            return
        await self._mark_connected("Video detected - avatar connected")

    async def _force_connect_after_timeout(self) -> None:
        await self._sleep(self._connect_timeout)
        await self._mark_connected(
            f"Force connecting after {self._connect_timeout:g}s - assuming video is working"
        )

    async def _mark_connected(self, reason: str) -> None:
        if self.state is not BridgeState.NEGOTIATING:
            return
        logger.info(reason)
        self._cancel("connect")
        self._cancel("media")
        await self._set_state(BridgeState.CONNECTED, CONNECTED_MESSAGE)

    async def _finish_speech(self, text: str, duration: float) -> None:
        await self._sleep(duration)
        if self.state is not BridgeState.SPEAKING:
            return
        logger.info("Speech estimated to be completed")
        self.state = BridgeState.CONNECTED
        await self._emit({"type": "speech_ended", "text": text, "duration": duration})
        if self.state is BridgeState.CONNECTED:
            await self._status("Avatar finished speaking")

    async def _speak_failed(self, exc: Exception) -> None:
        logger.error("Speak error: %s", exc)
        await self._status(f"Speak failed: {exc}")
        await self._emit({"type": "error", "message": str(exc)})

    async def _set_state(self, state: BridgeState, message: str) -> None:
        self.state = state
        await self._status(message)

    async def _status(self, message: str) -> None:
        logger.info("STATUS: %s", message)
        await self._emit({"type": "status", "message": message, "state": self.state.value})

    async def _emit(self, event: Dict[str, Any]) -> None:
        try:
            await self._sink(event)
        except Exception:
            logger.exception("Bridge event handler failed for %s", event.get("type"))

    def _spawn(self, name: str, coro: Awaitable[Any]) -> None:
        self._cancel(name)
        self._tasks[name] = asyncio.ensure_future(coro)

    def _cancel(self, name: str) -> None:
        task = self._tasks.pop(name, None)
        if task is not None and task is not asyncio.current_task() and not task.done():
            task.cancel()
