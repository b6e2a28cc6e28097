"""WebSocket signalling channel to the vendor's realtime endpoint."""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, Awaitable, Callable, Dict, Optional

import aiohttp

logger = logging.getLogger(__name__)

MessageHandler = Callable[[Dict[str, Any]], Awaitable[None]]


class SignallingError(Exception):
    """Raised when the channel cannot be opened or used."""


class SignallingChannel:
    """Best-effort JSON message channel over a WebSocket.

    ``open`` makes up to ``attempts`` connection attempts, each bounded by
    ``attempt_timeout`` seconds, waiting ``retry_delay`` between them.
    """

    def __init__(
        self,
        url: str,
        on_message: MessageHandler,
        *,
        attempts: int = 3,
        attempt_timeout: float = 5.0,
        retry_delay: float = 1.0,
    ) -> None:
        self.url = url
        self._on_message = on_message
        self._attempts = attempts
        self._attempt_timeout = attempt_timeout
        self._retry_delay = retry_delay
        self._session: Optional[aiohttp.ClientSession] = None
        self._ws: Optional[aiohttp.ClientWebSocketResponse] = None
        self._reader: Optional[asyncio.Task] = None

    @property
    def is_open(self) -> bool:
        return self._ws is not None and not self._ws.closed

    async def open(self) -> None:
        for attempt in range(1, self._attempts + 1):
            logger.info(
                "Signalling connection attempt %d/%d to %s", attempt, self._attempts, self.url
            )
            self._session = aiohttp.ClientSession()
            try:
                self._ws = await asyncio.wait_for(
                    self._session.ws_connect(self.url), timeout=self._attempt_timeout
                )
            except (aiohttp.ClientError, asyncio.TimeoutError) as exc:
                logger.warning("Signalling attempt %d failed: %s", attempt, exc)
                await self._close_session()
                if attempt == self._attempts:
                    raise SignallingError(
                        f"Signalling connection failed after {self._attempts} attempts"
                    ) from exc
                await asyncio.sleep(self._retry_delay)
            else:
                logger.info("Signalling channel connected")
                self._reader = asyncio.create_task(self._read_loop())
                return

    async def send_json(self, payload: Dict[str, Any]) -> None:
        if not self.is_open:
            raise SignallingError("Signalling channel is not open")
        await self._ws.send_json(payload)

    async def close(self) -> None:
        if self._reader is not None and self._reader is not asyncio.current_task():
            self._reader.cancel()
        self._reader = None
        if self._ws is not None:
            await self._ws.close()
            self._ws = None
        await self._close_session()

    async def _read_loop(self) -> None:
        async for msg in self._ws:
            if msg.type == aiohttp.WSMsgType.TEXT:
                try:
                    message = json.loads(msg.data)
                except ValueError:
                    logger.warning("Ignoring non-JSON signalling message: %s", msg.data[:200])
                    continue
                try:
                    await self._on_message(message)
                except Exception:
                    logger.exception("Error handling signalling message")
            elif msg.type == aiohttp.WSMsgType.ERROR:
                logger.error("Signalling channel error: %s", self._ws.exception())
                break
        logger.info("Signalling channel closed")

    async def _close_session(self) -> None:
        if self._session is not None:
            await self._session.close()
            self._session = None
