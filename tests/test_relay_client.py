"""Tests for coffee_coach.client.relay_client and signalling over in-process servers."""

import asyncio

import pytest
import pytest_asyncio
from aiohttp import WSMsgType, test_utils, web

from coffee_coach.client.relay_client import RelayClient, RelayRequestError
from coffee_coach.client.signalling import SignallingChannel, SignallingError


@pytest_asyncio.fixture
async def relay_server():
    received = []

    async def handle(request):
        body = await request.json() if request.can_read_body else None
        received.append((request.path, body))
        if request.path == "/api/session" and body and body.get("avatarId") == "busy":
            return web.json_response(
                {"error": "Session limit reached", "code": 10004, "message": "wait"}, status=429
            )
        if request.path == "/api/speak" and body and body.get("text") == "gateway":
            return web.Response(status=502, text="Bad Gateway")
        if request.path == "/api/cleanup":
            return web.Response(status=200)
        if request.path == "/api/stop":
            return web.json_response({"message": "Session stopped successfully", "raw": {}})
        return web.json_response({"ok": True, "path": request.path})

    app = web.Application()
    for path in ("session", "start", "ice", "speak", "stop", "cleanup"):
        app.router.add_post(f"/api/{path}", handle)
    server = test_utils.TestServer(app)
    await server.start_server()
    yield str(server.make_url("/")).rstrip("/"), received
    await server.close()


@pytest_asyncio.fixture
async def ws_server():
    inbound = []

    async def handle(request):
        ws = web.WebSocketResponse()
        await ws.prepare(request)
        await ws.send_json({"type": "session-update"})
        await ws.send_str("not json")
        async for msg in ws:
            if msg.type == WSMsgType.TEXT:
                inbound.append(msg.json())
        return ws

    app = web.Application()
    app.router.add_get("/ws", handle)
    server = test_utils.TestServer(app)
    await server.start_server()
    yield str(server.make_url("/ws")), inbound
    await server.close()


class TestRelayClient:
    @pytest.mark.asyncio
    async def test_posts_camel_case_bodies(self, relay_server):
        base_url, received = relay_server
        client = RelayClient(base_url)

        await client.create_session("Katya_ProfessionalLook_public", "voice-1")
        await client.start_session("s1", {"type": "answer", "sdp": "v=0"})
        await client.send_ice_candidate("s1", {"candidate": "candidate:1"})
        await client.speak("s1", "hello")
        stopped = await client.stop_session("s1")
        await client.cleanup()

        bodies = dict(received)
        assert bodies["/api/session"] == {
            "avatarId": "Katya_ProfessionalLook_public",
            "voiceId": "voice-1",
        }
        assert bodies["/api/start"] == {"sessionId": "s1", "answer": {"type": "answer", "sdp": "v=0"}}
        assert bodies["/api/ice"] == {"sessionId": "s1", "candidate": {"candidate": "candidate:1"}}
        assert bodies["/api/speak"] == {"sessionId": "s1", "text": "hello"}
        assert stopped["message"] == "Session stopped successfully"

    @pytest.mark.asyncio
    async def test_error_exposes_code_and_message(self, relay_server):
        base_url, _ = relay_server
        client = RelayClient(base_url)

        with pytest.raises(RelayRequestError) as excinfo:
            await client.create_session("busy")

        assert excinfo.value.status == 429
        assert excinfo.value.code == 10004
        assert excinfo.value.message == "wait"

    @pytest.mark.asyncio
    async def test_empty_success_body_is_empty_dict(self, relay_server):
        base_url, _ = relay_server
        assert await RelayClient(base_url).cleanup() == {}

    @pytest.mark.asyncio
    async def test_plain_text_error_body(self, relay_server):
        base_url, _ = relay_server

        with pytest.raises(RelayRequestError) as excinfo:
            await RelayClient(base_url).speak("s1", "gateway")

        assert excinfo.value.status == 502
        assert excinfo.value.code is None
        assert excinfo.value.message == "Bad Gateway"


class TestSignallingChannel:
    @pytest.mark.asyncio
    async def test_receives_and_sends_json(self, ws_server):
        url, inbound = ws_server
        messages = []

        async def on_message(message):
            messages.append(message)

        channel = SignallingChannel(url, on_message)
        await channel.open()
        assert channel.is_open

        await channel.send_json({"type": "ice-candidate", "candidate": {"candidate": "candidate:1"}})
        for _ in range(50):
            if messages and inbound:
                break
            await asyncio.sleep(0.01)
        await channel.close()

        assert messages == [{"type": "session-update"}]
        assert inbound == [{"type": "ice-candidate", "candidate": {"candidate": "candidate:1"}}]
        assert not channel.is_open

    @pytest.mark.asyncio
    async def test_gives_up_after_attempts(self):
        async def on_message(message):
            pass

        channel = SignallingChannel(
            "ws://127.0.0.1:9/ws", on_message, attempts=2, attempt_timeout=1.0, retry_delay=0
        )

        with pytest.raises(SignallingError):
            await channel.open()
        assert not channel.is_open

    @pytest.mark.asyncio
    async def test_send_requires_open_channel(self):
        async def on_message(message):
            pass

        channel = SignallingChannel("ws://127.0.0.1:9/ws", on_message)
        with pytest.raises(SignallingError):
            await channel.send_json({"type": "ice-candidate"})
