"""Tests for coffee_coach.services.heygen_client against an in-process fake vendor."""

import pytest
import pytest_asyncio
from aiohttp import web
from aiohttp import test_utils

from coffee_coach.errors import ConfigError, UpstreamError
from coffee_coach.services.heygen_client import HeyGenClient


class FakeVendor:
    """Records requests and answers like the streaming API."""

    def __init__(self):
        self.requests = []
        self.responses = {}

    def app(self):
        app = web.Application()
        app.router.add_get("/v1/streaming/avatar.list", self.handle)
        for name in ("new", "start", "ice", "task", "stop"):
            app.router.add_post(f"/v1/streaming.{name}", self.handle)
        return app

    async def handle(self, request):
        body = await request.json() if request.can_read_body else None
        self.requests.append((request.path, request.headers.get("X-Api-Key"), body))
        status, payload = self.responses.get(request.path, (200, {"code": 100, "data": {}}))
        if isinstance(payload, str):
            return web.Response(status=status, text=payload)
        return web.json_response(payload, status=status)


@pytest_asyncio.fixture
async def vendor():
    fake = FakeVendor()
    server = test_utils.TestServer(fake.app())
    await server.start_server()
    fake.base_url = str(server.make_url("/")).rstrip("/")
    yield fake
    await server.close()


class TestHeyGenClient:
    @pytest.mark.asyncio
    async def test_list_avatars_sends_api_key(self, vendor):
        vendor.responses["/v1/streaming/avatar.list"] = (
            200,
            {"data": [{"avatar_id": "a1", "status": "ACTIVE"}]},
        )
        client = HeyGenClient("secret", vendor.base_url)

        avatars = await client.list_avatars()

        assert avatars == [{"avatar_id": "a1", "status": "ACTIVE"}]
        assert vendor.requests[0][:2] == ("/v1/streaming/avatar.list", "secret")

    @pytest.mark.asyncio
    async def test_new_session_body(self, vendor):
        client = HeyGenClient("secret", vendor.base_url)

        await client.new_session("avatar-1")
        await client.new_session("avatar-1", "voice-1")

        assert vendor.requests[0][2] == {"avatar_id": "avatar-1"}
        assert vendor.requests[1][2] == {"avatar_id": "avatar-1", "voice": {"voice_id": "voice-1"}}

    @pytest.mark.asyncio
    async def test_session_calls_use_vendor_field_names(self, vendor):
        client = HeyGenClient("secret", vendor.base_url)
        answer = {"type": "answer", "sdp": "v=0"}

        await client.start_session("s1", answer)
        await client.send_ice_candidate("s1", {"candidate": "candidate:1"})
        await client.speak("s1", "hello")
        await client.stop_session("s1")

        bodies = {path: body for path, _, body in vendor.requests}
        assert bodies["/v1/streaming.start"] == {"session_id": "s1", "sdp": answer}
        assert bodies["/v1/streaming.ice"] == {"session_id": "s1", "candidate": {"candidate": "candidate:1"}}
        assert bodies["/v1/streaming.task"] == {"session_id": "s1", "text": "hello", "task_type": "repeat"}
        assert bodies["/v1/streaming.stop"] == {"session_id": "s1"}

    @pytest.mark.asyncio
    async def test_non_2xx_raises_upstream_error_with_code(self, vendor):
        vendor.responses["/v1/streaming.new"] = (
            400,
            {"code": 10004, "message": "You have reached the maximum concurrent sessions"},
        )
        client = HeyGenClient("secret", vendor.base_url)

        with pytest.raises(UpstreamError) as excinfo:
            await client.new_session("avatar-1")

        exc = excinfo.value
        assert exc.status_code == 400
        assert exc.code == 10004
        assert exc.error == "streaming.new failed"
        assert "maximum concurrent" in exc.body

    @pytest.mark.asyncio
    async def test_non_json_error_body(self, vendor):
        vendor.responses["/v1/streaming.stop"] = (502, "Bad Gateway")
        client = HeyGenClient("secret", vendor.base_url)

        with pytest.raises(UpstreamError) as excinfo:
            await client.stop_session("s1")

        assert excinfo.value.status_code == 502
        assert excinfo.value.code is None
        assert excinfo.value.to_payload()["raw"] == "Bad Gateway"

    @pytest.mark.asyncio
    async def test_missing_key_fails_before_network(self, vendor):
        client = HeyGenClient(None, vendor.base_url)

        with pytest.raises(ConfigError):
            await client.list_avatars()
        assert vendor.requests == []

    @pytest.mark.asyncio
    async def test_unreachable_vendor(self):
        client = HeyGenClient("secret", "http://127.0.0.1:9", timeout=2.0)

        with pytest.raises(UpstreamError) as excinfo:
            await client.stop_session("s1")
        assert excinfo.value.status_code == 502
