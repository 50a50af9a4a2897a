"""
Session description exchange tests against a local aiohttp test server.
"""
import asyncio
from contextlib import asynccontextmanager

import aiohttp
import pytest
from aiohttp import web
from aiohttp.test_utils import TestServer

from voice_session.errors import NegotiationFailed
from voice_session.transport import CHANNEL_LABEL, WebRTCTransport, exchange_description


ANSWER = "v=0\r\no=- 1 2 IN IP4 127.0.0.1\r\ns=-\r\nt=0 0\r\n"


@asynccontextmanager
async def serve(handler):
    app = web.Application()
    app.router.add_post("/v1/realtime", handler)
    server = TestServer(app)
    await server.start_server()
    try:
        yield str(server.make_url("/v1"))
    finally:
        await server.close()


def test_channel_label():
    assert CHANNEL_LABEL == "oai-events"


@pytest.mark.asyncio
async def test_exchange_posts_offer():
    seen = {}

    async def handler(request):
        seen["model"] = request.query.get("model")
        seen["auth"] = request.headers.get("Authorization")
        seen["content_type"] = request.headers.get("Content-Type")
        seen["body"] = await request.text()
        return web.Response(text=ANSWER, content_type="application/sdp")

    async with serve(handler) as base_url:
        async with aiohttp.ClientSession() as http:
            answer = await exchange_description(http, base_url, "gpt-test", "ek_1", "v=0 offer", timeout=5)

    assert answer == ANSWER
    assert seen == {
        "model": "gpt-test",
        "auth": "Bearer ek_1",
        "content_type": "application/sdp",
        "body": "v=0 offer",
    }


@pytest.mark.asyncio
async def test_exchange_rejected():
    async def handler(request):
        return web.Response(status=401, text="expired token")

    async with serve(handler) as base_url:
        async with aiohttp.ClientSession() as http:
            with pytest.raises(NegotiationFailed) as exc_info:
                await exchange_description(http, base_url, "m", "ek_1", "v=0", timeout=5)

    assert exc_info.value.status == 401


@pytest.mark.asyncio
async def test_exchange_malformed_answer():
    async def handler(request):
        return web.Response(text="{\"error\": \"nope\"}")

    async with serve(handler) as base_url:
        async with aiohttp.ClientSession() as http:
            with pytest.raises(NegotiationFailed):
                await exchange_description(http, base_url, "m", "ek_1", "v=0", timeout=5)


@pytest.mark.asyncio
async def test_exchange_timeout_propagates():
    async def handler(request):
        await asyncio.sleep(2)
        return web.Response(text=ANSWER)

    async with serve(handler) as base_url:
        async with aiohttp.ClientSession() as http:
            with pytest.raises(asyncio.TimeoutError):
                await exchange_description(http, base_url, "m", "ek_1", "v=0", timeout=0.1)


@pytest.mark.asyncio
async def test_transport_close_is_idempotent():
    transport = WebRTCTransport("http://127.0.0.1:1")
    assert not transport.is_open
    assert transport.send("{}") is False
    await transport.close()
    await transport.close()
