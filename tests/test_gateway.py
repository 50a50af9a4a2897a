"""
Token gateway tests against a local aiohttp test server.
"""
import asyncio
import json
from contextlib import asynccontextmanager

import pytest
from aiohttp import web
from aiohttp.test_utils import TestServer

from observability.event_store import event_store
from voice_session.errors import InvalidCredential, NegotiationFailed, NegotiationTimeout, TokenRequestFailed
from voice_session.gateway import EphemeralToken, TokenGateway, validate_secret


@asynccontextmanager
async def serve(handler):
    app = web.Application()
    app.router.add_post("/session", handler)
    server = TestServer(app)
    await server.start_server()
    try:
        yield str(server.make_url("/")).rstrip("/")
    finally:
        await server.close()


class TestValidateSecret:
    @pytest.mark.parametrize("secret", [None, "", "   ", "pk-123", "SK-123"])
    def test_rejects(self, secret):
        with pytest.raises(InvalidCredential):
            validate_secret(secret)

    def test_accepts(self):
        validate_secret("sk-test")


class TestEphemeralToken:
    def test_dict_secret(self):
        token = EphemeralToken.from_session_payload(
            {"model": "m1", "client_secret": {"value": "ek_1", "expires_at": 123}},
            fallback_model="m0",
        )
        assert token == EphemeralToken(provider_model="m1", client_secret="ek_1", expires_at=123)

    def test_bare_secret_and_fallback_model(self):
        token = EphemeralToken.from_session_payload({"client_secret": "ek_2"}, fallback_model="m0")
        assert token.provider_model == "m0"
        assert token.client_secret == "ek_2"

    @pytest.mark.parametrize("payload", [[], {"model": "m"}, {"client_secret": {"value": ""}}])
    def test_unusable(self, payload):
        with pytest.raises(NegotiationFailed):
            EphemeralToken.from_session_payload(payload, fallback_model="m0")


@pytest.mark.asyncio
async def test_request_token_success(capsys):
    received = {}

    async def handler(request):
        received.update(await request.json())
        return web.json_response({"model": "gpt-test", "client_secret": {"value": "ek_abc", "expires_at": 99}})

    async with serve(handler) as base_url:
        gateway = TokenGateway(base_url, timeout=5)
        token = await gateway.request_token("sk-live", "gpt-test", "coral", "Be kind.", session_id="sess-1")

    assert token.client_secret == "ek_abc"
    assert token.provider_model == "gpt-test"
    assert received == {"secret": "sk-live", "model": "gpt-test", "voice": "coral", "instructions": "Be kind."}

    events = [json.loads(line) for line in capsys.readouterr().out.splitlines() if '"event_type"' in line]
    types = [e.get("event_type") for e in events]
    assert "token.requested" in types
    assert "token.issued" in types
    # the long-lived secret never reaches the event stream
    assert all("sk-live" not in json.dumps(e) for e in events)


@pytest.mark.asyncio
async def test_request_token_rejected():
    async def handler(request):
        return web.json_response({"error": "bad key"}, status=401)

    async with serve(handler) as base_url:
        with pytest.raises(TokenRequestFailed) as exc_info:
            await TokenGateway(base_url, timeout=5).request_token("sk-x", "m", "alloy", "")

    assert exc_info.value.status == 401
    assert "bad key" in exc_info.value.body
    assert event_store.query(event_type="token.rejected", component="voice_session")


@pytest.mark.asyncio
async def test_request_token_invalid_json():
    async def handler(request):
        return web.Response(text="<html>oops</html>")

    async with serve(handler) as base_url:
        with pytest.raises(NegotiationFailed):
            await TokenGateway(base_url, timeout=5).request_token("sk-x", "m", "alloy", "")


@pytest.mark.asyncio
async def test_request_token_timeout():
    async def handler(request):
        await asyncio.sleep(2)
        return web.json_response({})

    async with serve(handler) as base_url:
        with pytest.raises(NegotiationTimeout) as exc_info:
            await TokenGateway(base_url, timeout=0.1).request_token("sk-x", "m", "alloy", "")

    assert exc_info.value.step == "token request"


@pytest.mark.asyncio
async def test_request_token_unreachable():
    async def handler(request):
        return web.json_response({})

    async with serve(handler) as base_url:
        pass

    with pytest.raises(NegotiationFailed):
        await TokenGateway(base_url, timeout=2).request_token("sk-x", "m", "alloy", "")
