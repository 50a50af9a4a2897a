"""
Token service API tests.

The upstream provider call is replaced via monkeypatch (no real network).
"""
import json

import pytest
from fastapi.testclient import TestClient

from observability.event_store import event_store
from token_service import config as token_config
from token_service import server


@pytest.fixture
def client(monkeypatch):
    def _make(api_key=None, upstream=None):
        if api_key:
            monkeypatch.setenv("OPENAI_API_KEY", api_key)
        else:
            monkeypatch.delenv("OPENAI_API_KEY", raising=False)
        token_config.reset_config()

        calls = []

        async def _fake_upstream(key, body):
            calls.append({"key": key, "body": body})
            if upstream is None:
                return 200, json.dumps({"model": body["model"], "client_secret": {"value": "ek_1", "expires_at": 1}})
            if isinstance(upstream, Exception):
                raise upstream
            return upstream

        monkeypatch.setattr(server, "_create_upstream_session", _fake_upstream)
        return TestClient(server.create_app()), calls

    yield _make
    token_config.reset_config()


def test_health(client):
    c, _ = client(api_key="sk-server")
    resp = c.get("/health")
    assert resp.status_code == 200
    assert resp.json() == {"status": "ok", "component": "token_service", "has_api_key": True}


def test_health_without_key(client):
    c, _ = client()
    assert c.get("/health").json()["has_api_key"] is False


def test_session_with_request_secret(client):
    c, calls = client()
    resp = c.post("/session", json={"secret": "sk-user", "model": "gpt-test", "voice": "coral", "instructions": "Hi"})

    assert resp.status_code == 200
    assert resp.json()["client_secret"]["value"] == "ek_1"
    assert calls[0]["key"] == "sk-user"

    body = calls[0]["body"]
    assert body["model"] == "gpt-test"
    assert body["voice"] == "coral"
    assert body["instructions"] == "Hi"
    assert body["modalities"] == ["audio", "text"]
    assert body["input_audio_format"] == "pcm16"
    assert body["output_audio_format"] == "pcm16"
    assert body["input_audio_transcription"] == {"model": "whisper-1"}
    assert body["turn_detection"] == {
        "type": "server_vad",
        "threshold": 0.5,
        "prefix_padding_ms": 300,
        "silence_duration_ms": 1000,
    }
    assert body["temperature"] == 0.8
    assert body["max_response_output_tokens"] == 4096


def test_session_accepts_api_key_field(client):
    c, calls = client()
    resp = c.post("/session", json={"apiKey": "sk-legacy"})
    assert resp.status_code == 200
    assert calls[0]["key"] == "sk-legacy"


def test_session_falls_back_to_server_key_and_defaults(client):
    c, calls = client(api_key="sk-server")
    resp = c.post("/session", json={})

    assert resp.status_code == 200
    body = calls[0]["body"]
    assert calls[0]["key"] == "sk-server"
    assert body["model"] == token_config.get_config().default_model
    assert body["voice"] == "alloy"
    assert body["instructions"] == server.DEFAULT_INSTRUCTIONS


def test_session_without_any_key(client):
    c, calls = client()
    resp = c.post("/session", json={"model": "m"})

    assert resp.status_code == 400
    assert resp.json() == {"error": "No API key provided"}
    assert calls == []


def test_upstream_error_is_relayed(client):
    c, _ = client(upstream=(401, '{"error": {"message": "Incorrect API key"}}'))
    resp = c.post("/session", json={"secret": "sk-bad"})

    assert resp.status_code == 401
    assert "Incorrect API key" in resp.json()["error"]
    rejected = event_store.query(event_type="token.rejected", component="token_service")
    assert rejected and rejected[-1]["status"] == 401


def test_unexpected_failure(client):
    c, _ = client(upstream=RuntimeError("boom sk-user"))
    resp = c.post("/session", json={"secret": "sk-user"})

    assert resp.status_code == 500
    assert "sk-user" not in resp.text
