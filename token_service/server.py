"""
Token service HTTP API.

POST /session mints an ephemeral realtime session upstream and relays the
provider's session object (it carries the client_secret) unchanged.
GET /health reports liveness and whether a server-side key is configured.
"""
from __future__ import annotations

import json
import time
import uuid
from typing import Any, Dict, Optional, Tuple

import aiohttp
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import AliasChoices, BaseModel, Field

from logging_setup import get_logger, Component as LogComponent
from observability.events import Component as ObsComponent, EventEmitter
from .config import get_config


logger = get_logger(LogComponent.TOKEN_SERVICE)
emitter = EventEmitter(ObsComponent.TOKEN_SERVICE)

DEFAULT_INSTRUCTIONS = (
    "You are a warm, empathetic AI therapist. Speak naturally and conversationally. "
    "Keep responses concise but meaningful."
)

# Fixed realtime session shape requested for every conversation
SESSION_DEFAULTS: Dict[str, Any] = {
    "modalities": ["audio", "text"],
    "input_audio_format": "pcm16",
    "output_audio_format": "pcm16",
    "input_audio_transcription": {"model": "whisper-1"},
    "turn_detection": {
        "type": "server_vad",
        "threshold": 0.5,
        "prefix_padding_ms": 300,
        "silence_duration_ms": 1000,
    },
    "temperature": 0.8,
    "max_response_output_tokens": 4096,
}


class SessionRequest(BaseModel):
    secret: Optional[str] = Field(None, validation_alias=AliasChoices("secret", "apiKey"))
    model: Optional[str] = None
    voice: Optional[str] = None
    instructions: Optional[str] = None


def build_upstream_body(model: str, voice: str, instructions: Optional[str]) -> Dict[str, Any]:
    body: Dict[str, Any] = {
        "model": model,
        "voice": voice,
        "instructions": instructions or DEFAULT_INSTRUCTIONS,
    }
    body.update(SESSION_DEFAULTS)
    return body


async def _create_upstream_session(api_key: str, body: Dict[str, Any]) -> Tuple[int, str]:
    """POST the session request upstream; returns (status, raw body text)."""
    config = get_config()
    url = f"{config.provider_base_url}/realtime/sessions"
    headers = {
        "Authorization": f"Bearer {api_key}",
        "Content-Type": "application/json",
    }
    async with aiohttp.ClientSession() as s:
        async with s.post(
            url,
            json=body,
            headers=headers,
            timeout=aiohttp.ClientTimeout(total=config.upstream_timeout),
        ) as resp:
            return resp.status, await resp.text()


def create_app() -> FastAPI:
    config = get_config()
    app = FastAPI(title="Realtime Token Service")
    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.cors_origins,
        allow_credentials=True,
        allow_methods=["POST", "GET", "OPTIONS"],
        allow_headers=["Content-Type"],
    )

    @app.post("/session")
    async def create_session(req: SessionRequest):
        """Mint an ephemeral realtime session token."""
        config = get_config()
        request_id = f"tok_{uuid.uuid4().hex[:12]}"
        api_key = req.secret or config.openai_api_key
        if not api_key:
            logger.warning("Session request without API key", request_id=request_id)
            return JSONResponse(status_code=400, content={"error": "No API key provided"})

        model = req.model or config.default_model
        voice = req.voice or config.default_voice
        logger.info("Creating realtime session", request_id=request_id, model=model, voice=voice)
        emitter.token_requested(request_id, model=model, voice=voice)

        start_ts = time.time()
        try:
            status, text = await _create_upstream_session(api_key, build_upstream_body(model, voice, req.instructions))
            if not 200 <= status < 300:
                logger.error("Provider rejected session request", request_id=request_id, status=status)
                emitter.token_rejected(request_id, status=status)
                return JSONResponse(status_code=status, content={"error": text})
            payload = json.loads(text)
        except Exception as e:
            # Stable error surface: class name only, the key never leaves
            logger.error("Session creation failed", request_id=request_id, error_type=type(e).__name__)
            return JSONResponse(status_code=500, content={"error": type(e).__name__})

        latency_ms = int((time.time() - start_ts) * 1000)
        logger.info("Realtime session created", request_id=request_id, latency_ms=latency_ms)
        issued_model = payload.get("model", model) if isinstance(payload, dict) else model
        emitter.token_issued(request_id, model=issued_model, latency_ms=latency_ms)
        return JSONResponse(content=payload)

    @app.get("/health")
    async def health():
        """Health check endpoint."""
        return {"status": "ok", "component": "token_service", "has_api_key": get_config().has_api_key}

    return app


app = create_app()
