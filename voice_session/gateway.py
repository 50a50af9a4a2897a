"""
Voice Session -> token service client.

Exchanges the long-lived provider secret for a short-lived realtime session
token. Stateless request/response; never retried here.
"""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass
from typing import Any, Callable, Optional

import aiohttp

from logging_setup import get_logger, Component as LogComponent
from observability.events import Component as ObsComponent, EventEmitter
from .errors import InvalidCredential, NegotiationFailed, NegotiationTimeout, TokenRequestFailed


logger = get_logger(LogComponent.GATEWAY)
emitter = EventEmitter(ObsComponent.VOICE_SESSION)

SECRET_PREFIX = "sk-"


@dataclass(frozen=True)
class EphemeralToken:
    """Short-lived credential used only for the description exchange."""

    provider_model: str
    client_secret: str
    expires_at: Optional[int] = None

    @classmethod
    def from_session_payload(cls, payload: Any, fallback_model: str) -> "EphemeralToken":
        """
        Parse the upstream session object relayed by the token service.

        client_secret is either {"value": ..., "expires_at": ...} or a bare string.
        """
        if not isinstance(payload, dict):
            raise NegotiationFailed("token service returned a non-object payload")

        secret = payload.get("client_secret")
        expires_at = None
        if isinstance(secret, dict):
            expires_at = secret.get("expires_at")
            secret = secret.get("value")
        if not isinstance(secret, str) or not secret:
            raise NegotiationFailed("token service returned no client_secret")

        model = payload.get("model")
        if not isinstance(model, str) or not model:
            model = fallback_model
        return cls(provider_model=model, client_secret=secret, expires_at=expires_at)


def validate_secret(secret: Optional[str]) -> None:
    """
    Fail fast on an obviously malformed secret.

    Raises InvalidCredential; never touches the network.
    """
    if not secret or not secret.strip():
        raise InvalidCredential("API key is empty")
    if not secret.startswith(SECRET_PREFIX):
        raise InvalidCredential(f'API key must start with "{SECRET_PREFIX}"')


class TokenGateway:
    """HTTP client for the token service's POST /session endpoint."""

    def __init__(
        self,
        base_url: str,
        *,
        timeout: float = 15.0,
        session_factory: Callable[[], aiohttp.ClientSession] = aiohttp.ClientSession,
    ):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._session_factory = session_factory

    @property
    def endpoint(self) -> str:
        return f"{self.base_url}/session"

    async def request_token(
        self,
        secret: str,
        model: str,
        voice: str,
        instructions: str,
        *,
        session_id: str = "",
    ) -> EphemeralToken:
        """
        Mint an ephemeral realtime token.

        Raises:
            TokenRequestFailed: token service answered non-2xx
            NegotiationTimeout: no answer within the timeout
            NegotiationFailed: network error or unusable payload
        """
        start_ts = time.time()
        log = logger.with_session(session_id) if session_id else logger
        log.info("Requesting ephemeral token", endpoint=self.endpoint, model=model, voice=voice)
        emitter.token_requested(session_id, model=model, voice=voice)

        body = {
            "secret": secret,
            "model": model,
            "voice": voice,
            "instructions": instructions,
        }
        try:
            async with self._session_factory() as s:
                async with s.post(
                    self.endpoint,
                    json=body,
                    timeout=aiohttp.ClientTimeout(total=self.timeout),
                ) as resp:
                    if not 200 <= resp.status < 300:
                        text = await resp.text()
                        log.warning(
                            "Token service rejected request",
                            status=resp.status,
                            latency_ms=int((time.time() - start_ts) * 1000),
                        )
                        emitter.token_rejected(session_id, status=resp.status)
                        raise TokenRequestFailed(resp.status, text)
                    try:
                        payload = await resp.json(content_type=None)
                    except ValueError as e:
                        raise NegotiationFailed("token service returned invalid JSON") from e
        except (asyncio.TimeoutError, TimeoutError) as e:
            log.warning("Token request timed out", timeout=self.timeout)
            raise NegotiationTimeout("token request", self.timeout) from e
        except aiohttp.ClientError as e:
            log.warning(
                "Token request failed",
                error=str(e),
                error_type=type(e).__name__,
                latency_ms=int((time.time() - start_ts) * 1000),
            )
            raise NegotiationFailed(f"token request failed: {type(e).__name__}") from e

        token = EphemeralToken.from_session_payload(payload, fallback_model=model)
        latency_ms = int((time.time() - start_ts) * 1000)
        log.info("Ephemeral token issued", model=token.provider_model, latency_ms=latency_ms)
        emitter.token_issued(session_id, model=token.provider_model, latency_ms=latency_ms)
        return token
