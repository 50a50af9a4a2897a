"""
WebRTC media + control transport to the realtime provider.

One transport instance carries one session: the local microphone track goes
up, the provider's audio track comes down, and JSON envelopes travel over the
"oai-events" data channel. The orchestrator only sees TransportHandlers
callbacks; it never touches aiortc objects directly.
"""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass
from typing import Any, Callable, Optional, Set
from urllib.parse import quote

import aiohttp
from aiortc import (
    RTCConfiguration,
    RTCIceServer,
    RTCPeerConnection,
    RTCSessionDescription,
)
from aiortc.mediastreams import MediaStreamError, MediaStreamTrack

from logging_setup import get_logger, Component
from .errors import NegotiationFailed, redact_detail


logger = get_logger(Component.TRANSPORT)

CHANNEL_LABEL = "oai-events"
SDP_CONTENT_TYPE = "application/sdp"


@dataclass
class TransportHandlers:
    """Callbacks the transport invokes; all run on the event loop thread."""

    on_open: Callable[[], None]
    on_message: Callable[[Any], None]
    on_close: Callable[[], None]
    on_audio_frame: Callable[[Any], None]


async def exchange_description(
    http: aiohttp.ClientSession,
    provider_base_url: str,
    model: str,
    token: str,
    offer_sdp: str,
    *,
    timeout: float = 15.0,
) -> str:
    """
    POST the local offer to the provider and return the answer SDP.

    Raises:
        NegotiationFailed: rejected token, HTTP error or malformed answer
        asyncio.TimeoutError: no answer within timeout
    """
    url = f"{provider_base_url.rstrip('/')}/realtime?model={quote(model, safe='')}"
    headers = {
        "Authorization": f"Bearer {token}",
        "Content-Type": SDP_CONTENT_TYPE,
    }
    start_ts = time.time()
    try:
        async with http.post(
            url,
            data=offer_sdp,
            headers=headers,
            timeout=aiohttp.ClientTimeout(total=timeout),
        ) as resp:
            answer = await resp.text()
            logger.info(
                "Session description exchange response",
                status=resp.status,
                latency_ms=int((time.time() - start_ts) * 1000),
            )
            if not 200 <= resp.status < 300:
                raise NegotiationFailed(
                    f"provider rejected session description ({resp.status}): {redact_detail(answer)}",
                    status=resp.status,
                )
    except (asyncio.TimeoutError, TimeoutError):
        raise
    except aiohttp.ClientError as e:
        raise NegotiationFailed(f"session description exchange failed: {type(e).__name__}") from e

    if not answer.lstrip().startswith("v="):
        raise NegotiationFailed("provider returned a malformed session description")
    return answer


class WebRTCTransport:
    """aiortc peer connection + data channel for one session."""

    def __init__(
        self,
        provider_base_url: str,
        *,
        stun_server_url: Optional[str] = None,
        timeout: float = 15.0,
        session_factory: Callable[[], aiohttp.ClientSession] = aiohttp.ClientSession,
    ):
        self.provider_base_url = provider_base_url
        self.stun_server_url = stun_server_url
        self.timeout = timeout
        self._session_factory = session_factory

        self._pc: Optional[RTCPeerConnection] = None
        self._channel = None
        self._audio_tasks: Set[asyncio.Task] = set()
        self._closing = False

    @property
    def is_open(self) -> bool:
        return self._channel is not None and self._channel.readyState == "open"

    async def open(
        self,
        token: str,
        model: str,
        audio_track: MediaStreamTrack,
        handlers: TransportHandlers,
    ) -> None:
        """Create the peer connection and complete the offer/answer exchange."""
        self._closing = False
        ice_servers = [RTCIceServer(urls=self.stun_server_url)] if self.stun_server_url else []
        pc = RTCPeerConnection(configuration=RTCConfiguration(iceServers=ice_servers))
        self._pc = pc

        def _closed() -> None:
            if not self._closing:
                handlers.on_close()

        @pc.on("track")
        def on_track(track: MediaStreamTrack) -> None:
            if track.kind != "audio":
                return
            logger.debug("Remote audio track received")
            task = asyncio.ensure_future(self._pump_audio(track, handlers.on_audio_frame))
            self._audio_tasks.add(task)
            task.add_done_callback(self._audio_tasks.discard)

        @pc.on("connectionstatechange")
        def on_connection_state() -> None:
            logger.debug("Peer connection state changed", state=pc.connectionState)
            if pc.connectionState in ("failed", "closed"):
                _closed()

        pc.addTrack(audio_track)

        channel = pc.createDataChannel(CHANNEL_LABEL)
        self._channel = channel
        channel.on("open", handlers.on_open)
        channel.on("message", handlers.on_message)
        channel.on("close", _closed)

        offer = await pc.createOffer()
        await pc.setLocalDescription(offer)

        async with self._session_factory() as http:
            answer = await exchange_description(
                http,
                self.provider_base_url,
                model,
                token,
                pc.localDescription.sdp,
                timeout=self.timeout,
            )

        try:
            await pc.setRemoteDescription(RTCSessionDescription(sdp=answer, type="answer"))
        except ValueError as e:
            raise NegotiationFailed(f"provider returned a malformed session description: {e}") from e

    async def _pump_audio(self, track: MediaStreamTrack, on_frame: Callable[[Any], None]) -> None:
        while True:
            try:
                frame = await track.recv()
            except MediaStreamError:
                return
            on_frame(frame)

    def send(self, payload: str) -> bool:
        """Send one JSON envelope. Returns False if the channel is not open."""
        if not self.is_open:
            logger.warning("Data channel not open, cannot send event")
            return False
        self._channel.send(payload)
        return True

    async def close(self) -> None:
        """Tear down channel, remote audio readers and peer connection. Idempotent."""
        self._closing = True

        if self._channel is not None:
            self._channel.close()
            self._channel = None

        for task in list(self._audio_tasks):
            task.cancel()
        self._audio_tasks.clear()

        if self._pc is not None:
            pc, self._pc = self._pc, None
            await pc.close()
