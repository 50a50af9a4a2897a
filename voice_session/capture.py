"""
Local microphone capture.

Opens the capture device through ffmpeg (aiortc's MediaPlayer) and hands the
audio track to the transport. Refusal or absence of a device surfaces as
MicrophoneDenied so the caller can show a specific remediation message.
"""
from __future__ import annotations

import asyncio
from typing import Dict, Optional

from aiortc.contrib.media import MediaPlayer
from aiortc.mediastreams import MediaStreamTrack
from av.error import FFmpegError

from logging_setup import get_logger, Component
from .errors import MicrophoneDenied


logger = get_logger(Component.MICROPHONE)

# Provider expects 24 kHz mono speech
DEFAULT_CAPTURE_OPTIONS = {"sample_rate": "24000", "channels": "1"}


class MicrophoneSource:
    """Acquire/release pair for one session's capture track."""

    def __init__(
        self,
        device: str = "default",
        format: Optional[str] = "pulse",
        options: Optional[Dict[str, str]] = None,
    ):
        self.device = device
        self.format = format
        self.options = dict(DEFAULT_CAPTURE_OPTIONS if options is None else options)
        self._player: Optional[MediaPlayer] = None

    async def acquire(self) -> MediaStreamTrack:
        """
        Open the device and return its audio track.

        Opening may block on a permission prompt, so it runs off the loop.
        """
        logger.info("Requesting microphone access", device=self.device, format=self.format)
        opening = asyncio.ensure_future(
            asyncio.to_thread(MediaPlayer, self.device, format=self.format, options=self.options)
        )
        try:
            player = await asyncio.shield(opening)
        except asyncio.CancelledError:
            # The worker thread cannot be interrupted; close the device once it opens.
            opening.add_done_callback(self._stop_late_player)
            raise
        except (FFmpegError, OSError) as e:
            logger.warning(
                "Microphone access failed",
                device=self.device,
                error=str(e),
                error_type=type(e).__name__,
            )
            raise MicrophoneDenied(f"could not open microphone {self.device!r}: {e}") from e

        if player.audio is None:
            raise MicrophoneDenied(f"device {self.device!r} has no audio input")

        self._player = player
        return player.audio

    def _stop_late_player(self, opening: asyncio.Future) -> None:
        if opening.cancelled() or opening.exception() is not None:
            return
        player = opening.result()
        if player.audio is not None:
            player.audio.stop()
        logger.info("Microphone opened after cancellation; stopped", device=self.device)

    def release(self) -> None:
        """Stop the capture track. Safe to call when nothing was acquired."""
        if self._player is None:
            return
        player, self._player = self._player, None
        if player.audio is not None:
            player.audio.stop()
        logger.debug("Microphone released", device=self.device)
