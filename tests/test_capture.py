"""
Microphone capture tests with a fake MediaPlayer.
"""
import asyncio
import time

import pytest

from voice_session import capture
from voice_session.capture import MicrophoneSource
from voice_session.errors import MicrophoneDenied


class FakeTrack:
    kind = "audio"

    def __init__(self):
        self.stopped = 0

    def stop(self):
        self.stopped += 1


class FakePlayer:
    opened = []

    def __init__(self, file, format=None, options=None):
        FakePlayer.opened.append((file, format, options))
        self.audio = FakeTrack()


@pytest.fixture
def fake_player(monkeypatch):
    FakePlayer.opened = []
    monkeypatch.setattr(capture, "MediaPlayer", FakePlayer)
    return FakePlayer


@pytest.mark.asyncio
async def test_acquire_returns_audio_track(fake_player):
    source = MicrophoneSource(device="hw:1", format="alsa")
    track = await source.acquire()

    assert isinstance(track, FakeTrack)
    assert fake_player.opened == [("hw:1", "alsa", {"sample_rate": "24000", "channels": "1"})]


@pytest.mark.asyncio
async def test_release_stops_track_once(fake_player):
    source = MicrophoneSource()
    track = await source.acquire()

    source.release()
    source.release()

    assert track.stopped == 1


def test_release_without_acquire():
    MicrophoneSource().release()


@pytest.mark.asyncio
async def test_open_failure_is_denied(monkeypatch):
    def refuse(*args, **kwargs):
        raise OSError("Permission denied")

    monkeypatch.setattr(capture, "MediaPlayer", refuse)

    with pytest.raises(MicrophoneDenied) as exc_info:
        await MicrophoneSource().acquire()
    assert "Permission denied" in str(exc_info.value)


@pytest.mark.asyncio
async def test_device_without_audio_is_denied(monkeypatch):
    class VideoOnly(FakePlayer):
        def __init__(self, *args, **kwargs):
            self.audio = None

    monkeypatch.setattr(capture, "MediaPlayer", VideoOnly)

    with pytest.raises(MicrophoneDenied):
        await MicrophoneSource().acquire()


class SlowPlayer(FakePlayer):
    """Opening blocks like a device waiting on a permission prompt."""

    instances = []

    def __init__(self, file, format=None, options=None):
        time.sleep(0.2)
        super().__init__(file, format=format, options=options)
        SlowPlayer.instances.append(self)


@pytest.mark.asyncio
async def test_device_opened_after_cancel_is_stopped(monkeypatch):
    SlowPlayer.instances = []
    monkeypatch.setattr(capture, "MediaPlayer", SlowPlayer)
    source = MicrophoneSource()

    task = asyncio.create_task(source.acquire())
    await asyncio.sleep(0.05)
    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task
    source.release()

    await asyncio.sleep(0.4)
    assert len(SlowPlayer.instances) == 1
    assert SlowPlayer.instances[0].audio.stopped == 1
