from __future__ import annotations

import pytest

from cameleon.core.errors import CaptureError
from cameleon.media.tracks import AudioTrack
from cameleon.services.capture_manager import CaptureManager
from tests.fakes import make_stream


class CountingFactory:
    def __init__(self, error: Exception | None = None):
        self.error = error
        self.calls = 0
        self.streams = []

    def __call__(self, profile):
        self.calls += 1
        if self.error is not None:
            raise self.error
        stream = make_stream(profile.width // 4, profile.height // 4, label="camera")
        self.streams.append(stream)
        return stream


@pytest.mark.asyncio
async def test_acquire_is_idempotent(settings):
    factory = CountingFactory()
    manager = CaptureManager(settings, stream_factory=factory)

    first = await manager.acquire()
    second = await manager.acquire()

    assert first is second
    assert factory.calls == 1
    assert manager.ready is True
    assert manager.get_status()["natural_size"] == (320, 176)


@pytest.mark.asyncio
async def test_capture_error_is_reported_and_not_retried(settings):
    factory = CountingFactory(error=CaptureError("Camera 0 could not be opened. Please allow camera access."))
    manager = CaptureManager(settings, stream_factory=factory)

    with pytest.raises(CaptureError):
        await manager.acquire()

    assert factory.calls == 1
    assert manager.ready is False
    assert manager.stream is None
    assert "could not be opened" in manager.last_error


@pytest.mark.asyncio
async def test_unexpected_errors_become_capture_errors(settings):
    manager = CaptureManager(settings, stream_factory=CountingFactory(error=OSError("device busy")))

    with pytest.raises(CaptureError) as exc:
        await manager.acquire()

    assert "device busy" in str(exc.value)


@pytest.mark.asyncio
async def test_release_stops_tracks_and_notifies(settings):
    events = []
    factory = CountingFactory()
    manager = CaptureManager(settings, stream_factory=factory)
    manager.add_ready_listener(events.append)

    await manager.acquire()
    manager.release()
    manager.release()

    assert events == [True, False]
    assert factory.streams[0].active is False
    assert manager.stream is None


@pytest.mark.asyncio
async def test_reacquire_after_release_opens_new_stream(settings):
    factory = CountingFactory()
    manager = CaptureManager(settings, stream_factory=factory)

    first = await manager.acquire()
    manager.release()
    second = await manager.acquire()

    assert first is not second
    assert factory.calls == 2


@pytest.mark.asyncio
async def test_dead_camera_is_reopened_even_while_microphone_runs(settings):
    factory = CountingFactory()
    manager = CaptureManager(settings, stream_factory=factory)
    events = []
    manager.add_ready_listener(events.append)

    first = await manager.acquire()
    first.audio = AudioTrack(label="microphone")
    # What the camera worker does when the device stops delivering frames.
    first.video.stop()

    assert first.active is True
    assert manager.ready is False
    assert manager.last_error == "Camera stopped delivering frames"

    second = await manager.acquire()

    assert second is not first
    assert factory.calls == 2
    assert first.audio.ended is True
    assert manager.ready is True
    assert manager.last_error is None
    assert events == [True, False, True]
