from __future__ import annotations

import asyncio

import pytest

from cameleon.core.errors import CaptureError, ConnectError, TryOnError
from cameleon.core.models import Mode, RemoteState
from cameleon.services.capture_manager import CaptureManager
from cameleon.services.garments import GarmentSelection
from cameleon.services.live_session import LiveSession
from cameleon.services.recording import RecordingCompositor
from cameleon.services.remote_stream import RemoteStreamController
from tests.fakes import TEST_CODEC, FakeEncoder, FakeProvider, RecordingSleep, make_settings, make_stream


class FakeController:
    def __init__(self, calls, error=None):
        self.calls = calls
        self.error = error
        self.disconnect_error = None
        self.state = RemoteState.IDLE
        self.output_stream = None
        self.listeners = []
        self.connected_with = []

    @property
    def is_streaming(self):
        return self.state is RemoteState.STREAMING

    def add_error_listener(self, listener):
        self.listeners.append(listener)

    async def connect(self, local_stream, prompt, garment_file=None):
        self.calls.append("connect")
        if self.error is not None:
            raise self.error
        self.connected_with.append((prompt, garment_file))
        self.output_stream = make_stream(640, 360, label="edited")
        self.state = RemoteState.STREAMING
        return self.output_stream

    async def disconnect(self):
        self.calls.append("disconnect")
        if self.disconnect_error is not None:
            raise self.disconnect_error
        self.output_stream = None
        self.state = RemoteState.IDLE

    async def update_prompt(self, text):
        return self.is_streaming

    async def update_garment(self, garment_file):
        return self.is_streaming and garment_file is not None

    def get_status(self):
        return {"state": self.state.value}


class FakeCompositor:
    def __init__(self, calls):
        self.calls = calls
        self.stop_error = None
        self.started = []
        self.recording = None

    def start(self, output_source, input_source):
        self.calls.append("record")
        self.started.append((output_source, input_source))
        return True

    async def stop(self):
        self.calls.append("stop_recording")
        if self.stop_error is not None:
            raise self.stop_error
        return None

    def get_status(self):
        return {"recording": bool(self.started)}


def make_live(tmp_path, calls, controller_error=None, capture_error=None, **overrides):
    settings = make_settings(**overrides)

    def factory(profile):
        if capture_error is not None:
            raise capture_error
        return make_stream(label="camera")

    capture = CaptureManager(settings, stream_factory=factory)
    controller = FakeController(calls, error=controller_error)
    compositor = FakeCompositor(calls)
    live = LiveSession(capture, controller, compositor, GarmentSelection(tmp_path), settings)
    return live, controller, compositor


@pytest.mark.asyncio
async def test_start_stream_acquires_camera_then_records(tmp_path):
    calls = []
    live, controller, compositor = make_live(tmp_path, calls)

    await live.start_stream("  red jacket ")
    await asyncio.sleep(0.05)

    assert live.capture.ready is True
    assert controller.connected_with == [("red jacket", None)]
    assert calls == ["stop_recording", "connect", "record"]
    output, camera = compositor.started[0]
    assert output is controller.output_stream.video
    assert camera is live.capture.stream.video


@pytest.mark.asyncio
async def test_recording_waits_for_settle_delay(tmp_path):
    calls = []
    live, controller, compositor = make_live(tmp_path, calls, RECORDING_START_DELAY_SEC=0.2)

    await live.start_stream("jacket")
    await asyncio.sleep(0.05)
    assert compositor.started == []

    await asyncio.sleep(0.25)
    assert len(compositor.started) == 1


@pytest.mark.asyncio
async def test_recording_skipped_when_stream_dropped_during_delay(tmp_path):
    calls = []
    live, controller, compositor = make_live(tmp_path, calls, RECORDING_START_DELAY_SEC=0.05)

    await live.start_stream("jacket")
    controller.state = RemoteState.ERROR
    await asyncio.sleep(0.1)

    assert compositor.started == []


@pytest.mark.asyncio
async def test_stop_stream_flushes_recording_before_disconnect(tmp_path):
    calls = []
    live, controller, compositor = make_live(tmp_path, calls)
    await live.start_stream("jacket")
    await asyncio.sleep(0.05)
    calls.clear()

    await live.stop_stream()

    assert calls == ["stop_recording", "disconnect"]
    assert live.capture.ready is True


@pytest.mark.asyncio
async def test_photo_mode_releases_everything(tmp_path):
    calls = []
    live, controller, compositor = make_live(tmp_path, calls)
    await live.start_stream("jacket")
    camera = live.capture.stream
    calls.clear()

    await live.enter_mode(Mode.PHOTO)

    assert calls == ["stop_recording", "disconnect"]
    assert live.mode is Mode.PHOTO
    assert live.capture.stream is None
    assert camera.active is False

    with pytest.raises(TryOnError, match="live mode"):
        await live.start_stream("jacket")


@pytest.mark.asyncio
async def test_live_mode_capture_failure_becomes_notification(tmp_path):
    calls = []
    live, _, _ = make_live(tmp_path, calls, capture_error=CaptureError("Camera 0 could not be opened."))

    await live.enter_mode(Mode.LIVE)

    assert live.drain_notifications() == ["Camera 0 could not be opened."]
    assert live.drain_notifications() == []


@pytest.mark.asyncio
async def test_start_stream_without_camera_fails(tmp_path):
    calls = []
    live, _, _ = make_live(tmp_path, calls, capture_error=CaptureError("denied"))

    with pytest.raises(CaptureError, match="Camera not available"):
        await live.start_stream("jacket")

    assert "connect" not in calls


@pytest.mark.asyncio
async def test_connect_failure_is_notified_and_raised(tmp_path):
    calls = []
    live, _, compositor = make_live(tmp_path, calls, controller_error=ConnectError("Failed to start: boom"))

    with pytest.raises(ConnectError):
        await live.start_stream("jacket")
    await asyncio.sleep(0.05)

    assert live.drain_notifications() == ["Failed to start: boom"]
    assert compositor.started == []


@pytest.mark.asyncio
async def test_stream_error_notifies_and_tears_down(tmp_path):
    calls = []
    live, controller, _ = make_live(tmp_path, calls)
    await live.start_stream("jacket")
    await asyncio.sleep(0.05)
    calls.clear()

    await controller.listeners[0]("Stream error: ice failed")

    assert live.drain_notifications() == ["Stream error: ice failed"]
    assert calls == ["stop_recording", "disconnect"]


@pytest.mark.asyncio
async def test_selected_garment_is_sent_on_connect(tmp_path):
    calls = []
    live, controller, _ = make_live(tmp_path, calls)
    (tmp_path / "floral_jacket.png").write_bytes(b"\x89PNG\r\n\x1a\n")
    live.garments.select_catalog(0)

    await live.start_stream("jacket")

    prompt, garment = controller.connected_with[0]
    assert garment.name == "garment.png"
    assert await live.refresh_garment() is True


@pytest.mark.asyncio
async def test_shutdown_releases_camera_when_disconnect_fails(tmp_path):
    calls = []
    live, controller, _ = make_live(tmp_path, calls)
    await live.start_stream("jacket")
    await asyncio.sleep(0.05)
    camera = live.capture.stream
    controller.disconnect_error = RuntimeError("socket already closed")
    calls.clear()

    await live.shutdown()

    assert calls == ["stop_recording", "disconnect"]
    assert live.capture.stream is None
    assert live.capture.ready is False
    assert camera.active is False


@pytest.mark.asyncio
async def test_shutdown_still_disconnects_when_recording_stop_fails(tmp_path):
    calls = []
    live, controller, compositor = make_live(tmp_path, calls)
    await live.start_stream("jacket")
    await asyncio.sleep(0.05)
    camera = live.capture.stream
    compositor.stop_error = RuntimeError("encoder crashed")
    calls.clear()

    await live.shutdown()

    assert calls == ["stop_recording", "disconnect"]
    assert controller.state is RemoteState.IDLE
    assert live.capture.stream is None
    assert camera.active is False


def make_wired_live(tmp_path, provider, **overrides):
    settings = make_settings(**overrides)
    capture = CaptureManager(settings, stream_factory=lambda profile: make_stream(label="camera"))
    controller = RemoteStreamController(settings, provider_factory=provider.factory, sleep=RecordingSleep())
    compositor = RecordingCompositor(settings, codec_selector=lambda: TEST_CODEC, encoder_factory=FakeEncoder)
    return LiveSession(capture, controller, compositor, GarmentSelection(tmp_path), settings)


@pytest.mark.asyncio
async def test_live_session_records_remote_stream_end_to_end(tmp_path):
    provider = FakeProvider()
    live = make_wired_live(tmp_path, provider)

    await live.start_stream("leather jacket")
    await asyncio.sleep(0.2)

    assert live.controller.is_streaming
    assert live.compositor.is_recording

    recording = await live.stop_stream()

    assert recording is not None
    assert recording.frames > 0
    assert recording.width == 640
    assert live.recording is recording
    encoder = FakeEncoder.instances[0]
    assert encoder.finalized == 1
    assert provider.sessions[0].closed is True
    assert provider.outputs[0].active is False
    assert live.controller.state is RemoteState.IDLE
    assert live.capture.ready is True


@pytest.mark.asyncio
async def test_remote_session_error_stops_recording_and_keeps_camera(tmp_path):
    provider = FakeProvider()
    live = make_wired_live(tmp_path, provider)

    await live.start_stream("leather jacket")
    await asyncio.sleep(0.2)

    provider.sessions[0].fire_error(RuntimeError("ice failed"))
    await asyncio.gather(*list(live.controller._error_tasks))

    assert live.drain_notifications() == ["Stream error: ice failed"]
    assert live.compositor.is_recording is False
    assert live.recording is not None
    assert provider.sessions[0].closed is True
    assert live.controller.state is RemoteState.ERROR
    assert live.capture.ready is True
