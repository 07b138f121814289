"""cameleon.services.live_session

Live-mode coordinator.

Ordering rules:
- recording starts only after the remote session is streaming (plus a settle delay);
- recording is stopped (encoder flushed) before the remote session is torn down;
- teardown: stop recording -> disconnect -> release camera, every step runs
  even if an earlier one failed.
"""

from __future__ import annotations

import asyncio
import logging
from collections import deque
from typing import Deque, List, Optional

from cameleon.config import Settings, get_settings
from cameleon.core.errors import CaptureError, TryOnError
from cameleon.core.models import Mode, Recording
from cameleon.services.capture_manager import CaptureManager
from cameleon.services.garments import GarmentSelection
from cameleon.services.recording import RecordingCompositor
from cameleon.services.remote_stream import RemoteStreamController

log = logging.getLogger(__name__)


class LiveSession:
    def __init__(
        self,
        capture: CaptureManager,
        controller: RemoteStreamController,
        compositor: RecordingCompositor,
        garments: GarmentSelection,
        settings: Optional[Settings] = None,
    ):
        self._settings = settings or get_settings()
        self.capture = capture
        self.controller = controller
        self.compositor = compositor
        self.garments = garments

        self.mode = Mode.LIVE
        self.prompt = ""
        self.notifications: Deque[str] = deque(maxlen=self._settings.NOTIFICATION_LIMIT)
        self._recording_start: Optional[asyncio.Task] = None
        self._teardown_lock = asyncio.Lock()

        self.controller.add_error_listener(self._on_stream_error)

    def notify(self, message: str) -> None:
        log.info("Notification: %s", message)
        self.notifications.append(message)

    def drain_notifications(self) -> List[str]:
        messages = list(self.notifications)
        self.notifications.clear()
        return messages

    # --------------------------------------------
    # Mode
    # --------------------------------------------
    async def enter_mode(self, mode: Mode) -> None:
        if mode is Mode.PHOTO:
            if self.mode is Mode.LIVE:
                await self.shutdown()
            self.mode = Mode.PHOTO
            log.info("Mode -> photo")
            return

        self.mode = Mode.LIVE
        log.info("Mode -> live")
        try:
            await self.capture.acquire()
        except CaptureError as e:
            self.notify(str(e))

    # --------------------------------------------
    # Streaming
    # --------------------------------------------
    async def start_stream(self, prompt: str) -> None:
        """Connect (acquiring the camera first if needed), then schedule recording."""
        if self.mode is not Mode.LIVE:
            raise TryOnError("Live streaming is only available in live mode")
        self.prompt = (prompt or "").strip()

        # No-op for a healthy stream; reopens a camera whose track has ended.
        try:
            await self.capture.acquire()
        except CaptureError as e:
            self.notify("Camera not available. Please allow camera access.")
            raise CaptureError("Camera not available. Please allow camera access.") from e

        # Any clip still being written belongs to the previous session.
        await self._stop_recording()

        try:
            garment = self.garments.resolve_file()
            await self.controller.connect(self.capture.stream, self.prompt, garment)
        except TryOnError as e:
            self.notify(str(e))
            raise
        self._schedule_recording()

    def _schedule_recording(self) -> None:
        self._cancel_recording_start()
        self._recording_start = asyncio.get_running_loop().create_task(self._delayed_recording_start())

    async def _delayed_recording_start(self) -> None:
        await asyncio.sleep(self._settings.RECORDING_START_DELAY_SEC)
        output = self.controller.output_stream
        local = self.capture.stream
        if not self.controller.is_streaming or output is None or local is None:
            log.info("Recording start skipped: stream no longer active")
            return
        self.compositor.start(output.video, local.video)

    def _cancel_recording_start(self) -> None:
        task, self._recording_start = self._recording_start, None
        if task is not None and not task.done():
            task.cancel()

    async def _stop_recording(self) -> Optional[Recording]:
        self._cancel_recording_start()
        return await self.compositor.stop()

    async def stop_stream(self) -> Optional[Recording]:
        """Flush the recording first so it captures the last live frames, then disconnect."""
        async with self._teardown_lock:
            recording = None
            try:
                recording = await self._stop_recording()
            except Exception:
                log.exception("Failed to stop recording")
            try:
                await self.controller.disconnect()
            except Exception:
                log.exception("Failed to disconnect remote session")
            return recording

    async def shutdown(self) -> None:
        """Full teardown: recording, remote session, camera."""
        await self.stop_stream()
        try:
            self.capture.release()
        except Exception:
            log.exception("Failed to release camera")

    async def _on_stream_error(self, message: str) -> None:
        self.notify(message)
        await self.stop_stream()

    # --------------------------------------------
    # Live parameters
    # --------------------------------------------
    async def update_prompt(self, prompt: str) -> bool:
        self.prompt = (prompt or "").strip()
        return await self.controller.update_prompt(self.prompt)

    async def refresh_garment(self) -> bool:
        """Push the currently selected garment to a streaming session."""
        return await self.controller.update_garment(self.garments.resolve_file())

    @property
    def recording(self) -> Optional[Recording]:
        return self.compositor.recording

    def get_status(self) -> dict:
        return {
            "mode": self.mode.value,
            "prompt": self.prompt,
            "camera": self.capture.get_status(),
            "stream": self.controller.get_status(),
            "recording": self.compositor.get_status(),
            "has_garment": self.garments.has_garment,
            "notifications": list(self.notifications),
        }
