# cameleon/services/capture_manager.py
import asyncio
import logging
from typing import Callable, List, Optional

from cameleon.config import Settings, get_settings
from cameleon.core.errors import CaptureError
from cameleon.core.models import CaptureProfile
from cameleon.media.capture import open_local_stream
from cameleon.media.tracks import MediaStream

logger = logging.getLogger(__name__)

StreamFactory = Callable[[CaptureProfile], MediaStream]
ReadyListener = Callable[[bool], None]


class CaptureManager:
    """Owns the local camera+microphone stream. At most one stream at a time."""

    def __init__(
        self,
        settings: Optional[Settings] = None,
        stream_factory: Optional[StreamFactory] = None,
    ):
        settings = settings or get_settings()
        self.profile = CaptureProfile(
            fps=settings.CAPTURE_FPS,
            width=settings.CAPTURE_WIDTH,
            height=settings.CAPTURE_HEIGHT,
            audio=settings.CAPTURE_AUDIO,
            audio_sample_rate=settings.AUDIO_SAMPLE_RATE,
            camera_index=settings.CAMERA_INDEX,
        )
        self._stream_factory = stream_factory or open_local_stream
        self._stream: Optional[MediaStream] = None
        self._ready = False
        self._lock = asyncio.Lock()
        self._listeners: List[ReadyListener] = []
        self.last_error: Optional[str] = None

    @property
    def ready(self) -> bool:
        return self._ready

    @property
    def stream(self) -> Optional[MediaStream]:
        return self._stream

    def add_ready_listener(self, listener: ReadyListener) -> None:
        self._listeners.append(listener)

    def _set_ready(self, value: bool) -> None:
        if self._ready == value:
            return
        self._ready = value
        for listener in list(self._listeners):
            try:
                listener(value)
            except Exception as e:
                logger.warning("Camera ready listener failed: %s", e)

    async def acquire(self) -> MediaStream:
        """Open camera and microphone. Raises CaptureError; never retries."""
        async with self._lock:
            if self._stream is not None and not self._stream.video.ended:
                return self._stream
            if self._stream is not None:
                # Camera died (microphone may still be running); reopen from scratch.
                logger.warning("Camera track ended, reopening device")
                self.release()

            logger.info(
                "Requesting camera %s at %sx%s@%sfps (audio=%s)",
                self.profile.camera_index,
                self.profile.width,
                self.profile.height,
                self.profile.fps,
                self.profile.audio,
            )
            try:
                stream = await asyncio.to_thread(self._stream_factory, self.profile)
            except CaptureError as e:
                self.last_error = str(e)
                logger.error("Camera access error: %s", e)
                raise
            except Exception as e:
                self.last_error = f"Camera access error: {e}"
                logger.error("Camera access error: %s", e, exc_info=True)
                raise CaptureError(self.last_error) from e

            self._stream = stream
            self.last_error = None
            stream.video.add_stop_callback(lambda: self._on_video_ended(stream))
            self._set_ready(True)
            logger.info("Camera ready (stream %s)", stream.id)
            return stream

    def _on_video_ended(self, stream: MediaStream) -> None:
        # Runs on the camera worker thread when the device stops delivering frames.
        if stream is not self._stream:
            return
        if self.last_error is None:
            self.last_error = "Camera stopped delivering frames"
        self._set_ready(False)

    def release(self) -> None:
        """Stop all tracks and clear state. Safe to call when already released."""
        stream = self._stream
        self._stream = None
        if stream is not None:
            try:
                stream.stop()
                logger.info("Camera released (stream %s)", stream.id)
            except Exception as e:
                logger.error("Failed to stop capture tracks: %s", e)
        self._set_ready(False)

    def get_status(self) -> dict:
        stream = self._stream
        return {
            "ready": self._ready,
            "natural_size": stream.video.natural_size if stream else None,
            "frames_received": stream.video.frames_received if stream else 0,
            "audio": stream.audio is not None if stream else False,
            "error": self.last_error,
        }
