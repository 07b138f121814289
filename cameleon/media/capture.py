"""cameleon.media.capture

Opens the local camera (OpenCV) and microphone (sounddevice) as a MediaStream.

Blocking: call through ``asyncio.to_thread``.
"""

from __future__ import annotations

import logging
import sys
from typing import Optional

import cv2

from cameleon.core.errors import CaptureError
from cameleon.core.models import CaptureProfile
from cameleon.media.tracks import AudioTrack, MediaStream, VideoTrack
from cameleon.media.worker import CameraWorker

logger = logging.getLogger(__name__)


def _open_camera(index: int):
    # DirectShow avoids the long MSMF startup on Windows.
    if sys.platform == "win32":
        return cv2.VideoCapture(index, cv2.CAP_DSHOW)
    return cv2.VideoCapture(index)


def open_video_track(profile: CaptureProfile) -> VideoTrack:
    capture = _open_camera(profile.camera_index)
    if capture is None or not capture.isOpened():
        if capture is not None:
            capture.release()
        raise CaptureError(
            f"Camera {profile.camera_index} could not be opened. Please allow camera access."
        )

    try:
        capture.set(cv2.CAP_PROP_FRAME_WIDTH, profile.width)
        capture.set(cv2.CAP_PROP_FRAME_HEIGHT, profile.height)
        capture.set(cv2.CAP_PROP_FPS, profile.fps)
    except Exception as e:
        logger.warning("Failed to set camera properties: %s", e)

    # A denied/busy device opens but never returns a frame.
    ok, frame = capture.read()
    if not ok or frame is None:
        capture.release()
        raise CaptureError(f"Camera {profile.camera_index} returned no frames. Is it in use?")

    track = VideoTrack(label=f"camera:{profile.camera_index}")
    track.push_frame(frame)

    def _on_error(error: Exception) -> None:
        logger.error("Camera track ended: %s", error)
        track.stop()

    worker = CameraWorker(capture, on_frame=track.push_frame, on_error=_on_error, fps=profile.fps)
    track.add_stop_callback(worker.stop)
    worker.start()

    width = int(capture.get(cv2.CAP_PROP_FRAME_WIDTH) or frame.shape[1])
    height = int(capture.get(cv2.CAP_PROP_FRAME_HEIGHT) or frame.shape[0])
    logger.info("Camera %s opened at %sx%s", profile.camera_index, width, height)
    return track


def open_audio_track(profile: CaptureProfile) -> AudioTrack:
    try:
        import sounddevice as sd
    except (ImportError, OSError) as e:
        raise CaptureError(f"Microphone unavailable: {e}") from e

    track = AudioTrack(label="microphone", sample_rate=profile.audio_sample_rate)

    def _callback(indata, frames, time_info, status) -> None:
        if status:
            logger.debug("Audio input status: %s", status)
        track.push_block(indata[:, 0].copy())

    try:
        stream = sd.InputStream(
            samplerate=profile.audio_sample_rate,
            channels=1,
            dtype="float32",
            callback=_callback,
        )
        stream.start()
    except Exception as e:
        raise CaptureError(f"Microphone access failed: {e}") from e

    def _close() -> None:
        stream.stop()
        stream.close()

    track.add_stop_callback(_close)
    logger.info("Microphone opened at %s Hz", profile.audio_sample_rate)
    return track


def open_local_stream(profile: CaptureProfile) -> MediaStream:
    """Open camera (and microphone when requested) or raise CaptureError."""
    video = open_video_track(profile)
    audio: Optional[AudioTrack] = None
    if profile.audio:
        try:
            audio = open_audio_track(profile)
        except CaptureError:
            video.stop()
            raise
    return MediaStream(video=video, audio=audio, label="local")
