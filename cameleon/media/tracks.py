"""cameleon.media.tracks

In-process media tracks.

A track keeps only the most recent frame (or audio block). Producers push,
consumers (remote adapter, recording compositor) pull the latest value.
Tracks are thread-safe because the camera reader runs in its own thread.
"""

from __future__ import annotations

import logging
import threading
import uuid
from typing import Callable, List, Optional, Tuple

import numpy as np

logger = logging.getLogger(__name__)


def is_decodable_frame(frame: object) -> bool:
    """A BGR frame usable by cv2 (H x W x 3, uint8, non-empty)."""
    return (
        isinstance(frame, np.ndarray)
        and frame.ndim == 3
        and frame.shape[2] == 3
        and frame.shape[0] > 0
        and frame.shape[1] > 0
        and frame.dtype == np.uint8
    )


class MediaTrack:
    kind = "unknown"

    def __init__(self, label: str = ""):
        self.id = uuid.uuid4().hex
        self.label = label or self.kind
        self._lock = threading.Lock()
        self._ended = False
        self._stop_callbacks: List[Callable[[], None]] = []

    @property
    def ended(self) -> bool:
        return self._ended

    def add_stop_callback(self, callback: Callable[[], None]) -> None:
        self._stop_callbacks.append(callback)

    def stop(self) -> None:
        """Stop the track and release its producer. Idempotent."""
        with self._lock:
            if self._ended:
                return
            self._ended = True
            callbacks = list(self._stop_callbacks)
            self._stop_callbacks.clear()
        for callback in callbacks:
            try:
                callback()
            except Exception as e:
                logger.warning("Error stopping %s track %s: %s", self.kind, self.label, e)
        logger.debug("Track stopped: %s (%s)", self.label, self.kind)


class VideoTrack(MediaTrack):
    kind = "video"

    def __init__(self, label: str = ""):
        super().__init__(label)
        self._frame: Optional[np.ndarray] = None
        self._natural_size: Optional[Tuple[int, int]] = None
        self.frames_received = 0

    def push_frame(self, frame: np.ndarray) -> bool:
        """Store a new frame. Malformed frames are ignored."""
        if self._ended or not is_decodable_frame(frame):
            return False
        with self._lock:
            self._frame = frame
            self._natural_size = (int(frame.shape[1]), int(frame.shape[0]))
            self.frames_received += 1
        return True

    def latest_frame(self) -> Optional[np.ndarray]:
        with self._lock:
            if self._ended:
                return None
            return self._frame

    @property
    def natural_size(self) -> Optional[Tuple[int, int]]:
        """(width, height) of the last frame, None until the first frame arrives."""
        with self._lock:
            return self._natural_size


class AudioTrack(MediaTrack):
    kind = "audio"

    def __init__(self, label: str = "", sample_rate: int = 48000):
        super().__init__(label)
        self.sample_rate = sample_rate
        self._block: Optional[np.ndarray] = None
        self._level = 0.0

    def push_block(self, block: np.ndarray) -> None:
        if self._ended:
            return
        level = float(np.sqrt(np.mean(np.square(block)))) if block.size else 0.0
        with self._lock:
            self._block = block
            self._level = level

    def latest_block(self) -> Optional[np.ndarray]:
        with self._lock:
            return self._block

    @property
    def level(self) -> float:
        with self._lock:
            return self._level


class MediaStream:
    """A bundle of one video track and an optional audio track."""

    def __init__(self, video: VideoTrack, audio: Optional[AudioTrack] = None, label: str = ""):
        self.id = uuid.uuid4().hex
        self.label = label or "stream"
        self.video = video
        self.audio = audio

    def tracks(self) -> List[MediaTrack]:
        return [t for t in (self.video, self.audio) if t is not None]

    @property
    def active(self) -> bool:
        return any(not t.ended for t in self.tracks())

    def stop(self) -> None:
        for track in self.tracks():
            track.stop()
