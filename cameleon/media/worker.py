# cameleon/media/worker.py
import logging
import threading
import time
from typing import Any, Callable, Optional

import numpy as np

logger = logging.getLogger(__name__)

# Consecutive failed reads before the device is considered gone.
MAX_FAILED_READS = 50


class CameraWorker(threading.Thread):
    """Reads frames from an opened ``cv2.VideoCapture`` until stopped."""

    def __init__(
        self,
        capture: Any,
        on_frame: Callable[[np.ndarray], None],
        on_error: Callable[[Exception], None],
        fps: int = 25,
    ):
        super().__init__(daemon=True, name="CameraWorker")
        self.capture = capture
        self.on_frame = on_frame
        self.on_error = on_error
        self.frame_interval = 1.0 / max(fps, 1)

        self.stop_event = threading.Event()
        self.frames_read = 0

    def run(self):
        try:
            self._read_loop()
        except Exception as e:
            logger.error(f"Camera worker exception: {e}", exc_info=True)
            self.on_error(e)
        finally:
            self._release_capture()

    def _read_loop(self):
        failed_reads = 0
        while not self.stop_event.is_set():
            ok, frame = self.capture.read()
            if not ok or frame is None:
                failed_reads += 1
                if failed_reads >= MAX_FAILED_READS:
                    raise RuntimeError("Camera stopped delivering frames")
                time.sleep(self.frame_interval)
                continue

            failed_reads = 0
            self.frames_read += 1
            self.on_frame(frame)

    def _release_capture(self):
        if self.capture is None:
            return
        try:
            self.capture.release()
        except Exception as e:
            logger.warning(f"Failed to release camera: {e}")
        finally:
            self.capture = None

    def stop(self, timeout: Optional[float] = 2.0):
        self.stop_event.set()
        if self.is_alive() and threading.current_thread() is not self:
            self.join(timeout=timeout)
            if self.is_alive():
                logger.error("Camera worker did not stop gracefully within timeout")
