"""cameleon.services.recording

Dual-stream recording: edited output on top, raw camera below, both scaled
to a common width, encoded into one clip.

Nothing raises past `start()` / `stop()`; failures end up in `last_error`.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Callable, Optional, Protocol, Tuple

import cv2
import numpy as np

from cameleon.config import Settings, get_settings
from cameleon.core.models import Recording
from cameleon.media.encoder import ClipEncoder, CodecChoice, select_codec
from cameleon.media.tracks import is_decodable_frame

log = logging.getLogger(__name__)

Size = Tuple[int, int]


class FrameSource(Protocol):
    @property
    def natural_size(self) -> Optional[Size]: ...

    def latest_frame(self) -> Optional[np.ndarray]: ...


@dataclass(frozen=True)
class CompositeLayout:
    width: int
    output_height: int
    input_height: int

    @property
    def total_height(self) -> int:
        return self.output_height + self.input_height


def _even(value: int) -> int:
    # yuv420p needs even dimensions
    return max(2, value - (value % 2))


def composite_layout(output_size: Size, input_size: Size, max_width: int = 1280) -> CompositeLayout:
    """Scale both sources to min(output width, max_width), each keeping its own aspect ratio."""
    out_w, out_h = output_size
    in_w, in_h = input_size
    width = min(out_w, max_width)
    output_height = round(out_h * width / out_w)
    input_height = round(in_h * width / in_w)
    return CompositeLayout(
        width=_even(width),
        output_height=_even(output_height),
        input_height=_even(input_height),
    )


def paint_composite(
    canvas: np.ndarray,
    layout: CompositeLayout,
    output: FrameSource,
    input_: FrameSource,
) -> int:
    """Draw both sources into their bands. Returns the number of bands painted."""
    painted = 0
    bands = (
        (output, 0, layout.output_height),
        (input_, layout.output_height, layout.input_height),
    )
    for source, top, height in bands:
        frame = source.latest_frame()
        if not is_decodable_frame(frame):
            continue
        try:
            canvas[top:top + height] = cv2.resize(
                frame, (layout.width, height), interpolation=cv2.INTER_AREA
            )
        except Exception as e:
            log.debug("Skipping malformed frame: %s", e)
            continue
        painted += 1
    return painted


@dataclass
class _ActiveRecording:
    layout: CompositeLayout
    encoder: ClipEncoder
    codec: CodecChoice
    started_at: float


EncoderFactory = Callable[[int, int, int, int, CodecChoice], ClipEncoder]


class RecordingCompositor:
    def __init__(
        self,
        settings: Optional[Settings] = None,
        codec_selector: Callable[[], CodecChoice] = select_codec,
        encoder_factory: EncoderFactory = ClipEncoder,
    ):
        self._settings = settings or get_settings()
        self._codec_selector = codec_selector
        self._encoder_factory = encoder_factory

        self._task: Optional[asyncio.Task] = None
        self._stop_event: Optional[asyncio.Event] = None
        self._active: Optional[_ActiveRecording] = None
        self._recording: Optional[Recording] = None
        self.last_error: Optional[str] = None

    @property
    def is_recording(self) -> bool:
        return self._task is not None and not self._task.done()

    @property
    def layout(self) -> Optional[CompositeLayout]:
        return self._active.layout if self._active else None

    @property
    def recording(self) -> Optional[Recording]:
        """Most recent finished clip."""
        return self._recording

    def start(self, output_source: FrameSource, input_source: FrameSource) -> bool:
        if self.is_recording:
            log.warning("Recording already active, start ignored")
            return False
        try:
            self.last_error = None
            self._stop_event = asyncio.Event()
            self._task = asyncio.get_running_loop().create_task(
                self._run(output_source, input_source, self._stop_event)
            )
        except Exception as e:
            log.error("Failed to start recording: %s", e)
            self.last_error = f"Recording failed: {e}"
            return False
        return True

    async def _wait(self, stop_event: asyncio.Event, timeout: float) -> bool:
        """Sleep up to `timeout`; True when stop was requested."""
        try:
            await asyncio.wait_for(stop_event.wait(), timeout=timeout)
        except asyncio.TimeoutError:
            return False
        return True

    async def _wait_for_layout(
        self,
        output_source: FrameSource,
        input_source: FrameSource,
        stop_event: asyncio.Event,
    ) -> Optional[CompositeLayout]:
        retry = self._settings.RECORDING_READY_RETRY_SEC
        attempts = self._settings.RECORDING_READY_MAX_ATTEMPTS
        for attempt in range(attempts):
            output_size = output_source.natural_size
            input_size = input_source.natural_size
            if output_size and input_size:
                return composite_layout(output_size, input_size, self._settings.RECORDING_MAX_WIDTH)
            if attempt == 0:
                log.info("Video dimensions not ready, retrying every %ss", retry)
            if await self._wait(stop_event, retry):
                return None
        self.last_error = "Recording skipped: sources never became ready"
        log.error("%s (%s attempts)", self.last_error, attempts)
        return None

    async def _run(
        self,
        output_source: FrameSource,
        input_source: FrameSource,
        stop_event: asyncio.Event,
    ) -> None:
        try:
            layout = await self._wait_for_layout(output_source, input_source, stop_event)
            if layout is None:
                return

            codec = self._codec_selector()
            encoder = self._encoder_factory(
                layout.width,
                layout.total_height,
                self._settings.RECORDING_FPS,
                self._settings.RECORDING_BITRATE,
                codec,
            )
            await asyncio.to_thread(encoder.open)
            self._active = _ActiveRecording(layout, encoder, codec, started_at=time.monotonic())
            log.info(
                "Recording started: %sx%s (%s + %s) using %s",
                layout.width,
                layout.total_height,
                layout.output_height,
                layout.input_height,
                codec.mime_type,
            )
            await self._draw_loop(self._active, output_source, input_source, stop_event)
        except Exception as e:
            log.exception("Recording loop failed")
            self.last_error = f"Recording failed: {e}"

    async def _draw_loop(
        self,
        active: _ActiveRecording,
        output_source: FrameSource,
        input_source: FrameSource,
        stop_event: asyncio.Event,
    ) -> None:
        loop = asyncio.get_running_loop()
        interval = 1.0 / self._settings.RECORDING_FPS
        timeslice = self._settings.RECORDING_TIMESLICE_SEC
        layout = active.layout
        canvas = np.zeros((layout.total_height, layout.width, 3), dtype=np.uint8)

        next_tick = loop.time()
        next_slice = time.monotonic() + timeslice
        while not stop_event.is_set():
            if paint_composite(canvas, layout, output_source, input_source):
                elapsed = time.monotonic() - active.started_at
                await asyncio.to_thread(active.encoder.encode, canvas.copy(), elapsed)

            if time.monotonic() >= next_slice:
                active.encoder.take_chunk()
                next_slice = time.monotonic() + timeslice

            next_tick += interval
            delay = next_tick - loop.time()
            if delay < 0:
                # Fell behind (slow encode); drop the missed ticks.
                next_tick = loop.time()
                delay = 0.0
            if await self._wait(stop_event, delay):
                break

    async def stop(self) -> Optional[Recording]:
        """Stop and finalize. Resolves after the encoder has flushed."""
        task = self._task
        if task is None:
            return None

        if self._stop_event is not None:
            self._stop_event.set()
        try:
            await task
        except asyncio.CancelledError:
            log.warning("Recording task was cancelled")
        except Exception as e:
            log.error("Recording task failed: %s", e)
        self._task = None
        self._stop_event = None

        active, self._active = self._active, None
        if active is None:
            return None

        try:
            data = await asyncio.to_thread(active.encoder.finalize)
        except Exception as e:
            log.error("Failed to finalize recording: %s", e)
            self.last_error = f"Recording failed: {e}"
            return None

        if not data or active.encoder.frames_encoded == 0:
            self.last_error = "Recording produced no frames"
            log.warning(self.last_error)
            return None

        stamp = int(time.time() * 1000)
        recording = Recording(
            data=data,
            mime_type=active.codec.mime_type,
            filename=f"cameleon-recording-{stamp}.{active.codec.extension}",
            width=active.layout.width,
            height=active.layout.total_height,
            frames=active.encoder.frames_encoded,
        )
        if self._recording is not None:
            log.debug("Discarding previous recording %s", self._recording.filename)
        self._recording = recording
        log.info("Recording ready: %s (%.1f KB)", recording.filename, recording.size_bytes / 1024)
        return recording

    def get_status(self) -> dict:
        layout = self.layout
        recording = self._recording
        return {
            "recording": self.is_recording,
            "width": layout.width if layout else None,
            "height": layout.total_height if layout else None,
            "last_clip": recording.filename if recording else None,
            "error": self.last_error,
        }
