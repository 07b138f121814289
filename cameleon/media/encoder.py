"""
Clip encoder for composite recordings.

Encodes BGR frames with PyAV into an in-memory container. Muxed output is
collected as time-sliced chunks; the final clip is the concatenation of all
chunks. Containers are written in streaming mode (fragmented MP4 / Matroska)
so no seeking back into earlier chunks is needed.

All methods are blocking; the compositor calls them through
``asyncio.to_thread`` one at a time.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from fractions import Fraction
from typing import Callable, Dict, List, Optional, Sequence

import av
import numpy as np

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CodecChoice:
    container: str
    codec: str
    mime_type: str
    extension: str
    options: Dict[str, str] = field(default_factory=dict)


# Most broadly playable first.
CODEC_PREFERENCES: Sequence[CodecChoice] = (
    CodecChoice(
        "mp4",
        "h264",
        "video/mp4;codecs=avc1",
        "mp4",
        {"movflags": "frag_keyframe+empty_moov+default_base_moof"},
    ),
    CodecChoice("webm", "libvpx-vp9", "video/webm;codecs=vp9", "webm"),
    CodecChoice("webm", "libvpx", "video/webm;codecs=vp8", "webm"),
)
FALLBACK_CODEC = CodecChoice("matroska", "mpeg4", "video/x-matroska", "mkv")


def codec_supported(name: str) -> bool:
    """True when this FFmpeg build has an encoder for ``name``."""
    try:
        av.codec.Codec(name, "w")
    except Exception:
        return False
    return True


def select_codec(
    preferences: Sequence[CodecChoice] = CODEC_PREFERENCES,
    fallback: CodecChoice = FALLBACK_CODEC,
    is_supported: Callable[[str], bool] = codec_supported,
) -> CodecChoice:
    for choice in preferences:
        if is_supported(choice.codec):
            return choice
    logger.warning("No preferred codec available, falling back to %s", fallback.codec)
    return fallback


class ChunkSink:
    """Write-only file object that slices muxer output into chunks."""

    def __init__(self) -> None:
        self._pending = bytearray()
        self.chunks: List[bytes] = []

    def write(self, data) -> int:
        self._pending.extend(data)
        return len(data)

    def seekable(self) -> bool:
        return False

    def flush(self) -> None:
        pass

    def take_chunk(self) -> Optional[bytes]:
        """Move everything written since the last slice into a new chunk."""
        if not self._pending:
            return None
        chunk = bytes(self._pending)
        self._pending.clear()
        self.chunks.append(chunk)
        return chunk

    def getvalue(self) -> bytes:
        self.take_chunk()
        return b"".join(self.chunks)


class ClipEncoder:
    """Video encoder writing one stream into an in-memory container."""

    def __init__(self, width: int, height: int, fps: int, bitrate: int, codec: CodecChoice):
        self.width = width
        self.height = height
        self.fps = fps
        self.bitrate = bitrate
        self.codec = codec

        self._sink = ChunkSink()
        self._container = None
        self._stream = None
        self._last_pts = -1
        self.frames_encoded = 0
        self.frames_failed = 0

    @property
    def is_open(self) -> bool:
        return self._container is not None

    @property
    def chunks(self) -> List[bytes]:
        return self._sink.chunks

    def open(self) -> None:
        self._container = av.open(
            self._sink,
            mode="w",
            format=self.codec.container,
            options=dict(self.codec.options),
        )
        stream = self._container.add_stream(self.codec.codec, rate=self.fps)
        stream.width = self.width
        stream.height = self.height
        stream.pix_fmt = "yuv420p"
        stream.bit_rate = self.bitrate
        stream.codec_context.time_base = Fraction(1, self.fps)
        self._stream = stream
        logger.info(
            "Encoder opened: %s/%s %sx%s @ %sfps %skbps",
            self.codec.container,
            self.codec.codec,
            self.width,
            self.height,
            self.fps,
            self.bitrate // 1000,
        )

    def encode(self, frame: np.ndarray, timestamp: float) -> None:
        """Encode one BGR frame captured ``timestamp`` seconds after start."""
        if self._stream is None:
            return
        pts = int(round(timestamp * self.fps))
        if pts <= self._last_pts:
            pts = self._last_pts + 1
        try:
            video_frame = av.VideoFrame.from_ndarray(frame, format="bgr24")
            video_frame.pts = pts
            for packet in self._stream.encode(video_frame):
                self._container.mux(packet)
        except Exception as e:
            self.frames_failed += 1
            logger.debug("Skipping frame %s: %s", pts, e)
            return
        self._last_pts = pts
        self.frames_encoded += 1

    def take_chunk(self) -> Optional[bytes]:
        return self._sink.take_chunk()

    def finalize(self) -> bytes:
        """Flush the encoder, close the container and return the whole clip."""
        if self._container is None:
            return self._sink.getvalue()
        try:
            for packet in self._stream.encode(None):
                self._container.mux(packet)
        except Exception as e:
            logger.warning("Encoder flush failed: %s", e)
        finally:
            try:
                self._container.close()
            except Exception as e:
                logger.warning("Container close failed: %s", e)
            self._container = None
            self._stream = None
        data = self._sink.getvalue()
        logger.info(
            "Encoder finalized: %s frames, %s chunks, %.1f KB",
            self.frames_encoded,
            len(self._sink.chunks),
            len(data) / 1024,
        )
        return data
