from __future__ import annotations

import mimetypes
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Optional


class Mode(str, Enum):
    LIVE = "live"
    PHOTO = "photo"


class RemoteState(str, Enum):
    IDLE = "idle"
    CONNECTING = "connecting"
    STREAMING = "streaming"
    ERROR = "error"


class JobStatus(str, Enum):
    SUBMITTED = "submitted"
    QUEUED = "queued"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    TIMED_OUT = "timed_out"

    @property
    def is_terminal(self) -> bool:
        return self in (JobStatus.COMPLETED, JobStatus.FAILED, JobStatus.TIMED_OUT)

    @classmethod
    def from_provider(cls, token: Optional[str]) -> "JobStatus":
        """Map a provider status token (e.g. ``IN_PROGRESS``) to a job status."""
        raw = (token or "").strip().upper()
        if raw == "COMPLETED":
            return cls.COMPLETED
        if raw == "FAILED":
            return cls.FAILED
        if raw in ("IN_PROGRESS", "RUNNING"):
            return cls.RUNNING
        if raw in ("IN_QUEUE", "QUEUED"):
            return cls.QUEUED
        return cls.SUBMITTED


@dataclass(frozen=True)
class ImageFile:
    """An image held in memory (upload, catalog asset or download)."""

    name: str
    content_type: str
    data: bytes = field(repr=False)

    @property
    def is_image(self) -> bool:
        return self.content_type.lower().startswith("image/")

    @property
    def size_bytes(self) -> int:
        return len(self.data)

    @classmethod
    def from_path(cls, path: Path) -> "ImageFile":
        content_type, _ = mimetypes.guess_type(path.name)
        return cls(
            name=path.name,
            content_type=content_type or "application/octet-stream",
            data=path.read_bytes(),
        )


@dataclass(frozen=True)
class CaptureProfile:
    fps: int = 25
    width: int = 1280
    height: int = 704
    audio: bool = True
    audio_sample_rate: int = 48000
    camera_index: int = 0


@dataclass
class GenerationJob:
    job_id: str
    request_id: str
    status: JobStatus = JobStatus.SUBMITTED
    polls: int = 0
    result_url: Optional[str] = None
    submitted_at: datetime = field(default_factory=datetime.now)


@dataclass(frozen=True)
class GenerationResult:
    job_id: str
    result_url: str
    polls: int


@dataclass(frozen=True)
class Recording:
    """A finished composite clip."""

    data: bytes = field(repr=False)
    mime_type: str
    filename: str
    width: int
    height: int
    frames: int
    created_at: datetime = field(default_factory=datetime.now)

    @property
    def size_bytes(self) -> int:
        return len(self.data)
