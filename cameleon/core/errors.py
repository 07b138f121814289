"""cameleon.core.errors

Error taxonomy shared by the live and photo paths.

Every error carries a single user-facing message (``str(exc)``).
"""

from __future__ import annotations

from typing import Any, Optional


class TryOnError(RuntimeError):
    """Base class for all user-visible failures."""


class ConfigurationError(TryOnError):
    """A required credential is missing; raised before any network call."""


class CaptureError(TryOnError):
    """Camera/microphone permission denied or device unavailable."""


class ConnectError(TryOnError):
    """Remote session could not be established."""


class RemoteClientUnavailableError(ConnectError):
    """The realtime SDK is not installed or could not be loaded."""


class LiveSessionError(TryOnError):
    """Asynchronous fault reported by an established remote session."""


class RecordingError(TryOnError):
    """Recording could not be produced (reported through ``last_error`` only)."""


class UploadError(TryOnError):
    """Image hosting rejected an upload or returned no URL."""


class JobError(TryOnError):
    """Base class for generation job failures."""

    def __init__(self, message: str, *, job_id: Optional[str] = None):
        super().__init__(message)
        self.job_id = job_id


class JobSubmissionError(JobError):
    """The inference endpoint did not return a job id."""

    def __init__(self, message: str, *, status_code: Optional[int] = None, payload: Any = None):
        super().__init__(message)
        self.status_code = status_code
        self.payload = payload


class JobFailedError(JobError):
    """The job reached FAILED."""

    def __init__(self, message: str, *, job_id: Optional[str] = None, payload: Any = None):
        super().__init__(message, job_id=job_id)
        self.payload = payload


class JobResultMissingError(JobError):
    """The job completed without a usable result URL."""


class JobTimeoutError(JobError):
    """Polling budget exhausted without a terminal status."""
