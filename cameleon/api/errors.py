from __future__ import annotations

from fastapi import HTTPException, status

from cameleon.core.errors import (
    CaptureError,
    ConfigurationError,
    ConnectError,
    JobError,
    TryOnError,
    UploadError,
)


def to_http(exc: TryOnError) -> HTTPException:
    """Map a service error onto the status code the routes report."""
    if isinstance(exc, ConfigurationError):
        code = status.HTTP_500_INTERNAL_SERVER_ERROR
    elif isinstance(exc, CaptureError):
        code = status.HTTP_409_CONFLICT
    elif isinstance(exc, (ConnectError, UploadError, JobError)):
        code = status.HTTP_502_BAD_GATEWAY
    else:
        code = status.HTTP_400_BAD_REQUEST
    return HTTPException(status_code=code, detail=str(exc))
