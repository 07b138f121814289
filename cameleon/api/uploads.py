from __future__ import annotations

from fastapi import HTTPException, Request, status

from cameleon.core.models import ImageFile


async def read_upload(request: Request, default_name: str) -> ImageFile:
    """Raw request body as an ImageFile (MIME from Content-Type, name from X-Filename)."""
    data = await request.body()
    if not data:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Empty upload")
    content_type = request.headers.get("content-type", "application/octet-stream").split(";")[0].strip()
    name = request.headers.get("x-filename") or default_name
    return ImageFile(name=name, content_type=content_type, data=data)
