from __future__ import annotations

import httpx
from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Request, Response, status

from cameleon.api.errors import to_http
from cameleon.api.schemas import PhotoStatusResponse
from cameleon.api.uploads import read_upload
from cameleon.core.errors import TryOnError
from cameleon.deps import get_photo
from cameleon.services.photo_session import PhotoSession

router = APIRouter(tags=["Photo"])


@router.post("/photo", response_model=PhotoStatusResponse)
async def upload_photo(request: Request, photo: PhotoSession = Depends(get_photo)):
    image = await read_upload(request, "photo")
    try:
        photo.set_photo(image)
    except TryOnError as e:
        raise to_http(e)
    return photo.get_status()


@router.delete("/photo", response_model=PhotoStatusResponse)
async def clear_photo(photo: PhotoSession = Depends(get_photo)):
    photo.clear_photo()
    return photo.get_status()


@router.post("/photo/generate", status_code=status.HTTP_202_ACCEPTED, response_model=PhotoStatusResponse)
async def generate(
    background_tasks: BackgroundTasks,
    wait: bool = False,
    photo: PhotoSession = Depends(get_photo),
):
    """Start a try-on job. With ``wait=true`` the job is awaited before responding."""
    if not photo.can_generate:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Upload a photo and select a garment first",
        )
    if wait:
        await photo.generate()
    else:
        background_tasks.add_task(photo.generate)
    return photo.get_status()


@router.get("/photo/status", response_model=PhotoStatusResponse)
async def photo_status(photo: PhotoSession = Depends(get_photo)):
    return photo.get_status()


@router.get("/photo/result")
async def download_result(photo: PhotoSession = Depends(get_photo)):
    try:
        image = await photo.download_result()
    except httpx.HTTPError as e:
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=f"Download failed: {e}")
    if image is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="No result available")
    return Response(
        content=image.data,
        media_type=image.content_type,
        headers={"Content-Disposition": f'attachment; filename="{image.name}"'},
    )
