from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Response, status

from cameleon.api.errors import to_http
from cameleon.api.schemas import (
    ModeRequest,
    NotificationsResponse,
    PromptRequest,
    PromptResponse,
    StartStreamRequest,
    StopStreamResponse,
)
from cameleon.core.errors import CaptureError, TryOnError
from cameleon.deps import get_live
from cameleon.services.live_session import LiveSession

router = APIRouter(tags=["Live"])


@router.post("/mode")
async def set_mode(request: ModeRequest, live: LiveSession = Depends(get_live)):
    """Switch between live and photo mode. Leaving live mode releases every live resource."""
    await live.enter_mode(request.mode)
    return live.get_status()


@router.post("/live/camera/start")
async def start_camera(live: LiveSession = Depends(get_live)):
    try:
        await live.capture.acquire()
    except CaptureError as e:
        raise to_http(e)
    return live.capture.get_status()


@router.post("/live/camera/stop")
async def stop_camera(live: LiveSession = Depends(get_live)):
    await live.shutdown()
    return live.capture.get_status()


@router.post("/live/stream/start")
async def start_stream(request: StartStreamRequest, live: LiveSession = Depends(get_live)):
    try:
        await live.start_stream(request.prompt)
    except TryOnError as e:
        raise to_http(e)
    return live.get_status()


@router.post("/live/stream/stop", response_model=StopStreamResponse)
async def stop_stream(live: LiveSession = Depends(get_live)):
    recording = await live.stop_stream()
    info = None
    if recording is not None:
        info = {
            "filename": recording.filename,
            "mime_type": recording.mime_type,
            "width": recording.width,
            "height": recording.height,
            "frames": recording.frames,
            "size_bytes": recording.size_bytes,
        }
    return {"status": live.controller.state.value, "recording": info}


@router.put("/live/prompt", response_model=PromptResponse)
async def update_prompt(request: PromptRequest, live: LiveSession = Depends(get_live)):
    applied = await live.update_prompt(request.prompt)
    return {"prompt": live.prompt, "applied": applied}


@router.get("/live/status")
async def live_status(live: LiveSession = Depends(get_live)):
    return live.get_status()


@router.get("/live/notifications", response_model=NotificationsResponse)
async def drain_notifications(live: LiveSession = Depends(get_live)):
    return {"messages": live.drain_notifications()}


@router.get("/live/recording")
async def download_recording(live: LiveSession = Depends(get_live)):
    recording = live.recording
    if recording is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="No recording available")
    return Response(
        content=recording.data,
        media_type=recording.mime_type,
        headers={"Content-Disposition": f'attachment; filename="{recording.filename}"'},
    )
