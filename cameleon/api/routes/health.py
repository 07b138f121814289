from __future__ import annotations

from fastapi import APIRouter, Depends

from cameleon.api.schemas import HealthResponse
from cameleon.config import Settings
from cameleon.deps import get_app_settings, get_live
from cameleon.services.live_session import LiveSession

router = APIRouter(tags=["Health"])


@router.get("/health", response_model=HealthResponse)
async def health_check(
    live: LiveSession = Depends(get_live),
    settings: Settings = Depends(get_app_settings),
):
    return {
        "status": "ok",
        "mode": live.mode.value,
        "camera_ready": live.capture.ready,
        "stream_state": live.controller.state.value,
        "credentials": {
            "realtime": settings.realtime_configured,
            "imgbb": settings.imgbb_configured,
            "runpod": settings.runpod_configured,
        },
    }
