from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, Request, status

from cameleon.api.errors import to_http
from cameleon.api.schemas import GarmentsResponse
from cameleon.api.uploads import read_upload
from cameleon.core.errors import TryOnError
from cameleon.deps import get_garments, get_live
from cameleon.services.garments import GarmentError, GarmentSelection
from cameleon.services.live_session import LiveSession

router = APIRouter(tags=["Garments"])
logger = logging.getLogger(__name__)


def _listing(garments: GarmentSelection, applied_live: bool = False) -> dict:
    custom = garments.custom
    return {
        "items": garments.describe(),
        "custom": custom.name if custom else None,
        "has_garment": garments.has_garment,
        "applied_live": applied_live,
    }


async def _push_to_live(live: LiveSession) -> bool:
    # A streaming session picks up the new reference image immediately.
    try:
        return await live.refresh_garment()
    except TryOnError as e:
        logger.error("Garment refresh failed: %s", e)
        return False


@router.get("/garments", response_model=GarmentsResponse)
async def list_garments(garments: GarmentSelection = Depends(get_garments)):
    return _listing(garments)


@router.post("/garments/{garment_id}/select", response_model=GarmentsResponse)
async def select_garment(
    garment_id: int,
    garments: GarmentSelection = Depends(get_garments),
    live: LiveSession = Depends(get_live),
):
    try:
        garments.select_catalog(garment_id)
    except GarmentError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    applied = await _push_to_live(live)
    return _listing(garments, applied)


@router.post("/garments/custom", response_model=GarmentsResponse)
async def upload_custom_garment(
    request: Request,
    garments: GarmentSelection = Depends(get_garments),
    live: LiveSession = Depends(get_live),
):
    image = await read_upload(request, "garment")
    try:
        garments.set_custom(image)
    except GarmentError as e:
        raise to_http(e)
    applied = await _push_to_live(live)
    return _listing(garments, applied)


@router.delete("/garments/selection", response_model=GarmentsResponse)
async def clear_selection(garments: GarmentSelection = Depends(get_garments)):
    garments.clear()
    return _listing(garments)
