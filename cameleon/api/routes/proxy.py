"""cameleon.api.routes.proxy

Server-side proxy for the image-hosting and inference APIs, so credentials
never leave the service. Responses use ``{url}`` / ``{error}`` bodies rather
than FastAPI's ``{detail}`` because clients read them as-is.
"""

from __future__ import annotations

import base64
import logging

import httpx
from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from cameleon.config import Settings, is_configured
from cameleon.deps import get_app_settings, get_upstream

router = APIRouter(prefix="/api", tags=["Proxy"])
logger = logging.getLogger(__name__)


def _error(message: str, status_code: int) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": message})


def _upstream_json(resp: httpx.Response):
    try:
        return resp.json()
    except ValueError:
        return {"error": resp.text or f"HTTP {resp.status_code}"}


def _runpod_headers(settings: Settings) -> dict:
    return {
        "Authorization": f"Bearer {settings.RUNPOD_API_KEY}",
        "Content-Type": "application/json",
    }


def _runpod_missing(settings: Settings) -> JSONResponse | None:
    if not is_configured(settings.RUNPOD_API_KEY):
        return _error("RUNPOD_API_KEY not configured in .env", 500)
    if not is_configured(settings.RUNPOD_ENDPOINT_ID):
        return _error("RUNPOD_ENDPOINT_ID not configured in .env", 500)
    return None


@router.post("/imgbb")
async def upload_to_imgbb(
    request: Request,
    settings: Settings = Depends(get_app_settings),
    client: httpx.AsyncClient = Depends(get_upstream),
):
    if not is_configured(settings.IMGBB_API_KEY):
        return _error("IMGBB_API_KEY not configured in .env", 500)
    try:
        body = await request.body()
        resp = await client.post(
            settings.IMGBB_UPLOAD_URL,
            data={"key": settings.IMGBB_API_KEY, "image": base64.b64encode(body).decode("ascii")},
        )
        payload = _upstream_json(resp)
        data = payload.get("data") if isinstance(payload, dict) else None
        if resp.is_success and isinstance(data, dict) and data.get("url"):
            return {"url": data["url"]}

        message = None
        if isinstance(payload, dict):
            error = payload.get("error")
            if isinstance(error, dict):
                message = error.get("message")
            elif error:
                message = str(error)
            message = message or payload.get("status_txt")
        logger.error("ImgBB upload rejected (HTTP %s)", resp.status_code)
        return _error(message or str(payload), resp.status_code if resp.status_code >= 400 else 400)
    except Exception as e:
        logger.exception("ImgBB proxy failed")
        return _error(str(e), 500)


@router.post("/runpod/run")
async def submit_runpod_job(
    request: Request,
    settings: Settings = Depends(get_app_settings),
    client: httpx.AsyncClient = Depends(get_upstream),
):
    missing = _runpod_missing(settings)
    if missing is not None:
        return missing
    try:
        body = await request.body()
        resp = await client.post(
            f"{settings.RUNPOD_API_URL}/{settings.RUNPOD_ENDPOINT_ID}/run",
            content=body,
            headers=_runpod_headers(settings),
        )
        payload = _upstream_json(resp)
        return JSONResponse(status_code=resp.status_code if resp.status_code >= 400 else 200, content=payload)
    except Exception as e:
        logger.exception("RunPod submit proxy failed")
        return _error(str(e), 500)


@router.get("/runpod/status/{job_id}")
async def runpod_job_status(
    job_id: str,
    settings: Settings = Depends(get_app_settings),
    client: httpx.AsyncClient = Depends(get_upstream),
):
    missing = _runpod_missing(settings)
    if missing is not None:
        return missing
    try:
        resp = await client.get(
            f"{settings.RUNPOD_API_URL}/{settings.RUNPOD_ENDPOINT_ID}/status/{job_id}",
            headers=_runpod_headers(settings),
        )
        payload = _upstream_json(resp)
        return JSONResponse(status_code=resp.status_code if resp.status_code >= 400 else 200, content=payload)
    except Exception as e:
        logger.exception("RunPod status proxy failed")
        return _error(str(e), 500)


@router.api_route("/{path:path}", methods=["GET", "POST", "PUT", "PATCH", "DELETE"], include_in_schema=False)
async def unknown_api_route(path: str):
    return _error("API route not found", 404)
