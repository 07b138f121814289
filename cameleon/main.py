"""
FastAPI application entrypoint.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import Callable, Optional

import httpx
import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from cameleon.api.routes import (
    garments_router,
    health_router,
    live_router,
    photo_router,
    proxy_router,
)
from cameleon.config import Settings, get_settings, mask_secret
from cameleon.core.logging_config import setup_logging
from cameleon.core.models import Mode
from cameleon.deps import ServiceContainer, build_services, build_upstream_client

log = logging.getLogger("cameleon")


def _log_credentials(settings: Settings) -> None:
    log.info("DECART_API_KEY:     %s", mask_secret(settings.DECART_API_KEY))
    log.info("IMGBB_API_KEY:      %s", mask_secret(settings.IMGBB_API_KEY))
    log.info("RUNPOD_API_KEY:     %s", mask_secret(settings.RUNPOD_API_KEY))
    log.info("RUNPOD_ENDPOINT_ID: %s", settings.RUNPOD_ENDPOINT_ID or "(not set)")


def create_app(
    settings: Optional[Settings] = None,
    services_factory: Optional[Callable[[Settings], ServiceContainer]] = None,
    upstream_factory: Optional[Callable[[Settings], httpx.AsyncClient]] = None,
) -> FastAPI:
    settings = settings or get_settings()
    setup_logging(settings)
    services_factory = services_factory or build_services
    upstream_factory = upstream_factory or build_upstream_client

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        app.state.settings = settings
        app.state.upstream = upstream_factory(settings)
        app.state.services = services_factory(settings)
        _log_credentials(settings)
        log.info("Service starting (host=%s port=%s prefix=%s)", settings.HOST, settings.PORT, settings.API_PREFIX or "")

        if settings.CAMERA_AUTOSTART:
            await app.state.services.live.enter_mode(Mode.LIVE)
        try:
            yield
        finally:
            # Recording is flushed before the remote session and camera go away.
            await app.state.services.aclose()
            await app.state.upstream.aclose()
            log.info("Service stopped")

    app = FastAPI(
        title="Cameleon Try-On",
        version="1.0.0",
        description="Live garment try-on streaming, recording and photo try-on generation",
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    prefix = (settings.API_PREFIX or "").rstrip("/")
    app.include_router(health_router, prefix=prefix)
    app.include_router(live_router, prefix=prefix)
    app.include_router(garments_router, prefix=prefix)
    app.include_router(photo_router, prefix=prefix)
    # Proxy paths are fixed; the generation workflow calls them by absolute path.
    app.include_router(proxy_router)
    return app


app = create_app()


if __name__ == "__main__":
    settings = get_settings()
    uvicorn.run(
        "cameleon.main:app",
        host=settings.HOST,
        port=settings.PORT,
        log_level=(settings.LOG_LEVEL or "INFO").lower(),
        reload=False,
    )
