from __future__ import annotations

import logging
from dataclasses import dataclass

import httpx
from fastapi import Request

from cameleon.config import Settings
from cameleon.services.capture_manager import CaptureManager
from cameleon.services.garments import GarmentSelection
from cameleon.services.generation import GenerationJobOrchestrator
from cameleon.services.live_session import LiveSession
from cameleon.services.photo_session import PhotoSession
from cameleon.services.recording import RecordingCompositor
from cameleon.services.remote_stream import RemoteStreamController

logger = logging.getLogger(__name__)


@dataclass
class ServiceContainer:
    garments: GarmentSelection
    live: LiveSession
    photo: PhotoSession
    orchestrator: GenerationJobOrchestrator

    async def aclose(self) -> None:
        """Ordered teardown of everything the live and photo paths hold."""
        try:
            await self.live.shutdown()
        except Exception as e:
            logger.error("Failed to shut down live session: %s", e)
        try:
            await self.orchestrator.close()
        except Exception as e:
            logger.error("Failed to close generation client: %s", e)


def build_services(settings: Settings) -> ServiceContainer:
    garments = GarmentSelection(settings.GARMENT_CATALOG_DIR)
    live = LiveSession(
        capture=CaptureManager(settings),
        controller=RemoteStreamController(settings),
        compositor=RecordingCompositor(settings),
        garments=garments,
        settings=settings,
    )
    orchestrator = GenerationJobOrchestrator(settings)
    photo = PhotoSession(orchestrator, garments)
    return ServiceContainer(garments=garments, live=live, photo=photo, orchestrator=orchestrator)


def build_upstream_client(settings: Settings) -> httpx.AsyncClient:
    return httpx.AsyncClient(timeout=settings.API_TIMEOUT)


# Dependencies: everything lives on app.state so tests can inject fakes.

def get_app_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_services(request: Request) -> ServiceContainer:
    return request.app.state.services


def get_live(request: Request) -> LiveSession:
    return request.app.state.services.live


def get_photo(request: Request) -> PhotoSession:
    return request.app.state.services.photo


def get_garments(request: Request) -> GarmentSelection:
    return request.app.state.services.garments


def get_upstream(request: Request) -> httpx.AsyncClient:
    return request.app.state.upstream
