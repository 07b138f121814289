"""cameleon.services.photo_session

Photo-mode state: selected photo, generation flag, result URL.

Concurrent `generate()` calls may overlap. Each call takes a new epoch; only
the call whose epoch is still current when it finishes updates the shared
result, so a stale job can never overwrite a newer one.
"""

from __future__ import annotations

import logging
import time
from typing import Optional

from cameleon.core.errors import TryOnError
from cameleon.core.models import ImageFile
from cameleon.services.garments import GarmentSelection
from cameleon.services.generation import GenerationJobOrchestrator

logger = logging.getLogger(__name__)


class PhotoSession:
    def __init__(self, orchestrator: GenerationJobOrchestrator, garments: GarmentSelection):
        self.orchestrator = orchestrator
        self.garments = garments

        self.photo: Optional[ImageFile] = None
        self.result_url: Optional[str] = None
        self.last_error: Optional[str] = None
        self._epoch = 0
        self._in_flight = 0

    @property
    def is_generating(self) -> bool:
        return self._in_flight > 0

    @property
    def can_generate(self) -> bool:
        return self.photo is not None and self.garments.has_garment

    def set_photo(self, image: ImageFile) -> None:
        if not image.is_image:
            raise TryOnError(f"Not an image: {image.content_type}")
        self.photo = image
        self.result_url = None
        logger.info("Photo selected: %s", image.name)

    def clear_photo(self) -> None:
        self.photo = None
        self.result_url = None

    async def generate(self) -> Optional[str]:
        """Run one job. Returns the result URL, or None when skipped or superseded."""
        if not self.can_generate:
            return None

        self._epoch += 1
        epoch = self._epoch
        self._in_flight += 1
        self.result_url = None
        self.last_error = None
        try:
            garment = self.garments.resolve_file()
            if garment is None:
                raise TryOnError("No garment selected")
            result = await self.orchestrator.generate(self.photo, garment)
        except TryOnError as e:
            if epoch == self._epoch:
                self.last_error = f"Generation failed: {e}"
                logger.error(self.last_error)
            else:
                logger.info("Ignoring failure of superseded generation: %s", e)
            return None
        finally:
            self._in_flight -= 1

        if result is None:
            return None
        if epoch != self._epoch:
            logger.info("Discarding result of superseded job %s", result.job_id)
            return None
        self.result_url = result.result_url
        return self.result_url

    async def download_result(self) -> Optional[ImageFile]:
        """Fetch the result image for saving."""
        if not self.result_url:
            return None
        resp = await self.orchestrator.fetch(self.result_url)
        content_type = resp.headers.get("content-type", "image/jpeg").split(";")[0]
        return ImageFile(
            name=f"cameleon-tryon-{int(time.time() * 1000)}.jpg",
            content_type=content_type,
            data=resp.content,
        )

    def get_status(self) -> dict:
        job = self.orchestrator.current_job
        return {
            "photo": self.photo.name if self.photo else None,
            "has_garment": self.garments.has_garment,
            "generating": self.is_generating,
            "job_id": job.job_id if job else None,
            "job_status": job.status.value if job else None,
            "polls": job.polls if job else 0,
            "result_url": self.result_url,
            "error": self.last_error,
        }
