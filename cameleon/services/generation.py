"""cameleon.services.generation

Asynchronous photo try-on workflow against the /api proxy:

1. upload person photo and garment to image hosting (concurrently);
2. submit an inference job;
3. poll job status until a terminal state or the attempt budget runs out.

Nothing is retried automatically; every failure aborts the whole call.
"""

from __future__ import annotations

import asyncio
import json
import logging
import time
import uuid
from typing import Any, Awaitable, Callable, Dict, Optional, Tuple

import httpx

from cameleon.config import Settings, get_settings
from cameleon.core.errors import (
    JobFailedError,
    JobResultMissingError,
    JobSubmissionError,
    JobTimeoutError,
    UploadError,
)
from cameleon.core.models import GenerationJob, GenerationResult, ImageFile, JobStatus

logger = logging.getLogger(__name__)


def new_request_id() -> str:
    """``tryon-<epoch ms>-<5 random chars>``."""
    return f"tryon-{int(time.time() * 1000)}-{uuid.uuid4().hex[:5]}"


def _read_json(resp: httpx.Response) -> Dict[str, Any]:
    try:
        payload = resp.json()
    except (json.JSONDecodeError, ValueError):
        return {}
    return payload if isinstance(payload, dict) else {}


def _first_output_image(payload: Dict[str, Any]) -> Optional[str]:
    output = payload.get("output")
    if isinstance(output, list) and output and isinstance(output[0], dict):
        image = output[0].get("image")
        return str(image) if image else None
    return None


class GenerationJobOrchestrator:
    """Client for the image-hosting and inference proxy endpoints."""

    def __init__(
        self,
        settings: Optional[Settings] = None,
        client: Optional[httpx.AsyncClient] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self._settings = settings or get_settings()
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(
            base_url=self._settings.PROXY_BASE_URL,
            timeout=self._settings.API_TIMEOUT,
        )
        self._sleep = sleep
        self.current_job: Optional[GenerationJob] = None

    # --------------------------------------------
    # Image hosting
    # --------------------------------------------
    async def upload_image(self, image: ImageFile) -> str:
        """POST /api/imgbb (raw bytes). Returns the public URL."""
        logger.info("Uploading %s (%.0f KB)", image.name, image.size_bytes / 1024)
        try:
            resp = await self._client.post(
                "/api/imgbb",
                content=image.data,
                headers={"Content-Type": image.content_type},
            )
        except httpx.HTTPError as e:
            logger.error("Image upload failed: %s", e)
            raise UploadError(f"Image upload failed: {e}") from e

        payload = _read_json(resp)
        url = payload.get("url")
        if not url:
            message = payload.get("error") or (json.dumps(payload) if payload else f"HTTP {resp.status_code}")
            logger.error("Image upload rejected (HTTP %s): %s", resp.status_code, message)
            raise UploadError(str(message))
        return str(url)

    async def upload_pair(self, photo: ImageFile, garment: ImageFile) -> Tuple[str, str]:
        model_url, garment_url = await asyncio.gather(
            self.upload_image(photo),
            self.upload_image(garment),
        )
        logger.info("Uploads done: %s, %s", model_url, garment_url)
        return model_url, garment_url

    # --------------------------------------------
    # Inference jobs
    # --------------------------------------------
    def build_job_input(self, model_url: str, garment_url: str, request_id: str) -> Dict[str, Any]:
        return {
            "input": {
                "request_id": request_id,
                "model_img": model_url,
                "cloth_img": garment_url,
                "premium_user": self._settings.PREMIUM_USER,
                "output_format": self._settings.OUTPUT_FORMAT,
                "output_quality": self._settings.OUTPUT_QUALITY,
                "url_expiration": self._settings.URL_EXPIRATION_SEC,
            }
        }

    async def submit_job(self, model_url: str, garment_url: str) -> GenerationJob:
        """POST /api/runpod/run. Raises JobSubmissionError when no id comes back."""
        request_id = new_request_id()
        logger.info("Submitting job %s", request_id)
        try:
            resp = await self._client.post(
                "/api/runpod/run",
                json=self.build_job_input(model_url, garment_url, request_id),
            )
        except httpx.HTTPError as e:
            logger.error("Job submit failed: %s", e)
            raise JobSubmissionError(f"[RunPod] Job submit failed: {e}") from e

        payload = _read_json(resp)
        job_id = payload.get("id")
        if not job_id:
            detail = payload.get("error") or payload.get("message")
            if not detail:
                detail = json.dumps(payload) if payload else "empty response"
            raise JobSubmissionError(
                f"[RunPod] Job submit failed (HTTP {resp.status_code}): {detail}",
                status_code=resp.status_code,
                payload=payload,
            )

        job = GenerationJob(
            job_id=str(job_id),
            request_id=request_id,
            status=JobStatus.from_provider(payload.get("status")),
        )
        logger.info("Job submitted: %s (%s)", job.job_id, payload.get("status"))
        return job

    async def get_status(self, job_id: str) -> Dict[str, Any]:
        """GET /api/runpod/status/{id}."""
        resp = await self._client.get(f"/api/runpod/status/{job_id}")
        return _read_json(resp)

    async def poll_job(self, job: GenerationJob) -> str:
        """Poll until COMPLETED/FAILED or the attempt budget is spent."""
        interval = self._settings.POLL_INTERVAL_SEC
        max_attempts = self._settings.POLL_MAX_ATTEMPTS

        for attempt in range(1, max_attempts + 1):
            await self._sleep(interval)

            try:
                payload = await self.get_status(job.job_id)
            except httpx.HTTPError as e:
                raise JobFailedError(
                    f"[RunPod] Status check failed: {e}", job_id=job.job_id
                ) from e

            job.polls = attempt
            job.status = JobStatus.from_provider(payload.get("status"))
            logger.info("Poll %s: %s", attempt, payload.get("status"))

            if job.status is JobStatus.COMPLETED:
                image_url = _first_output_image(payload)
                if not image_url:
                    raise JobResultMissingError(
                        "[RunPod] Completed but no image URL in response", job_id=job.job_id
                    )
                job.result_url = image_url
                return image_url

            if job.status is JobStatus.FAILED:
                detail = payload.get("error") or payload.get("output") or "Unknown error"
                raise JobFailedError(
                    f"[RunPod] Generation failed: {json.dumps(detail)}",
                    job_id=job.job_id,
                    payload=payload,
                )

        job.status = JobStatus.TIMED_OUT
        total = interval * max_attempts
        raise JobTimeoutError(
            f"Generation timed out ({total / 60:g} min). Try again.", job_id=job.job_id
        )

    async def generate(
        self,
        photo_file: Optional[ImageFile],
        garment_file: Optional[ImageFile],
    ) -> Optional[GenerationResult]:
        """Run the whole workflow. No-op (None) unless both images are given."""
        if photo_file is None or garment_file is None:
            logger.debug("generate() skipped: photo or garment missing")
            return None

        model_url, garment_url = await self.upload_pair(photo_file, garment_file)
        job = await self.submit_job(model_url, garment_url)
        self.current_job = job
        image_url = await self.poll_job(job)
        logger.info("Job %s done after %s polls", job.job_id, job.polls)
        return GenerationResult(job_id=job.job_id, result_url=image_url, polls=job.polls)

    async def fetch(self, url: str) -> httpx.Response:
        """GET an absolute URL (used to download results)."""
        resp = await self._client.get(url, follow_redirects=True)
        resp.raise_for_status()
        return resp

    async def close(self) -> None:
        if self._owns_client:
            await self._client.aclose()
