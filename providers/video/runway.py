"""Runway Gen-4 video generation (text-to-video and image-to-video).

Jobs are created with one POST and tracked through ``tasks/{id}``.
"""

import logging

from providers.base import BaseAdapter
from providers.dimensions import normalize_aspect_ratio, snap_duration
from providers.errors import ErrorCode, ProviderError
from providers.types import (
    ContentType,
    GenerationJob,
    JobStatus,
    ProviderCapability,
    ProviderType,
    VideoGenerationRequest,
)

logger = logging.getLogger(__name__)

DURATIONS = (5, 10)
ASPECT_RATIOS = ("16:9", "9:16", "4:3", "3:4", "21:9")

STATUS_MAP = {
    "pending": JobStatus.QUEUED,
    "queued": JobStatus.QUEUED,
    "throttled": JobStatus.QUEUED,
    "running": JobStatus.PROCESSING,
    "processing": JobStatus.PROCESSING,
    "succeeded": JobStatus.COMPLETED,
    "completed": JobStatus.COMPLETED,
    "failed": JobStatus.FAILED,
    "cancelled": JobStatus.FAILED,
}


class RunwayAdapter(BaseAdapter):
    provider_type = ProviderType.RUNWAY
    display_name = "Runway Gen-4"
    description = "Professional video generation with motion control and keyframes"
    base_url = "https://api.runwayml.com/v1"
    capability_set = (
        ProviderCapability(
            content_type=ContentType.VIDEO,
            models=("gen4", "gen3a_turbo"),
            max_resolution="1920x1080",
            supports_async_jobs=True,
            cost_per_unit=0.12,
            rate_limit_per_minute=10,
        ),
    )

    cost_per_video_second = 0.12
    default_video_seconds = 5.0

    poll_interval = 5.0
    job_timeout = 600.0

    default_model = "gen4"

    async def validate_credentials(self) -> bool:
        if not self.has_credentials():
            return False
        response = await self._probe("GET", f"{self.api_base}/tasks", headers=self._headers())
        # 404 still means the request was authenticated
        valid = response is not None and (response.is_success or response.status_code == 404)
        logger.info("Runway credentials %s", "valid" if valid else "rejected")
        return valid

    async def submit_video_job(self, request: VideoGenerationRequest) -> GenerationJob:
        self.require_credentials()

        body = {
            "model": request.model or self.default_model,
            "prompt": request.prompt,
            "duration": snap_duration(request.duration, DURATIONS, default=5),
            "ratio": normalize_aspect_ratio(request.aspect_ratio, ASPECT_RATIOS, default="16:9"),
        }
        if request.image_url:
            body["init_image"] = request.image_url
        if request.seed is not None:
            body["seed"] = request.seed

        endpoint = "image_to_video" if request.image_url else "text_to_video"
        data = await self._request_json("POST", f"{self.api_base}/{endpoint}", headers=self._headers(), json=body)

        if not data.get("id"):
            raise ProviderError(ErrorCode.INVALID_RESPONSE, "Runway returned no task id", False, raw=data)
        return GenerationJob(job_id=data["id"], status=JobStatus.QUEUED, progress=0.0)

    async def get_video_job_status(self, job_id: str) -> GenerationJob:
        self.require_credentials()

        data = await self._request_json("GET", f"{self.api_base}/tasks/{job_id}", headers=self._headers())

        progress = data.get("progress") or 0
        if progress <= 1:
            progress *= 100
        remaining = data.get("estimated_time_remaining")
        output = data.get("output") or []

        return GenerationJob(
            job_id=job_id,
            status=STATUS_MAP.get(str(data.get("status", "")).lower(), JobStatus.PROCESSING),
            progress=float(progress),
            estimated_time_remaining_ms=remaining * 1000 if remaining else None,
            result_url=output[0] if output else None,
            error=ProviderError(ErrorCode.GENERATION_FAILED, data["failure"], False, raw=data)
            if data.get("failure")
            else None,
        )

    async def cancel_video_job(self, job_id: str) -> bool:
        self.require_credentials()
        response = await self._send("POST", f"{self.api_base}/tasks/{job_id}/cancel", headers=self._headers())
        logger.info("Runway cancel %s -> %d", job_id, response.status_code)
        return response.is_success
