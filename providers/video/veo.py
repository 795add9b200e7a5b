"""Google Veo video generation with native audio.

Submitting returns a long-running operation whose ``name`` is the job id;
the operation is polled until ``done``.
"""

import logging

from providers.base import BaseAdapter
from providers.dimensions import normalize_aspect_ratio, snap_duration
from providers.errors import ErrorCode, ProviderError
from providers.llm.gemini import GoogleKeyMixin
from providers.types import (
    ContentType,
    GenerationJob,
    JobStatus,
    ProviderCapability,
    ProviderType,
    VideoGenerationRequest,
)

logger = logging.getLogger(__name__)

MODELS = (
    "veo-3.1-generate-001",
    "veo-3.0-generate-001",
    "veo-3.0-fast-generate-001",
    "veo-2.0-generate-001",
)

DURATIONS = (4, 6, 8)
ASPECT_RATIOS = ("16:9", "9:16", "1:1")


def _video_uri(response: dict) -> str | None:
    """The finished video's URI; the field layout differs between API revisions."""
    for videos in (
        response.get("generatedVideos"),
        (response.get("generateVideoResponse") or {}).get("generatedSamples"),
    ):
        if videos:
            return (videos[0].get("video") or {}).get("uri")
    return None


class VeoAdapter(GoogleKeyMixin, BaseAdapter):
    provider_type = ProviderType.VEO
    display_name = "Google Veo"
    description = "Veo 3 - video generation with native audio, sound effects, and music"
    base_url = "https://generativelanguage.googleapis.com/v1beta"
    capability_set = (
        ProviderCapability(
            content_type=ContentType.VIDEO,
            models=MODELS,
            max_resolution="1080p",
            supports_async_jobs=True,
            cost_per_unit=0.30,
            rate_limit_per_minute=10,
        ),
    )

    cost_per_video_second = 0.30
    default_video_seconds = 8.0

    poll_interval = 10.0
    job_timeout = 900.0

    default_model = "veo-3.1-generate-001"

    async def validate_credentials(self) -> bool:
        if not self.has_credentials():
            return False
        response = await self._probe("GET", f"{self.api_base}/models", params=self._key_params())
        return response is not None and response.is_success

    async def submit_video_job(self, request: VideoGenerationRequest) -> GenerationJob:
        self.require_credentials()

        model = request.model or self.default_model
        generation_config = {
            "videoDuration": f"{snap_duration(request.duration, DURATIONS, default=8)}s",
            "aspectRatio": normalize_aspect_ratio(request.aspect_ratio, ASPECT_RATIOS, default="16:9"),
            "numberOfVideos": 1,
            "generateAudio": True,
        }
        if request.seed is not None:
            generation_config["seed"] = request.seed

        body = {"prompt": request.prompt, "generationConfig": generation_config}
        if request.image_url:
            body["image"] = {"imageUri": request.image_url}

        data = await self._request_json(
            "POST",
            f"{self.api_base}/models/{model}:generateVideo",
            params=self._key_params(),
            headers=self._headers(),
            json=body,
        )

        if not data.get("name"):
            raise ProviderError(ErrorCode.INVALID_RESPONSE, "Veo returned no operation name", False, raw=data)
        logger.info("Veo operation %s started (%s)", data["name"], model)
        return GenerationJob(job_id=data["name"], status=JobStatus.QUEUED, progress=0.0)

    async def get_video_job_status(self, job_id: str) -> GenerationJob:
        self.require_credentials()

        data = await self._request_json(
            "GET", f"{self.api_base}/{job_id}", params=self._key_params(), headers=self._headers()
        )

        if data.get("done"):
            if data.get("error"):
                return GenerationJob(
                    job_id=job_id,
                    status=JobStatus.FAILED,
                    error=ProviderError(
                        ErrorCode.GENERATION_FAILED,
                        data["error"].get("message") or "Video generation failed",
                        False,
                        raw=data,
                    ),
                )
            return GenerationJob(
                job_id=job_id,
                status=JobStatus.COMPLETED,
                progress=100.0,
                result_url=_video_uri(data.get("response") or {}),
            )

        progress = (data.get("metadata") or {}).get("progress")
        return GenerationJob(
            job_id=job_id,
            status=JobStatus.PROCESSING,
            progress=float(round(progress * 100)) if progress else 0.0,
        )

    async def cancel_video_job(self, job_id: str) -> bool:
        self.require_credentials()
        response = await self._send(
            "POST", f"{self.api_base}/{job_id}:cancel", params=self._key_params(), headers=self._headers()
        )
        return response.is_success
