"""Flux image generation via the Black Forest Labs API.

Generation is asynchronous on the vendor side: a submit call returns a
task id which is then polled at ``get_result`` until it is ready.
"""

import logging

from providers.base import BaseAdapter, compact
from providers.errors import ErrorCode, ProviderError
from providers.jobs import wait_for_job
from providers.types import (
    ContentType,
    GeneratedImage,
    GenerationJob,
    ImageGenerationRequest,
    ImageGenerationResponse,
    JobStatus,
    ProviderCapability,
    ProviderType,
)

logger = logging.getLogger(__name__)

MODELS = ("flux-pro-1.1", "flux-pro", "flux-dev", "flux-schnell")
DEFAULT_MODEL = "flux-pro-1.1"

FAILED_STATUSES = {"Error", "Content Moderated", "Request Moderated", "Task not found"}


class FluxProAdapter(BaseAdapter):
    provider_type = ProviderType.FLUX_PRO
    display_name = "Flux Pro"
    description = "High-quality image generation with excellent text rendering"
    base_url = "https://api.bfl.ml/v1"
    capability_set = (
        ProviderCapability(
            content_type=ContentType.IMAGE,
            models=MODELS,
            max_resolution="2048x2048",
            supports_async_jobs=True,
            cost_per_unit=0.04,
            rate_limit_per_minute=100,
        ),
    )

    cost_per_image = 0.04

    poll_interval = 2.0
    job_timeout = 120.0

    def auth_headers(self) -> dict[str, str]:
        return {"X-Key": self.api_key} if self.api_key else {}

    async def validate_credentials(self) -> bool:
        if not self.has_credentials():
            return False
        # No dedicated endpoint; anything but an auth rejection means the key is accepted
        response = await self._probe("GET", f"{self.api_base}/get_result", headers=self._headers())
        valid = response is not None and response.status_code not in (401, 403)
        logger.info("Flux credentials %s", "valid" if valid else "rejected")
        return valid

    async def generate_image(self, request: ImageGenerationRequest) -> ImageGenerationResponse:
        self.require_credentials()

        model = request.model if request.model in MODELS else DEFAULT_MODEL
        submitted = await self._request_json(
            "POST",
            f"{self.api_base}/{model}",
            headers=self._headers(),
            json=compact(
                {
                    "prompt": request.prompt,
                    "width": request.width or 1024,
                    "height": request.height or 1024,
                    "seed": request.seed,
                    "guidance": request.guidance_scale or 3.5,
                    "safety_tolerance": 2,
                    "output_format": "jpeg",
                }
            ),
        )

        task_id = submitted.get("id")
        if not task_id:
            raise ProviderError(ErrorCode.INVALID_RESPONSE, "No task ID received", False, raw=submitted)
        logger.info("Flux task %s submitted (%s)", task_id, model)

        job = await wait_for_job(
            self.poll_result,
            task_id,
            interval=self.poll_interval,
            timeout=self.job_timeout,
            sleep=self._sleep,
            label="Flux image",
        )

        return ImageGenerationResponse(
            images=[GeneratedImage(url=job.result_url or "", revised_prompt=request.prompt)],
            model=model,
            provider_request_id=task_id,
        )

    async def poll_result(self, task_id: str) -> GenerationJob:
        data = await self._request_json(
            "GET", f"{self.api_base}/get_result", params={"id": task_id}, headers=self._headers()
        )
        status = data.get("status")

        if status == "Ready":
            sample = (data.get("result") or {}).get("sample")
            return GenerationJob(job_id=task_id, status=JobStatus.COMPLETED, progress=100.0, result_url=sample)

        if status in FAILED_STATUSES:
            return GenerationJob(
                job_id=task_id,
                status=JobStatus.FAILED,
                error=ProviderError(
                    ErrorCode.GENERATION_FAILED, data.get("error") or f"Image generation failed: {status}", False, raw=data
                ),
            )

        return GenerationJob(
            job_id=task_id, status=JobStatus.QUEUED if status == "Pending" else JobStatus.PROCESSING
        )
