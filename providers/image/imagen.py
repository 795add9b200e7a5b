"""Google Imagen 3 via the AI Studio ``predict`` endpoint."""

import logging

from providers.base import BaseAdapter, compact
from providers.dimensions import IMAGEN_RATIO_THRESHOLDS, ratio_from_thresholds
from providers.llm.gemini import GoogleKeyMixin
from providers.types import (
    ContentType,
    GeneratedImage,
    ImageGenerationRequest,
    ImageGenerationResponse,
    ProviderCapability,
    ProviderType,
)

logger = logging.getLogger(__name__)


class ImagenAdapter(GoogleKeyMixin, BaseAdapter):
    provider_type = ProviderType.IMAGEN
    display_name = "Google Imagen 3"
    description = "High-quality photorealistic image generation from Google"
    base_url = "https://generativelanguage.googleapis.com/v1beta"
    capability_set = (
        ProviderCapability(
            content_type=ContentType.IMAGE,
            models=("imagen-3.0-generate-001", "imagen-3.0-fast-generate-001"),
            max_resolution="2048x2048",
            supports_batching=True,
            cost_per_unit=0.03,
            rate_limit_per_minute=60,
        ),
    )

    cost_per_image = 0.03

    default_model = "imagen-3.0-generate-001"

    async def validate_credentials(self) -> bool:
        if not self.has_credentials():
            return False
        response = await self._probe("GET", f"{self.api_base}/models", params=self._key_params())
        return response is not None and response.is_success

    async def generate_image(self, request: ImageGenerationRequest) -> ImageGenerationResponse:
        self.require_credentials()

        model = request.model or self.default_model
        parameters = compact(
            {
                "sampleCount": request.num_images or 1,
                "aspectRatio": ratio_from_thresholds(request.width, request.height, IMAGEN_RATIO_THRESHOLDS),
                "negativePrompt": request.negative_prompt,
                "seed": request.seed,
                "safetyFilterLevel": "block_some",
                "personGeneration": "allow_adult",
            }
        )

        data = await self._request_json(
            "POST",
            f"{self.api_base}/models/{model}:predict",
            params=self._key_params(),
            headers=self._headers(),
            json={"instances": [{"prompt": request.prompt}], "parameters": parameters},
        )

        images = []
        for prediction in data.get("predictions") or []:
            encoded = prediction.get("bytesBase64Encoded")
            if encoded:
                mime_type = prediction.get("mimeType") or "image/png"
                images.append(GeneratedImage(url=f"data:{mime_type};base64,{encoded}", base64=encoded))

        logger.info("Imagen returned %d image(s) for %s", len(images), model)
        return ImageGenerationResponse(images=images, model=model)
