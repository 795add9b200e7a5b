"""OpenAI adapter: GPT chat models for text, DALL·E for images."""

import logging

from providers.llm.openai_compat import ChatCompletionsAdapter
from providers.types import (
    ContentType,
    GeneratedImage,
    ImageGenerationRequest,
    ImageGenerationResponse,
    ProviderCapability,
    ProviderType,
)

logger = logging.getLogger(__name__)


def dalle_size(width: int | None, height: int | None, model: str) -> str:
    """Snap requested dimensions to a size the DALL·E model accepts."""
    if model == "dall-e-2":
        if width and width <= 256:
            return "256x256"
        if width and width <= 512:
            return "512x512"
        return "1024x1024"

    if width and height:
        if width > height:
            return "1792x1024"
        if height > width:
            return "1024x1792"
    return "1024x1024"


class OpenAIAdapter(ChatCompletionsAdapter):
    """GPT-4o family via /chat/completions and DALL·E via /images/generations."""

    provider_type = ProviderType.OPENAI
    display_name = "OpenAI"
    description = "GPT-4 for text generation and DALL-E 3 for image creation"
    base_url = "https://api.openai.com/v1"
    capability_set = (
        ProviderCapability(
            content_type=ContentType.TEXT,
            models=("gpt-4o", "gpt-4o-mini", "gpt-4-turbo", "gpt-4", "gpt-3.5-turbo"),
            max_tokens=128000,
            supports_streaming=True,
            supports_batching=True,
            cost_per_unit=5.0,
            rate_limit_per_minute=500,
        ),
        ProviderCapability(
            content_type=ContentType.IMAGE,
            models=("dall-e-3", "dall-e-2"),
            max_resolution="1792x1024",
            cost_per_unit=0.04,
            rate_limit_per_minute=50,
        ),
    )

    input_cost_per_million = 5.0
    output_cost_per_million = 15.0
    cost_per_image = 0.04

    default_text_model = "gpt-4o"
    default_image_model = "dall-e-3"

    def extra_headers(self) -> dict[str, str]:
        organization = self.credential.organization_id if self.credential else None
        return {"OpenAI-Organization": organization} if organization else {}

    async def generate_image(self, request: ImageGenerationRequest) -> ImageGenerationResponse:
        self.require_credentials()

        model = request.model or self.default_image_model
        payload = {
            "model": model,
            "prompt": request.prompt,
            # dall-e-3 only accepts a single image per request
            "n": 1 if model == "dall-e-3" else (request.num_images or 1),
            "size": dalle_size(request.width, request.height, model),
            "quality": "standard",
            "style": request.style or "vivid",
            "response_format": "url",
        }
        logger.info("OpenAI image: model=%s size=%s", model, payload["size"])

        data = await self._request_json(
            "POST",
            f"{self.api_base}/images/generations",
            headers=self._headers(self.extra_headers()),
            json=payload,
        )

        return ImageGenerationResponse(
            images=[
                GeneratedImage(url=item.get("url", ""), revised_prompt=item.get("revised_prompt"))
                for item in data.get("data") or []
            ],
            model=model,
        )
