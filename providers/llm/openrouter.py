"""OpenRouter aggregator: many vendors' models behind one OpenAI-compatible API.

The model used per content type is chosen by the user and kept in the
provider's ``metadata["models"]``. Image generation goes through
/chat/completions with ``modalities=["image", "text"]``; video output is not
offered.
"""

import logging

from config import settings
from providers.dimensions import closest_named_ratio
from providers.errors import ErrorCode, ProviderError
from providers.llm.openai_compat import ChatCompletionsAdapter
from providers.types import (
    ContentType,
    GeneratedImage,
    ImageGenerationRequest,
    ImageGenerationResponse,
    ProviderCapability,
    ProviderType,
    TextGenerationRequest,
)

logger = logging.getLogger(__name__)

_IMAGE_MODEL_HINTS = ("dall-e", "imagen", "flux", "stable", "midjourney")
_NON_TEXT_MODEL_HINTS = ("dall-e", "imagen", "flux", "video", "veo", "runway")


def is_image_model(model_id: str) -> bool:
    model_id = model_id.lower()
    return any(hint in model_id for hint in _IMAGE_MODEL_HINTS)


def is_text_model(model_id: str) -> bool:
    model_id = model_id.lower()
    return not any(hint in model_id for hint in _NON_TEXT_MODEL_HINTS)


class OpenRouterAdapter(ChatCompletionsAdapter):
    provider_type = ProviderType.OPENROUTER
    display_name = "OpenRouter"
    description = "Access 100+ AI models with one API key. Choose from OpenAI, Anthropic, Google, and more."
    base_url = "https://openrouter.ai/api/v1"
    capability_set = (
        ProviderCapability(
            content_type=ContentType.TEXT,
            models=("openai/gpt-4o", "anthropic/claude-3.5-sonnet", "google/gemini-pro"),
            supports_streaming=True,
        ),
        ProviderCapability(
            content_type=ContentType.IMAGE,
            models=("black-forest-labs/flux-1.1-pro", "google/gemini-2.5-flash-image-preview"),
        ),
    )

    # Rough average; real pricing depends on the selected model
    input_cost_per_million = 2.5
    output_cost_per_million = 7.5

    default_text_model = "openai/gpt-4o"
    default_max_tokens = 2000
    default_top_p = 1.0

    def extra_headers(self) -> dict[str, str]:
        return {"HTTP-Referer": settings.app_url, "X-Title": settings.app_title}

    # ── Model selection ─────────────────────────────────

    def selected_model(self, content_type: ContentType | str) -> str:
        models = self.config.metadata.get("models") or {}
        selected = models.get(ContentType(content_type).value, "")
        if not selected and content_type == ContentType.TEXT:
            return self.default_text_model
        return selected

    def text_model(self, request: TextGenerationRequest) -> str:
        return request.model or self.selected_model(ContentType.TEXT)

    async def fetch_available_models(self, content_type: ContentType | str | None = None) -> list[dict]:
        """List OpenRouter's model catalogue, optionally filtered to one content type.

        Returns an empty list without a key or when the catalogue is unreachable.
        """
        if not self.has_credentials():
            return []
        response = await self._probe("GET", f"{self.api_base}/models", headers=self._headers(self.extra_headers()))
        if response is None or not response.is_success:
            return []
        try:
            models = response.json().get("data") or []
        except ValueError:
            logger.warning("OpenRouter returned an unreadable model list")
            return []

        if content_type == ContentType.TEXT:
            return [m for m in models if is_text_model(m.get("id", ""))]
        if content_type == ContentType.IMAGE:
            return [m for m in models if is_image_model(m.get("id", ""))]
        return models

    # ── Images ──────────────────────────────────────────

    async def generate_image(self, request: ImageGenerationRequest) -> ImageGenerationResponse:
        self.require_credentials()

        model = request.model or self.selected_model(ContentType.IMAGE)
        if not model:
            raise ProviderError(
                ErrorCode.CONFIGURATION_ERROR,
                "No image model selected. Please configure an image model in settings.",
                False,
            )

        payload = {
            "model": model,
            "messages": [{"role": "user", "content": request.prompt}],
            "modalities": ["image", "text"],
        }
        if request.width and request.height:
            payload["image_config"] = {"aspect_ratio": closest_named_ratio(request.width, request.height)}

        data = await self._request_json(
            "POST",
            f"{self.api_base}/chat/completions",
            headers=self._headers(self.extra_headers()),
            json=payload,
        )

        message = ((data.get("choices") or [{}])[0]).get("message") or {}
        images = []
        for item in message.get("images") or []:
            url = (item.get("image_url") or {}).get("url") or (item.get("imageUrl") or {}).get("url") or item.get("url")
            if url:
                images.append(GeneratedImage(url=url, base64=url.split(",", 1)[1] if url.startswith("data:") else None))

        if not images:
            raise ProviderError(
                ErrorCode.GENERATION_FAILED,
                "The model did not return any images. It may not support image generation or the prompt was rejected.",
                False,
                raw=data,
            )

        return ImageGenerationResponse(images=images, model=data.get("model") or model, provider_request_id=data.get("id"))
