"""Google Gemini adapter: text generation and native image output."""

import logging

from providers.base import BaseAdapter, compact
from providers.dimensions import GEMINI_RATIO_THRESHOLDS, ratio_from_thresholds
from providers.errors import ErrorCode, ProviderError
from providers.streaming import error_message, parse_json_payload
from providers.types import (
    ContentType,
    FinishReason,
    GeneratedImage,
    ImageGenerationRequest,
    ImageGenerationResponse,
    ProviderCapability,
    ProviderType,
    StreamChunk,
    TextGenerationRequest,
    TextGenerationResponse,
)

logger = logging.getLogger(__name__)

TEXT_MODELS = (
    "gemini-2.5-pro-preview-06-05",
    "gemini-2.5-flash-preview-05-20",
    "gemini-2.5-flash-lite-preview-06-17",
    "gemini-2.0-flash",
    "gemini-2.0-flash-lite",
    "gemini-3.0-pro-preview",
    "gemini-3.0-flash-preview",
)

IMAGE_MODELS = ("gemini-2.5-flash-image", "gemini-3-pro-image-preview")

# Only this model accepts an explicit output size
SIZED_IMAGE_MODEL = "gemini-3-pro-image-preview"


def map_finish_reason(reason: str | None) -> FinishReason:
    if reason == "STOP":
        return "stop"
    if reason == "MAX_TOKENS":
        return "length"
    if reason in ("SAFETY", "RECITATION"):
        return "content_filter"
    return "error"


class GoogleKeyMixin:
    """Google's generative APIs take the key as a ``key`` query parameter."""

    def auth_headers(self) -> dict[str, str]:
        return {}

    def _key_params(self, **extra) -> dict[str, str]:
        return {"key": self.api_key, **extra}


class GeminiAdapter(GoogleKeyMixin, BaseAdapter):
    provider_type = ProviderType.GEMINI
    display_name = "Google Gemini"
    description = "Gemini models for text, vision, reasoning, and image generation"
    base_url = "https://generativelanguage.googleapis.com/v1beta"
    capability_set = (
        ProviderCapability(
            content_type=ContentType.TEXT,
            models=TEXT_MODELS,
            max_tokens=1000000,
            supports_streaming=True,
            supports_batching=True,
            cost_per_unit=0.075,
            rate_limit_per_minute=1000,
        ),
        ProviderCapability(
            content_type=ContentType.IMAGE,
            models=IMAGE_MODELS,
            max_resolution="1024x1024",
            cost_per_unit=0.04,
            rate_limit_per_minute=60,
        ),
    )

    input_cost_per_million = 0.075
    output_cost_per_million = 0.30
    cost_per_image = 0.04

    default_text_model = "gemini-2.5-flash-preview-05-20"
    default_image_model = "gemini-2.5-flash-image"

    async def validate_credentials(self) -> bool:
        if not self.has_credentials():
            return False
        response = await self._probe("GET", f"{self.api_base}/models", params=self._key_params())
        valid = response is not None and response.is_success
        logger.info("Gemini credentials %s", "valid" if valid else "rejected")
        return valid

    def _content_body(self, request: TextGenerationRequest) -> dict:
        generation_config = compact(
            {
                "maxOutputTokens": request.max_tokens,
                "temperature": request.temperature,
                "topP": request.top_p,
                "stopSequences": request.stop_sequences,
            }
        )
        return compact(
            {
                "contents": [{"role": "user", "parts": [{"text": request.user_prompt}]}],
                "systemInstruction": {"parts": [{"text": request.system_prompt}]} if request.system_prompt else None,
                "generationConfig": generation_config or None,
            }
        )

    async def generate_text(self, request: TextGenerationRequest) -> TextGenerationResponse:
        self.require_credentials()

        model = request.model or self.default_text_model
        data = await self._request_json(
            "POST",
            f"{self.api_base}/models/{model}:generateContent",
            params=self._key_params(),
            headers=self._headers(),
            json=self._content_body(request),
        )

        candidate = (data.get("candidates") or [{}])[0]
        parts = (candidate.get("content") or {}).get("parts") or []
        usage = data.get("usageMetadata") or {}

        return TextGenerationResponse(
            content="".join(part.get("text", "") for part in parts),
            model=model,
            input_tokens=usage.get("promptTokenCount", 0),
            output_tokens=usage.get("candidatesTokenCount", 0),
            finish_reason=map_finish_reason(candidate.get("finishReason")),
            provider_request_id=data.get("responseId"),
        )

    async def stream_text(self, request: TextGenerationRequest):
        self.require_credentials()

        model = request.model or self.default_text_model
        async for chunk in self._stream_events(
            f"{self.api_base}/models/{model}:streamGenerateContent",
            self._parse_event,
            params=self._key_params(alt="sse"),
            headers=self._headers(),
            json=self._content_body(request),
        ):
            yield chunk

    def _parse_event(self, data: str) -> list[StreamChunk]:
        payload = parse_json_payload(data)
        if payload is None:
            return []
        if payload.get("error"):
            message = error_message(payload["error"], "Gemini stream error")
            return [StreamChunk.failed(ProviderError(ErrorCode.STREAM_ERROR, message, False, raw=payload))]

        chunks = []
        candidate = (payload.get("candidates") or [{}])[0]
        parts = (candidate.get("content") or {}).get("parts") or []
        text = "".join(part.get("text", "") for part in parts)
        if text:
            chunks.append(StreamChunk.token(text))

        if candidate.get("finishReason"):
            usage = payload.get("usageMetadata") or {}
            chunks.append(
                StreamChunk.meta(
                    finish_reason=map_finish_reason(candidate["finishReason"]),
                    input_tokens=usage.get("promptTokenCount", 0),
                    output_tokens=usage.get("candidatesTokenCount", 0),
                    usage=usage,
                )
            )
        return chunks

    async def generate_image(self, request: ImageGenerationRequest) -> ImageGenerationResponse:
        self.require_credentials()

        model = request.model or self.default_image_model
        image_config = {"aspectRatio": ratio_from_thresholds(request.width, request.height, GEMINI_RATIO_THRESHOLDS)}
        if model == SIZED_IMAGE_MODEL:
            image_config["imageSize"] = "1K"

        data = await self._request_json(
            "POST",
            f"{self.api_base}/models/{model}:generateContent",
            params=self._key_params(),
            headers=self._headers(),
            json={
                "contents": [{"parts": [{"text": request.prompt}]}],
                "generationConfig": {"imageConfig": image_config},
            },
        )

        images = []
        candidate = (data.get("candidates") or [{}])[0]
        for part in (candidate.get("content") or {}).get("parts") or []:
            inline = part.get("inlineData") or {}
            mime_type = inline.get("mimeType") or ""
            if mime_type.startswith("image/") and inline.get("data"):
                images.append(GeneratedImage(url=f"data:{mime_type};base64,{inline['data']}", base64=inline["data"]))

        if not images:
            raise ProviderError(ErrorCode.GENERATION_FAILED, "No images generated", True, raw=data)

        logger.info("Gemini generated %d image(s) with %s", len(images), model)
        return ImageGenerationResponse(images=images, model=model)
