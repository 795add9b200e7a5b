"""Shared adapter for vendors speaking OpenAI's /chat/completions protocol.

OpenAI itself, Kimi and OpenRouter all accept the same request body and
stream ``data: {...}`` events terminated by ``data: [DONE]``.
"""

import logging
from typing import AsyncIterator, ClassVar

from providers.base import BaseAdapter, compact
from providers.errors import ErrorCode, ProviderError
from providers.streaming import error_message, parse_json_payload
from providers.types import (
    FinishReason,
    StreamChunk,
    TextGenerationRequest,
    TextGenerationResponse,
)

logger = logging.getLogger(__name__)

DONE_SENTINEL = "[DONE]"


def map_finish_reason(reason: str | None) -> FinishReason:
    if reason in ("stop", "length", "content_filter"):
        return reason
    return "error"


class ChatCompletionsAdapter(BaseAdapter):
    """Base for OpenAI-compatible chat vendors.

    Subclasses set ``base_url`` and ``default_text_model`` and may add
    headers through ``extra_headers()``.
    """

    default_text_model: ClassVar[str] = ""
    default_temperature: ClassVar[float] = 0.7
    default_max_tokens: ClassVar[int | None] = None
    default_top_p: ClassVar[float | None] = None

    def extra_headers(self) -> dict[str, str]:
        return {}

    def text_model(self, request: TextGenerationRequest) -> str:
        return request.model or self.default_text_model

    def chat_body(self, request: TextGenerationRequest, stream: bool) -> dict:
        messages = []
        if request.system_prompt:
            messages.append({"role": "system", "content": request.system_prompt})
        messages.append({"role": "user", "content": request.user_prompt})

        return compact(
            {
                "model": self.text_model(request),
                "messages": messages,
                "max_tokens": request.max_tokens or self.default_max_tokens,
                "temperature": self.default_temperature if request.temperature is None else request.temperature,
                "top_p": self.default_top_p if request.top_p is None else request.top_p,
                "stop": request.stop_sequences,
                "stream": stream,
            }
        )

    async def validate_credentials(self) -> bool:
        if not self.has_credentials():
            return False
        response = await self._probe("GET", f"{self.api_base}/models", headers=self._headers(self.extra_headers()))
        valid = response is not None and response.is_success
        logger.info("%s credentials %s", self.display_name, "valid" if valid else "rejected")
        return valid

    async def generate_text(self, request: TextGenerationRequest) -> TextGenerationResponse:
        self.require_credentials()

        data = await self._request_json(
            "POST",
            f"{self.api_base}/chat/completions",
            headers=self._headers(self.extra_headers()),
            json=self.chat_body(request, stream=False),
        )

        choices = data.get("choices") or []
        if not choices:
            raise ProviderError(
                ErrorCode.INVALID_RESPONSE, f"{self.display_name} returned no choices", False, raw=data
            )
        choice = choices[0]
        usage = data.get("usage") or {}

        return TextGenerationResponse(
            content=(choice.get("message") or {}).get("content") or "",
            model=data.get("model") or self.text_model(request),
            input_tokens=usage.get("prompt_tokens", 0),
            output_tokens=usage.get("completion_tokens", 0),
            finish_reason=map_finish_reason(choice.get("finish_reason")),
            provider_request_id=data.get("id"),
        )

    async def stream_text(self, request: TextGenerationRequest) -> AsyncIterator[StreamChunk]:
        self.require_credentials()

        async for chunk in self._stream_events(
            f"{self.api_base}/chat/completions",
            self.parse_stream_event,
            headers=self._headers(self.extra_headers()),
            json=self.chat_body(request, stream=True),
        ):
            yield chunk

    def parse_stream_event(self, data: str) -> list[StreamChunk]:
        if data.strip() == DONE_SENTINEL:
            return [StreamChunk.complete()]

        payload = parse_json_payload(data)
        if payload is None:
            return []

        if payload.get("error"):
            message = error_message(payload["error"], "Stream error")
            return [StreamChunk.failed(ProviderError(ErrorCode.STREAM_ERROR, message, False, raw=payload))]

        chunks = []
        choice = (payload.get("choices") or [{}])[0]
        if not isinstance(choice, dict):
            return []
        content = (choice.get("delta") or {}).get("content")
        if content:
            chunks.append(StreamChunk.token(content))

        fields = {}
        if choice.get("finish_reason"):
            fields["finish_reason"] = map_finish_reason(choice["finish_reason"])
        usage = payload.get("usage")
        if usage:
            fields["input_tokens"] = usage.get("prompt_tokens", 0)
            fields["output_tokens"] = usage.get("completion_tokens", 0)
            fields["usage"] = usage
        if fields:
            chunks.append(StreamChunk.meta(**fields))
        return chunks
