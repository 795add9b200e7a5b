"""Anthropic adapter for Claude models via the Messages API."""

import logging

from providers.base import BaseAdapter, compact
from providers.errors import ErrorCode, ProviderError
from providers.streaming import error_message, parse_json_payload
from providers.types import (
    ContentType,
    FinishReason,
    ProviderCapability,
    ProviderType,
    StreamChunk,
    TextGenerationRequest,
    TextGenerationResponse,
)

logger = logging.getLogger(__name__)

API_VERSION = "2023-06-01"
VALIDATION_MODEL = "claude-3-haiku-20240307"


def map_stop_reason(reason: str | None) -> FinishReason:
    if reason in ("end_turn", "stop_sequence"):
        return "stop"
    if reason == "max_tokens":
        return "length"
    return "error"


class AnthropicAdapter(BaseAdapter):
    """Claude via POST /messages.

    Streams typed events: ``content_block_delta`` carries text,
    ``message_delta`` the stop reason and output usage, ``message_stop``
    ends the stream.
    """

    provider_type = ProviderType.ANTHROPIC
    display_name = "Anthropic"
    description = "Claude models for advanced reasoning and long-context tasks"
    base_url = "https://api.anthropic.com/v1"
    capability_set = (
        ProviderCapability(
            content_type=ContentType.TEXT,
            models=(
                "claude-sonnet-4-20250514",
                "claude-3-5-sonnet-20241022",
                "claude-3-opus-20240229",
                "claude-3-haiku-20240307",
            ),
            max_tokens=200000,
            supports_streaming=True,
            supports_batching=True,
            cost_per_unit=3.0,
            rate_limit_per_minute=1000,
        ),
    )

    input_cost_per_million = 3.0
    output_cost_per_million = 15.0

    default_model = "claude-sonnet-4-20250514"
    default_max_tokens = 4096

    def auth_headers(self) -> dict[str, str]:
        if not self.api_key:
            return {}
        return {"x-api-key": self.api_key, "anthropic-version": API_VERSION}

    def _messages_body(self, request: TextGenerationRequest, stream: bool = False) -> dict:
        return compact(
            {
                "model": request.model or self.default_model,
                "max_tokens": request.max_tokens or self.default_max_tokens,
                "system": request.system_prompt,
                "messages": [{"role": "user", "content": request.user_prompt}],
                "temperature": request.temperature,
                "top_p": request.top_p,
                "stop_sequences": request.stop_sequences,
                "stream": True if stream else None,
            }
        )

    async def validate_credentials(self) -> bool:
        if not self.has_credentials():
            return False
        response = await self._probe(
            "POST",
            f"{self.api_base}/messages",
            headers=self._headers(),
            json={"model": VALIDATION_MODEL, "max_tokens": 1, "messages": [{"role": "user", "content": "hi"}]},
        )
        # 400 still means the key was accepted
        valid = response is not None and (response.is_success or response.status_code == 400)
        logger.info("Anthropic credentials %s", "valid" if valid else "rejected")
        return valid

    async def generate_text(self, request: TextGenerationRequest) -> TextGenerationResponse:
        self.require_credentials()

        data = await self._request_json(
            "POST", f"{self.api_base}/messages", headers=self._headers(), json=self._messages_body(request)
        )

        text = "".join(block.get("text", "") for block in data.get("content") or [] if block.get("type", "text") == "text")
        usage = data.get("usage") or {}

        return TextGenerationResponse(
            content=text,
            model=data.get("model") or request.model or self.default_model,
            input_tokens=usage.get("input_tokens", 0),
            output_tokens=usage.get("output_tokens", 0),
            finish_reason=map_stop_reason(data.get("stop_reason")),
            provider_request_id=data.get("id"),
        )

    async def stream_text(self, request: TextGenerationRequest):
        self.require_credentials()

        async for chunk in self._stream_events(
            f"{self.api_base}/messages",
            self._parse_event,
            headers=self._headers(),
            json=self._messages_body(request, stream=True),
        ):
            yield chunk

    def _parse_event(self, data: str) -> list[StreamChunk]:
        event = parse_json_payload(data)
        if event is None:
            return []

        kind = event.get("type")
        if kind == "content_block_delta":
            text = (event.get("delta") or {}).get("text")
            return [StreamChunk.token(text)] if text else []

        if kind == "message_start":
            usage = (event.get("message") or {}).get("usage") or {}
            if "input_tokens" in usage:
                return [StreamChunk.meta(input_tokens=usage["input_tokens"], usage=usage)]
            return []

        if kind == "message_delta":
            usage = event.get("usage") or {}
            fields = {"usage": usage}
            stop_reason = (event.get("delta") or {}).get("stop_reason")
            if stop_reason:
                fields["finish_reason"] = map_stop_reason(stop_reason)
            if "output_tokens" in usage:
                fields["output_tokens"] = usage["output_tokens"]
            return [StreamChunk.meta(**fields)]

        if kind == "message_stop":
            return [StreamChunk.complete()]

        if kind == "error":
            error = event.get("error")
            overloaded = isinstance(error, dict) and error.get("type") == "overloaded_error"
            return [
                StreamChunk.failed(
                    ProviderError(
                        ErrorCode.STREAM_ERROR,
                        error_message(error, "Anthropic stream error"),
                        overloaded,
                        raw=event,
                    )
                )
            ]
        return []
