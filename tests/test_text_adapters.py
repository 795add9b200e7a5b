"""Tests for text adapters against mocked vendor APIs."""

import json

import httpx
import pytest

from conftest import sse
from providers.errors import ErrorCode, ProviderError
from providers.image.imagen import ImagenAdapter
from providers.llm.anthropic import AnthropicAdapter
from providers.llm.gemini import GeminiAdapter
from providers.llm.kimi import KimiAdapter
from providers.llm.openai import OpenAIAdapter
from providers.llm.openrouter import OpenRouterAdapter, is_image_model, is_text_model
from providers.types import TextGenerationRequest


async def drain(stream):
    return [chunk async for chunk in stream]


def text_of(chunks):
    return "".join(c.content for c in chunks if c.type == "token")


# ═══════════════════════════════════════════════════════════════════════
# OpenAI-compatible chat
# ═══════════════════════════════════════════════════════════════════════


class TestOpenAI:
    @pytest.mark.asyncio
    async def test_generate_text(self, make_adapter, vendor):
        adapter = make_adapter(OpenAIAdapter, vendor)
        response = await adapter.generate_text(TextGenerationRequest("Say hello", system_prompt="Be brief"))

        assert response.content == "Hello world!"
        assert response.model == "gpt-4o"
        assert (response.input_tokens, response.output_tokens) == (12, 3)
        assert response.finish_reason == "stop"
        assert response.provider_request_id == "chatcmpl-1"

        request = vendor.requests[-1]
        assert str(request.url) == "https://api.openai.com/v1/chat/completions"
        assert request.headers["Authorization"] == "Bearer good-key"
        body = json.loads(request.content)
        assert body["messages"] == [
            {"role": "system", "content": "Be brief"},
            {"role": "user", "content": "Say hello"},
        ]
        assert body["temperature"] == 0.7
        assert body["stream"] is False
        assert "max_tokens" not in body

    @pytest.mark.asyncio
    async def test_organization_header(self, make_adapter, vendor):
        adapter = make_adapter(OpenAIAdapter, vendor, organization_id="org-42")
        await adapter.generate_text(TextGenerationRequest("hi"))
        assert vendor.requests[-1].headers["OpenAI-Organization"] == "org-42"

    @pytest.mark.asyncio
    async def test_stream_tokens_then_complete(self, make_adapter, vendor):
        adapter = make_adapter(OpenAIAdapter, vendor)
        chunks = await drain(adapter.stream_text(TextGenerationRequest("Say hello")))

        assert text_of(chunks) == "Hello world!"
        assert [c.content for c in chunks if c.type == "token"] == ["Hello", " world", "!"]
        meta = [c.metadata for c in chunks if c.type == "metadata"]
        assert meta[-1]["finish_reason"] == "stop"
        assert meta[-1]["input_tokens"] == 12
        assert chunks[-1].type == "complete"
        assert sum(c.is_terminal for c in chunks) == 1

    @pytest.mark.asyncio
    async def test_stream_rejected_yields_single_error(self, make_adapter, vendor):
        adapter = make_adapter(OpenAIAdapter, vendor, api_key="bad-key")
        chunks = await drain(adapter.stream_text(TextGenerationRequest("hi")))

        assert len(chunks) == 1
        assert chunks[0].type == "error"
        assert chunks[0].error.code == ErrorCode.UNAUTHORIZED

    @pytest.mark.asyncio
    async def test_stream_transport_failure(self, make_adapter):
        def handler(request):
            raise httpx.ReadError("connection reset", request=request)

        adapter = make_adapter(OpenAIAdapter, handler)
        chunks = await drain(adapter.stream_text(TextGenerationRequest("hi")))

        assert [c.type for c in chunks] == ["error"]
        assert chunks[0].error.code == ErrorCode.STREAM_ERROR

    @pytest.mark.asyncio
    async def test_stream_error_payload(self, make_adapter):
        def handler(request):
            return httpx.Response(
                200,
                content=sse({"choices": [{"delta": {"content": "Hel"}}]}, {"error": {"message": "model overloaded"}}),
            )

        adapter = make_adapter(OpenAIAdapter, handler)
        chunks = await drain(adapter.stream_text(TextGenerationRequest("hi")))

        assert [c.type for c in chunks] == ["token", "error"]
        assert chunks[-1].error.message == "model overloaded"

    @pytest.mark.asyncio
    async def test_stream_skips_malformed_choice(self, make_adapter):
        def handler(request):
            return httpx.Response(
                200,
                content=sse(
                    {"choices": [None]},
                    {"choices": [{"delta": None, "finish_reason": 3}], "usage": "n/a"},
                    {"choices": [{"delta": {"content": "Hi"}}]},
                    "[DONE]",
                ),
            )

        adapter = make_adapter(OpenAIAdapter, handler)
        chunks = await drain(adapter.stream_text(TextGenerationRequest("hi")))

        assert text_of(chunks) == "Hi"
        assert chunks[-1].type == "complete"

    @pytest.mark.asyncio
    async def test_stream_string_error(self, make_adapter):
        def handler(request):
            return httpx.Response(200, content=sse({"error": "quota exceeded"}))

        adapter = make_adapter(OpenAIAdapter, handler)
        chunks = await drain(adapter.stream_text(TextGenerationRequest("hi")))

        assert [c.type for c in chunks] == ["error"]
        assert chunks[0].error.message == "quota exceeded"

    @pytest.mark.asyncio
    async def test_stream_without_done_sentinel_completes(self, make_adapter):
        def handler(request):
            return httpx.Response(200, content=sse({"choices": [{"delta": {"content": "ok"}}]}))

        adapter = make_adapter(OpenAIAdapter, handler)
        chunks = await drain(adapter.stream_text(TextGenerationRequest("hi")))
        assert [c.type for c in chunks] == ["token", "complete"]

    @pytest.mark.asyncio
    async def test_length_finish_reason(self, make_adapter):
        def handler(request):
            return httpx.Response(
                200, json={"choices": [{"message": {"content": "cut"}, "finish_reason": "length"}], "usage": {}}
            )

        adapter = make_adapter(OpenAIAdapter, handler)
        response = await adapter.generate_text(TextGenerationRequest("hi", max_tokens=1))
        assert response.finish_reason == "length"

    @pytest.mark.asyncio
    async def test_empty_choices(self, make_adapter):
        adapter = make_adapter(OpenAIAdapter, lambda request: httpx.Response(200, json={"choices": []}))
        with pytest.raises(ProviderError) as exc_info:
            await adapter.generate_text(TextGenerationRequest("hi"))
        assert exc_info.value.code == ErrorCode.INVALID_RESPONSE

    @pytest.mark.asyncio
    async def test_validate_credentials(self, make_adapter, vendor):
        assert await make_adapter(OpenAIAdapter, vendor).validate_credentials() is True
        assert await make_adapter(OpenAIAdapter, vendor, api_key="bad-key").validate_credentials() is False

    @pytest.mark.asyncio
    async def test_no_credentials_makes_no_request(self, make_adapter, vendor):
        adapter = make_adapter(OpenAIAdapter, vendor, api_key=None)

        assert await adapter.validate_credentials() is False
        with pytest.raises(ProviderError) as exc_info:
            await adapter.generate_text(TextGenerationRequest("hi"))
        assert exc_info.value.code == ErrorCode.NO_CREDENTIALS
        assert vendor.requests == []

    @pytest.mark.asyncio
    async def test_api_base_override(self, make_adapter, vendor):
        adapter = make_adapter(OpenAIAdapter, vendor, api_base_url="http://proxy.local/v1/")
        await adapter.generate_text(TextGenerationRequest("hi"))
        assert str(vendor.requests[-1].url) == "http://proxy.local/v1/chat/completions"

    def test_cost(self, make_adapter, vendor):
        adapter = make_adapter(OpenAIAdapter, vendor)
        assert adapter.estimate_cost("text", {"input_tokens": 1_000_000, "output_tokens": 1_000_000}) == 20.0
        assert adapter.estimate_cost("image", {"image_count": 3}) == pytest.approx(0.12)
        assert adapter.estimate_cost("image") == 0.04
        assert adapter.estimate_cost("video", {"video_seconds": 10}) == 0.0


class TestKimi:
    @pytest.mark.asyncio
    async def test_goes_through_openrouter_with_attribution(self, make_adapter, vendor):
        adapter = make_adapter(KimiAdapter, vendor)
        await adapter.generate_text(TextGenerationRequest("Summarize this"))

        request = vendor.requests[-1]
        assert str(request.url) == "https://openrouter.ai/api/v1/chat/completions"
        assert request.headers["X-Title"] == "Content Studio"
        assert "HTTP-Referer" in request.headers
        assert json.loads(request.content)["model"] == "moonshotai/kimi-k2.5"


class TestOpenRouter:
    @pytest.mark.asyncio
    async def test_selected_text_model(self, make_adapter, vendor):
        adapter = make_adapter(OpenRouterAdapter, vendor, metadata={"models": {"text": "anthropic/claude-3.5-sonnet"}})
        await adapter.generate_text(TextGenerationRequest("hi"))

        body = json.loads(vendor.requests[-1].content)
        assert body["model"] == "anthropic/claude-3.5-sonnet"
        assert body["max_tokens"] == 2000
        assert body["top_p"] == 1.0

    @pytest.mark.asyncio
    async def test_falls_back_to_default_text_model(self, make_adapter, vendor):
        adapter = make_adapter(OpenRouterAdapter, vendor)
        await adapter.generate_text(TextGenerationRequest("hi"))
        assert json.loads(vendor.requests[-1].content)["model"] == "openai/gpt-4o"

    @pytest.mark.asyncio
    async def test_fetch_available_models(self, make_adapter, vendor):
        vendor.routes["/models"] = lambda request: httpx.Response(
            200,
            json={"data": [{"id": "openai/gpt-4o"}, {"id": "black-forest-labs/flux-1.1-pro"}, {"id": "google/veo-3"}]},
        )
        adapter = make_adapter(OpenRouterAdapter, vendor)

        assert len(await adapter.fetch_available_models()) == 3
        assert [m["id"] for m in await adapter.fetch_available_models("text")] == ["openai/gpt-4o"]
        assert [m["id"] for m in await adapter.fetch_available_models("image")] == ["black-forest-labs/flux-1.1-pro"]

    @pytest.mark.asyncio
    async def test_fetch_available_models_without_key(self, make_adapter, vendor):
        adapter = make_adapter(OpenRouterAdapter, vendor, api_key=None)
        assert await adapter.fetch_available_models() == []
        assert vendor.requests == []

    def test_model_heuristics(self):
        assert is_image_model("stability/stable-diffusion-xl")
        assert not is_image_model("openai/gpt-4o")
        assert is_text_model("meta-llama/llama-3-70b")
        assert not is_text_model("openai/dall-e-3")


# ═══════════════════════════════════════════════════════════════════════
# Anthropic
# ═══════════════════════════════════════════════════════════════════════


class TestAnthropic:
    @pytest.mark.asyncio
    async def test_generate_text(self, make_adapter, vendor):
        adapter = make_adapter(AnthropicAdapter, vendor)
        response = await adapter.generate_text(TextGenerationRequest("Salut", system_prompt="Reply in French"))

        assert response.content == "Bonjour"
        assert (response.input_tokens, response.output_tokens) == (7, 2)
        assert response.finish_reason == "stop"

        request = vendor.requests[-1]
        assert request.headers["x-api-key"] == "good-key"
        assert request.headers["anthropic-version"] == "2023-06-01"
        body = json.loads(request.content)
        assert body["system"] == "Reply in French"
        assert body["max_tokens"] == 4096
        assert "stream" not in body

    @pytest.mark.asyncio
    async def test_stream(self, make_adapter):
        def handler(request):
            assert json.loads(request.content)["stream"] is True
            return httpx.Response(
                200,
                content=(
                    b"event: message_start\n"
                    + sse(
                        {"type": "message_start", "message": {"usage": {"input_tokens": 9}}},
                        {"type": "content_block_start", "index": 0},
                        {"type": "content_block_delta", "delta": {"type": "text_delta", "text": "Hello"}},
                        {"type": "content_block_delta", "delta": {"type": "text_delta", "text": " there"}},
                        {"type": "message_delta", "delta": {"stop_reason": "max_tokens"}, "usage": {"output_tokens": 2}},
                        {"type": "message_stop"},
                    )
                ),
            )

        adapter = make_adapter(AnthropicAdapter, handler)
        chunks = await drain(adapter.stream_text(TextGenerationRequest("hi")))

        assert text_of(chunks) == "Hello there"
        meta = [c.metadata for c in chunks if c.type == "metadata"]
        assert meta[0]["input_tokens"] == 9
        assert meta[-1]["finish_reason"] == "length"
        assert meta[-1]["output_tokens"] == 2
        assert chunks[-1].type == "complete"

    @pytest.mark.asyncio
    async def test_overloaded_stream_error_is_retryable(self, make_adapter):
        def handler(request):
            return httpx.Response(
                200, content=sse({"type": "error", "error": {"type": "overloaded_error", "message": "Overloaded"}})
            )

        adapter = make_adapter(AnthropicAdapter, handler)
        chunks = await drain(adapter.stream_text(TextGenerationRequest("hi")))

        assert chunks[-1].type == "error"
        assert chunks[-1].error.retryable is True

    @pytest.mark.asyncio
    async def test_validation_accepts_bad_request(self, make_adapter):
        adapter = make_adapter(AnthropicAdapter, lambda request: httpx.Response(400, json={}))
        assert await adapter.validate_credentials() is True

    @pytest.mark.asyncio
    async def test_validation_rejects_unauthorized(self, make_adapter, vendor):
        adapter = make_adapter(AnthropicAdapter, vendor, api_key="bad-key")
        assert await adapter.validate_credentials() is False

    @pytest.mark.asyncio
    async def test_image_generation_unsupported(self, make_adapter, vendor):
        from providers.types import ImageGenerationRequest

        adapter = make_adapter(AnthropicAdapter, vendor)
        with pytest.raises(ProviderError) as exc_info:
            await adapter.generate_image(ImageGenerationRequest("a cat"))
        assert exc_info.value.code == ErrorCode.UNSUPPORTED_OPERATION
        assert vendor.requests == []


# ═══════════════════════════════════════════════════════════════════════
# Gemini
# ═══════════════════════════════════════════════════════════════════════


class TestGemini:
    @pytest.mark.asyncio
    async def test_generate_text(self, make_adapter):
        seen = []

        def handler(request):
            seen.append(request)
            return httpx.Response(
                200,
                json={
                    "candidates": [{"content": {"parts": [{"text": "Hi "}, {"text": "there"}]}, "finishReason": "STOP"}],
                    "usageMetadata": {"promptTokenCount": 4, "candidatesTokenCount": 2},
                },
            )

        adapter = make_adapter(GeminiAdapter, handler)
        response = await adapter.generate_text(TextGenerationRequest("hello", max_tokens=50))

        assert response.content == "Hi there"
        assert (response.input_tokens, response.output_tokens) == (4, 2)
        request = seen[0]
        assert request.url.path.endswith("/models/gemini-2.5-flash-preview-05-20:generateContent")
        assert request.url.params["key"] == "good-key"
        assert "Authorization" not in request.headers
        assert json.loads(request.content)["generationConfig"] == {"maxOutputTokens": 50}

    @pytest.mark.asyncio
    async def test_stream(self, make_adapter):
        seen = []

        def handler(request):
            seen.append(request)
            return httpx.Response(
                200,
                content=sse(
                    {"candidates": [{"content": {"parts": [{"text": "Once"}]}}]},
                    {
                        "candidates": [{"content": {"parts": [{"text": " upon"}]}, "finishReason": "SAFETY"}],
                        "usageMetadata": {"promptTokenCount": 3, "candidatesTokenCount": 2},
                    },
                ),
            )

        adapter = make_adapter(GeminiAdapter, handler)
        chunks = await drain(adapter.stream_text(TextGenerationRequest("story")))

        assert seen[0].url.params["alt"] == "sse"
        assert text_of(chunks) == "Once upon"
        assert [c for c in chunks if c.type == "metadata"][0].metadata["finish_reason"] == "content_filter"
        assert chunks[-1].type == "complete"

    @pytest.mark.asyncio
    async def test_stream_string_error(self, make_adapter):
        def handler(request):
            return httpx.Response(200, content=sse({"error": "quota exceeded"}))

        adapter = make_adapter(GeminiAdapter, handler)
        chunks = await drain(adapter.stream_text(TextGenerationRequest("story")))

        assert [c.type for c in chunks] == ["error"]
        assert chunks[0].error.code == ErrorCode.STREAM_ERROR
        assert chunks[0].error.message == "quota exceeded"

    @pytest.mark.asyncio
    async def test_stream_skips_unexpected_shapes(self, make_adapter):
        def handler(request):
            return httpx.Response(
                200,
                content=sse(
                    {"candidates": ["oops"]},
                    {"candidates": [{"content": {"parts": [None]}}]},
                    {"candidates": [{"content": {"parts": [{"text": "Still here"}]}}]},
                ),
            )

        adapter = make_adapter(GeminiAdapter, handler)
        chunks = await drain(adapter.stream_text(TextGenerationRequest("story")))

        assert text_of(chunks) == "Still here"
        assert chunks[-1].type == "complete"


class TestUnsupportedStreaming:
    @pytest.mark.asyncio
    async def test_image_only_adapter_refuses_streaming(self, make_adapter, vendor):
        adapter = make_adapter(ImagenAdapter, vendor)
        with pytest.raises(ProviderError) as exc_info:
            await drain(adapter.stream_text(TextGenerationRequest("hi")))
        assert exc_info.value.code == ErrorCode.UNSUPPORTED_OPERATION
        assert vendor.requests == []
