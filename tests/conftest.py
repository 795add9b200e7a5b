"""Shared fixtures: adapters wired to an in-process fake vendor API."""

import json
import os

# Keep a developer's .env keys out of the test run
for _name in (
    "OPENAI_API_KEY",
    "OPENAI_ORGANIZATION_ID",
    "ANTHROPIC_API_KEY",
    "GOOGLE_API_KEY",
    "KIMI_API_KEY",
    "OPENROUTER_API_KEY",
    "BFL_API_KEY",
    "RUNWAY_API_KEY",
    "DEFAULT_TEXT_PROVIDER",
    "DEFAULT_IMAGE_PROVIDER",
    "DEFAULT_VIDEO_PROVIDER",
):
    os.environ[_name] = ""
os.environ["VALIDATE_ON_STARTUP"] = "false"
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"

import httpx
import pytest

from providers.retry import RetryPolicy
from providers.store import ProviderStore
from providers.types import ProviderConfig, ProviderCredential

GOOD_KEY = "good-key"


async def no_sleep(seconds: float) -> None:
    return None


def sse(*events) -> bytes:
    """Encode events as a server-sent-event body. Dicts become JSON."""
    lines = [f"data: {json.dumps(e) if isinstance(e, dict) else e}\n\n" for e in events]
    return "".join(lines).encode()


class FakeVendor:
    """MockTransport handler that answers like the vendor APIs.

    Requests are recorded; a key other than ``GOOD_KEY`` is rejected with
    401. ``routes`` maps a URL path suffix to a handler returning an
    ``httpx.Response``.
    """

    def __init__(self):
        self.requests: list[httpx.Request] = []
        self.routes = {
            "/models": lambda request: httpx.Response(200, json={"data": []}),
            "/chat/completions": self._chat,
            "/images/generations": lambda request: httpx.Response(
                200, json={"data": [{"url": "https://img.example/1.png", "revised_prompt": "a cat"}]}
            ),
            "/messages": self._messages,
            ":predict": lambda request: httpx.Response(
                200, json={"predictions": [{"bytesBase64Encoded": "aW1n", "mimeType": "image/png"}]}
            ),
            "/text_to_video": lambda request: httpx.Response(200, json={"id": "task-1"}),
            "/tasks": lambda request: httpx.Response(200, json=[]),
            "/cancel": lambda request: httpx.Response(200, json={}),
        }

    def _key(self, request: httpx.Request) -> str:
        auth = request.headers.get("Authorization", "")
        return (
            auth.removeprefix("Bearer ")
            or request.headers.get("x-api-key", "")
            or request.headers.get("X-Key", "")
            or request.url.params.get("key", "")
        )

    def _chat(self, request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content)
        if body.get("stream"):
            return httpx.Response(
                200,
                headers={"content-type": "text/event-stream"},
                content=sse(
                    {"choices": [{"delta": {"content": "Hello"}}]},
                    {"choices": [{"delta": {"content": " world"}}]},
                    {"choices": [{"delta": {"content": "!"}}]},
                    {
                        "choices": [{"delta": {}, "finish_reason": "stop"}],
                        "usage": {"prompt_tokens": 12, "completion_tokens": 3},
                    },
                    "[DONE]",
                ),
            )
        return httpx.Response(
            200,
            json={
                "id": "chatcmpl-1",
                "model": body["model"],
                "choices": [{"message": {"content": "Hello world!"}, "finish_reason": "stop"}],
                "usage": {"prompt_tokens": 12, "completion_tokens": 3},
            },
        )

    def _messages(self, request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content)
        return httpx.Response(
            200,
            json={
                "id": "msg_1",
                "model": body["model"],
                "content": [{"type": "text", "text": "Bonjour"}],
                "stop_reason": "end_turn",
                "usage": {"input_tokens": 7, "output_tokens": 2},
            },
        )

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self._key(request) != GOOD_KEY:
            return httpx.Response(401, json={"error": {"message": "Invalid API key"}})
        for suffix, handler in self.routes.items():
            if request.url.path.endswith(suffix):
                return handler(request)
        return httpx.Response(404, json={"error": {"message": f"No route for {request.url.path}"}})


@pytest.fixture
def vendor():
    return FakeVendor()


@pytest.fixture
def http_client(vendor):
    return httpx.AsyncClient(transport=httpx.MockTransport(vendor))


@pytest.fixture
def make_adapter():
    """Build an adapter whose HTTP calls go to ``handler``."""

    def _make(cls, handler, api_key=GOOD_KEY, organization_id=None, **config_kwargs):
        config = ProviderConfig(
            id="provider-1",
            provider_type=cls.provider_type,
            display_name=cls.display_name,
            capabilities=list(cls.capability_set),
            **config_kwargs,
        )
        credential = None
        if api_key:
            credential = ProviderCredential(provider_id=config.id, api_key=api_key, organization_id=organization_id)
        adapter = cls(
            config,
            credential,
            client=httpx.AsyncClient(transport=httpx.MockTransport(handler)),
            retry_policy=RetryPolicy(base_delay=0.0),
        )
        adapter._sleep = no_sleep
        return adapter

    return _make


@pytest.fixture
def store(http_client):
    return ProviderStore(client=http_client, retry_policy=RetryPolicy(base_delay=0.0))
