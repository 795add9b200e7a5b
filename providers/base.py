"""Abstract base class for vendor adapters.

Every adapter exposes the same operation set. Operations a vendor does not
offer raise UNSUPPORTED_OPERATION without touching the network, so callers
can either introspect ``capabilities()`` first or just handle the error.
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from contextlib import asynccontextmanager
from typing import AsyncIterator, Callable, ClassVar, Iterable

import httpx

from config import settings
from providers.errors import (
    ErrorCode,
    ProviderError,
    error_from_exception,
    error_from_response,
    no_credentials,
    unsupported,
)
from providers.jobs import ProgressCallback, wait_for_job
from providers.retry import RetryPolicy, send_with_retry
from providers.streaming import DATA_PREFIX, iter_sse_data
from providers.types import (
    ContentType,
    GenerationJob,
    ImageGenerationRequest,
    ImageGenerationResponse,
    ProviderCapability,
    ProviderConfig,
    ProviderCredential,
    ProviderType,
    StreamChunk,
    TextGenerationRequest,
    TextGenerationResponse,
    UsageParams,
    VideoGenerationRequest,
)

logger = logging.getLogger(__name__)


def compact(data: dict) -> dict:
    """Drop unset fields from a request body."""
    return {key: value for key, value in data.items() if value is not None}


class BaseAdapter(ABC):
    """Abstract base class for vendor adapters.

    Implementations: OpenAIAdapter, AnthropicAdapter, GeminiAdapter,
    KimiAdapter, OpenRouterAdapter, FluxProAdapter, ImagenAdapter,
    RunwayAdapter, VeoAdapter.

    Usage:
        adapter = AnthropicAdapter(config, ProviderCredential(config.id, "sk-..."))
        if await adapter.validate_credentials():
            response = await adapter.generate_text(TextGenerationRequest("Hello!"))
    """

    provider_type: ClassVar[ProviderType]
    display_name: ClassVar[str]
    description: ClassVar[str] = ""
    base_url: ClassVar[str] = ""
    capability_set: ClassVar[tuple[ProviderCapability, ...]] = ()
    stream_marker: ClassVar[str] = DATA_PREFIX

    # Pricing (USD)
    input_cost_per_million: ClassVar[float | None] = None
    output_cost_per_million: ClassVar[float | None] = None
    cost_per_image: ClassVar[float | None] = None
    cost_per_video_second: ClassVar[float | None] = None
    default_video_seconds: ClassVar[float] = 5.0

    # Job polling
    poll_interval: ClassVar[float] = 5.0  # seconds
    job_timeout: ClassVar[float] = 600.0  # seconds

    def __init__(
        self,
        config: ProviderConfig,
        credential: ProviderCredential | None = None,
        *,
        client: httpx.AsyncClient | None = None,
        retry_policy: RetryPolicy | None = None,
        timeout: float | None = None,
    ):
        self.config = config
        self.credential = credential
        self.retry_policy = retry_policy or RetryPolicy.from_settings()
        self.timeout = timeout or settings.http_timeout
        self.api_base = (config.api_base_url or self.base_url).rstrip("/")
        self._client = client
        self._sleep = asyncio.sleep

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__} id={self.config.id}>"

    # ── Capabilities ────────────────────────────────────

    def capabilities(self) -> list[ProviderCapability]:
        return list(self.capability_set)

    def capability_for(self, content_type: ContentType | str) -> ProviderCapability | None:
        for capability in self.capability_set:
            if capability.content_type == content_type:
                return capability
        return None

    def supports(self, content_type: ContentType | str) -> bool:
        return self.capability_for(content_type) is not None

    def supports_streaming(self) -> bool:
        return any(c.supports_streaming for c in self.capability_set)

    def supports_async_jobs(self) -> bool:
        return any(c.supports_async_jobs for c in self.capability_set)

    def models_for(self, content_type: ContentType | str) -> list[str]:
        capability = self.capability_for(content_type)
        return list(capability.models) if capability else []

    # ── Credentials ─────────────────────────────────────

    @property
    def api_key(self) -> str:
        return self.credential.api_key if self.credential else ""

    def has_credentials(self) -> bool:
        return bool(self.api_key)

    def set_credential(self, credential: ProviderCredential | None) -> None:
        self.credential = credential

    def require_credentials(self) -> None:
        if not self.has_credentials():
            raise no_credentials(self.display_name)

    def auth_headers(self) -> dict[str, str]:
        if not self.api_key:
            return {}
        return {"Authorization": f"Bearer {self.api_key}"}

    def _headers(self, extra: dict[str, str] | None = None) -> dict[str, str]:
        headers = {"Content-Type": "application/json", **self.auth_headers()}
        if extra:
            headers.update(extra)
        return headers

    @abstractmethod
    async def validate_credentials(self) -> bool:
        """Check the API key against the vendor.

        Returns False without any network call when no key is set.
        """
        ...

    # ── Generation (unsupported unless overridden) ──────

    async def generate_text(self, request: TextGenerationRequest) -> TextGenerationResponse:
        raise unsupported(self.display_name, "text generation")

    async def stream_text(self, request: TextGenerationRequest) -> AsyncIterator[StreamChunk]:
        raise unsupported(self.display_name, "streaming text generation")
        yield  # pragma: no cover

    async def generate_image(self, request: ImageGenerationRequest) -> ImageGenerationResponse:
        raise unsupported(self.display_name, "image generation")

    async def submit_video_job(self, request: VideoGenerationRequest) -> GenerationJob:
        raise unsupported(self.display_name, "video generation")

    async def get_video_job_status(self, job_id: str) -> GenerationJob:
        raise unsupported(self.display_name, "video generation")

    async def cancel_video_job(self, job_id: str) -> bool:
        raise unsupported(self.display_name, "video generation")

    async def generate_video_and_wait(
        self,
        request: VideoGenerationRequest,
        on_progress: ProgressCallback | None = None,
        *,
        timeout: float | None = None,
        poll_interval: float | None = None,
    ) -> GenerationJob:
        """Submit a video job and poll it until it completes.

        Raises the job's error if it fails, or a retryable TIMEOUT when the
        job's time limit runs out first.
        """
        job = await self.submit_video_job(request)
        logger.info("%s video job %s submitted", self.display_name, job.job_id)
        return await wait_for_job(
            self.get_video_job_status,
            job.job_id,
            interval=self.poll_interval if poll_interval is None else poll_interval,
            timeout=self.job_timeout if timeout is None else timeout,
            on_progress=on_progress,
            sleep=self._sleep,
            label=f"{self.display_name} video job",
        )

    # ── Cost ────────────────────────────────────────────

    def estimate_cost(self, content_type: ContentType | str, usage: UsageParams | dict | None = None) -> float:
        """Estimated USD cost. Text is linear in input/output tokens per million."""
        if isinstance(usage, dict):
            usage = UsageParams(**usage)
        usage = usage or UsageParams()
        content_type = ContentType(content_type)

        if content_type == ContentType.TEXT and self.input_cost_per_million is not None:
            input_cost = ((usage.input_tokens or 0) / 1_000_000) * self.input_cost_per_million
            output_cost = ((usage.output_tokens or 0) / 1_000_000) * (self.output_cost_per_million or 0.0)
            return input_cost + output_cost

        if content_type == ContentType.IMAGE and self.cost_per_image is not None:
            count = 1 if usage.image_count is None else usage.image_count
            return count * self.cost_per_image

        if content_type == ContentType.VIDEO and self.cost_per_video_second is not None:
            seconds = self.default_video_seconds if usage.video_seconds is None else usage.video_seconds
            return seconds * self.cost_per_video_second

        return 0.0

    # ── HTTP helpers ────────────────────────────────────

    @asynccontextmanager
    async def _session(self) -> AsyncIterator[httpx.AsyncClient]:
        if self._client is not None:
            yield self._client
            return
        async with httpx.AsyncClient(timeout=self.timeout) as client:
            yield client

    async def _send(self, method: str, url: str, **kwargs) -> httpx.Response:
        async with self._session() as client:
            return await send_with_retry(
                client,
                method,
                url,
                policy=self.retry_policy,
                vendor=self.display_name,
                sleep=self._sleep,
                **kwargs,
            )

    async def _request_json(self, method: str, url: str, **kwargs) -> dict:
        """Send with retry and return the JSON body, raising ProviderError on failure."""
        response = await self._send(method, url, **kwargs)
        if response.is_error:
            error = error_from_response(response, self.display_name)
            logger.error("%s API error %d: %s", self.display_name, response.status_code, error.message)
            raise error
        try:
            data = response.json()
        except ValueError as e:
            raise ProviderError(
                ErrorCode.INVALID_RESPONSE,
                f"{self.display_name} returned a non-JSON response",
                False,
                response.status_code,
                raw=response.text[:500],
            ) from e
        if not isinstance(data, dict):
            raise ProviderError(ErrorCode.INVALID_RESPONSE, f"Unexpected {self.display_name} response", False, raw=data)
        return data

    async def _probe(self, method: str, url: str, **kwargs) -> httpx.Response | None:
        """Single un-retried request used for credential checks. None on transport failure."""
        try:
            async with self._session() as client:
                return await client.request(method, url, **kwargs)
        except httpx.HTTPError as e:
            logger.warning("%s credential check failed: %s", self.display_name, e)
            return None

    async def _stream_events(
        self,
        url: str,
        parse: Callable[[str], Iterable[StreamChunk]],
        *,
        method: str = "POST",
        **kwargs,
    ) -> AsyncIterator[StreamChunk]:
        """Run a streaming request and translate each event line via ``parse``.

        Always ends with exactly one terminal chunk: ``complete`` (vendor
        sentinel or end of body) or ``error``.
        """
        try:
            async with self._session() as client:
                async with client.stream(method, url, **kwargs) as response:
                    if response.is_error:
                        await response.aread()
                        error = error_from_response(response, self.display_name)
                        logger.error("%s stream rejected %d: %s", self.display_name, response.status_code, error.message)
                        yield StreamChunk.failed(error)
                        return

                    async for data in iter_sse_data(response.aiter_bytes(), self.stream_marker):
                        try:
                            chunks = list(parse(data))
                        except (AttributeError, TypeError, KeyError, IndexError, ValueError) as e:
                            logger.debug("%s skipping malformed stream line (%s): %.80s", self.display_name, e, data)
                            continue
                        for chunk in chunks:
                            yield chunk
                            if chunk.is_terminal:
                                return
        except httpx.HTTPError as e:
            cause = error_from_exception(e, self.display_name)
            logger.error("%s stream failed: %s", self.display_name, e)
            yield StreamChunk.failed(
                ProviderError(ErrorCode.STREAM_ERROR, cause.message, cause.retryable, raw=cause.raw)
            )
            return

        yield StreamChunk.complete()
