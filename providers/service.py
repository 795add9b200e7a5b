"""Orchestration service: routes generation requests to a resolved provider.

The service adds no retries of its own. It picks the adapter, feeds
failures back to the store (so credential and rate-limit problems show up
as provider status) and records usage on success.
"""

import asyncio
import logging
from contextlib import aclosing
from typing import AsyncIterator, Awaitable, TypeVar

from providers.base import BaseAdapter
from providers.errors import ErrorCode, ProviderError
from providers.jobs import ProgressCallback
from providers.store import ProviderStore
from providers.types import (
    ContentType,
    GenerationJob,
    ImageGenerationRequest,
    ImageGenerationResponse,
    ProviderRequirements,
    ProviderState,
    ProviderStatus,
    StreamChunk,
    TextGenerationRequest,
    TextGenerationResponse,
    UsageParams,
    VideoGenerationRequest,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")


class ProviderService:
    def __init__(self, store: ProviderStore):
        self.store = store

    # ── Resolution ──────────────────────────────────────

    def resolve(self, content_type: ContentType | str, provider_id: str | None = None) -> BaseAdapter:
        """Adapter for an explicit provider id, else the content type's default, else the first active one."""
        if provider_id:
            return self.store.get_adapter(provider_id)
        adapter = self.store.get_adapter_for_type(content_type)
        if adapter is None:
            raise ProviderError(
                ErrorCode.NO_PROVIDER_AVAILABLE,
                f"No active provider available for {ContentType(content_type).value} generation",
                False,
            )
        return adapter

    async def _call(self, adapter: BaseAdapter, operation: Awaitable[T]) -> T:
        try:
            result = await operation
        except ProviderError as e:
            logger.warning("%s call failed: %s", adapter.display_name, e)
            self.store.report_failure(adapter.config.id, e)
            raise
        self.store.report_success(adapter.config.id)
        return result

    # ── Text ────────────────────────────────────────────

    async def generate_text(
        self, request: TextGenerationRequest, provider_id: str | None = None
    ) -> TextGenerationResponse:
        adapter = self.resolve(ContentType.TEXT, provider_id)
        response = await self._call(adapter, adapter.generate_text(request))
        self.store.record_usage(
            adapter.config.id,
            ContentType.TEXT,
            UsageParams(input_tokens=response.input_tokens, output_tokens=response.output_tokens),
        )
        return response

    async def stream_text(
        self, request: TextGenerationRequest, provider_id: str | None = None
    ) -> AsyncIterator[StreamChunk]:
        """Stream tokens from the resolved provider.

        Precondition failures raise; vendor and network failures arrive as a
        terminal error chunk. Closing this generator closes the vendor stream.
        """
        adapter = self.resolve(ContentType.TEXT, provider_id)
        provider = adapter.config.id
        usage = UsageParams()

        async with aclosing(adapter.stream_text(request)) as stream:
            try:
                async for chunk in stream:
                    if chunk.type == "metadata" and chunk.metadata:
                        usage.input_tokens = chunk.metadata.get("input_tokens", usage.input_tokens)
                        usage.output_tokens = chunk.metadata.get("output_tokens", usage.output_tokens)
                    elif chunk.type == "error" and chunk.error is not None:
                        self.store.report_failure(provider, chunk.error)
                    elif chunk.type == "complete":
                        self.store.report_success(provider)
                        self.store.record_usage(provider, ContentType.TEXT, usage)
                    yield chunk
            except ProviderError as e:
                self.store.report_failure(provider, e)
                raise

    # ── Images ──────────────────────────────────────────

    async def generate_image(
        self, request: ImageGenerationRequest, provider_id: str | None = None
    ) -> ImageGenerationResponse:
        adapter = self.resolve(ContentType.IMAGE, provider_id)
        response = await self._call(adapter, adapter.generate_image(request))
        self.store.record_usage(adapter.config.id, ContentType.IMAGE, UsageParams(image_count=len(response.images)))
        return response

    # ── Video ───────────────────────────────────────────

    def _video_usage(self, adapter: BaseAdapter, request: VideoGenerationRequest) -> UsageParams:
        return UsageParams(video_seconds=request.duration or adapter.default_video_seconds)

    async def submit_video_job(
        self, request: VideoGenerationRequest, provider_id: str | None = None
    ) -> GenerationJob:
        adapter = self.resolve(ContentType.VIDEO, provider_id)
        job = await self._call(adapter, adapter.submit_video_job(request))
        self.store.record_usage(adapter.config.id, ContentType.VIDEO, self._video_usage(adapter, request))
        return job

    async def get_video_job_status(self, job_id: str, provider_id: str | None = None) -> GenerationJob:
        adapter = self.resolve(ContentType.VIDEO, provider_id)
        return await self._call(adapter, adapter.get_video_job_status(job_id))

    async def cancel_video_job(self, job_id: str, provider_id: str | None = None) -> bool:
        adapter = self.resolve(ContentType.VIDEO, provider_id)
        return await self._call(adapter, adapter.cancel_video_job(job_id))

    async def generate_video_and_wait(
        self,
        request: VideoGenerationRequest,
        provider_id: str | None = None,
        on_progress: ProgressCallback | None = None,
        *,
        timeout: float | None = None,
        poll_interval: float | None = None,
    ) -> GenerationJob:
        adapter = self.resolve(ContentType.VIDEO, provider_id)
        job = await self._call(
            adapter,
            adapter.generate_video_and_wait(request, on_progress, timeout=timeout, poll_interval=poll_interval),
        )
        self.store.record_usage(adapter.config.id, ContentType.VIDEO, self._video_usage(adapter, request))
        return job

    # ── Cost & recommendation ───────────────────────────

    def estimate_cost(
        self,
        content_type: ContentType | str,
        usage: UsageParams | dict | None = None,
        provider_id: str | None = None,
    ) -> float:
        """Estimated USD cost with the resolved provider; 0.0 when nothing resolves."""
        adapter = None
        if provider_id and provider_id in self.store:
            adapter = self.store.get_adapter(provider_id)
        if adapter is None:
            adapter = self.store.get_adapter_for_type(content_type)
        if adapter is None:
            candidates = self.store.providers_for_type(content_type)
            adapter = self.store.get_adapter(candidates[0].id) if candidates else None
        if adapter is None:
            return 0.0
        return adapter.estimate_cost(content_type, usage)

    def recommend_provider(
        self, content_type: ContentType | str, requirements: ProviderRequirements | None = None
    ) -> str | None:
        """Cheapest active provider meeting ``requirements``.

        Falls back to the first active candidate when none meets them, and
        returns None only when no active provider declares the content type.
        """
        candidates = self.store.active_providers(content_type)
        if not candidates:
            return None
        requirements = requirements or ProviderRequirements()

        def capability(state: ProviderState):
            return state.config.capability_for(content_type)

        filtered = candidates
        if requirements.streaming:
            filtered = [s for s in filtered if capability(s).supports_streaming]
        if requirements.min_tokens:
            filtered = [
                s
                for s in filtered
                if capability(s).max_tokens is None or capability(s).max_tokens >= requirements.min_tokens
            ]
        if requirements.max_cost is not None:
            filtered = [
                s
                for s in filtered
                if capability(s).cost_per_unit is not None and capability(s).cost_per_unit <= requirements.max_cost
            ]

        filtered.sort(key=lambda s: float("inf") if capability(s).cost_per_unit is None else capability(s).cost_per_unit)
        return (filtered[0] if filtered else candidates[0]).id

    # ── Introspection ───────────────────────────────────

    def has_provider_for_type(self, content_type: ContentType | str) -> bool:
        return bool(self.store.active_providers(content_type))

    def models_for_type(self, content_type: ContentType | str) -> list[dict]:
        models = []
        for state in self.store.active_providers(content_type):
            for model in state.config.capability_for(content_type).models:
                models.append({"model": model, "provider_id": state.id, "provider_name": state.config.display_name})
        return models

    async def check_provider_status(self, provider_id: str) -> ProviderStatus:
        """Re-validate one provider's credential and return its resulting status."""
        state = self.store.get_state(provider_id)
        if state.credential is None or not state.credential.api_key:
            return self.store.set_provider_status(provider_id, ProviderStatus.INACTIVE).status
        await self.store.validate_credential(provider_id)
        return self.store.get_state(provider_id).status

    async def check_all_provider_statuses(self) -> dict[str, ProviderStatus]:
        ids = [state.id for state in self.store.providers()]
        statuses = await asyncio.gather(*(self.check_provider_status(provider_id) for provider_id in ids))
        return dict(zip(ids, statuses))

    def status_summary(self) -> dict[str, int]:
        summary = {"total": 0, **{status.value: 0 for status in ProviderStatus}}
        for state in self.store.providers():
            summary["total"] += 1
            summary[state.status.value] += 1
        return summary
