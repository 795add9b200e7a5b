"""FastAPI routes for provider management and generation."""

import json
import logging
from dataclasses import asdict
from typing import Optional

from fastapi import APIRouter, HTTPException, Request
from fastapi.responses import JSONResponse, StreamingResponse
from pydantic import BaseModel, Field

from providers.errors import ErrorCode, ProviderError
from providers.factory import PROVIDER_META
from providers.llm.openrouter import OpenRouterAdapter
from providers.service import ProviderService
from providers.storage import ProviderRepository
from providers.types import (
    ContentType,
    GenerationJob,
    ImageGenerationRequest,
    ProviderRequirements,
    ProviderState,
    StreamChunk,
    TextGenerationRequest,
    UsageParams,
    VideoGenerationRequest,
)

logger = logging.getLogger(__name__)
router = APIRouter()

# These get set by main.py at startup
_service: ProviderService | None = None
_repository: ProviderRepository | None = None


def set_service(service: ProviderService, repository: ProviderRepository | None = None):
    global _service, _repository
    _service = service
    _repository = repository


def _get_service() -> ProviderService:
    if _service is None:
        raise HTTPException(503, "Provider service not running")
    return _service


async def _persist():
    if _repository is not None and _service is not None:
        await _service.store.save_to(_repository)


# ── Error mapping ───────────────────────────────────────

HTTP_STATUS = {
    ErrorCode.PROVIDER_NOT_FOUND: 404,
    ErrorCode.NOT_FOUND: 404,
    ErrorCode.NO_CREDENTIALS: 400,
    ErrorCode.UNSUPPORTED_OPERATION: 400,
    ErrorCode.CONFIGURATION_ERROR: 400,
    ErrorCode.NO_PROVIDER_AVAILABLE: 503,
    ErrorCode.RATE_LIMITED: 429,
    ErrorCode.TIMEOUT: 504,
}


async def provider_error_handler(request: Request, exc: ProviderError) -> JSONResponse:
    status = HTTP_STATUS.get(exc.code, 502)
    if status >= 500:
        logger.warning("%s %s failed: %s", request.method, request.url.path, exc)
    headers = {"Retry-After": str(int(exc.retry_after))} if exc.retry_after is not None else None
    return JSONResponse(status_code=status, content=exc.to_dict(), headers=headers)


# ── Serialization ───────────────────────────────────────

def _provider_dict(state: ProviderState) -> dict:
    config = state.config
    adapter = _get_service().store.get_adapter(config.id)
    return {
        "id": config.id,
        "provider_type": config.provider_type.value,
        "display_name": config.display_name,
        "description": config.description,
        "status": state.status.value,
        "is_active": config.is_active,
        "is_default": config.is_default,
        "has_credential": state.credential is not None,
        "supports_streaming": adapter.supports_streaming(),
        "supports_async_jobs": adapter.supports_async_jobs(),
        "last_validated": state.credential.last_validated.isoformat()
        if state.credential and state.credential.last_validated
        else None,
        "last_error": state.last_error.to_dict() if state.last_error else None,
        "capabilities": [
            {**asdict(c), "content_type": c.content_type.value, "models": list(c.models)} for c in config.capabilities
        ],
        "metadata": config.metadata,
        "usage": {**asdict(state.usage), "period_start": state.usage.period_start.isoformat()}
        if state.usage
        else None,
        "created_at": config.created_at.isoformat(),
        "updated_at": config.updated_at.isoformat(),
    }


def _job_dict(job: GenerationJob) -> dict:
    return {
        "job_id": job.job_id,
        "status": job.status.value,
        "progress": job.progress,
        "estimated_time_remaining_ms": job.estimated_time_remaining_ms,
        "result_url": job.result_url,
        "error": job.error.to_dict() if job.error else None,
    }


def _chunk_event(chunk: StreamChunk) -> str:
    data = {"type": chunk.type}
    if chunk.content is not None:
        data["content"] = chunk.content
    if chunk.metadata is not None:
        data["metadata"] = chunk.metadata
    if chunk.error is not None:
        data["error"] = chunk.error.to_dict()
    return f"data: {json.dumps(data)}\n\n"


# ── Pydantic models ─────────────────────────────────────

class ProviderCreate(BaseModel):
    provider_type: str
    api_key: Optional[str] = None
    organization_id: Optional[str] = None
    display_name: Optional[str] = None
    metadata: Optional[dict] = None


class ProviderUpdate(BaseModel):
    display_name: Optional[str] = None
    description: Optional[str] = None
    is_active: Optional[bool] = None
    metadata: Optional[dict] = None


class CredentialUpdate(BaseModel):
    api_key: str
    organization_id: Optional[str] = None


class DefaultUpdate(BaseModel):
    provider_id: str


class TextBody(BaseModel):
    user_prompt: str
    model: str = ""
    system_prompt: Optional[str] = None
    max_tokens: Optional[int] = None
    temperature: Optional[float] = None
    top_p: Optional[float] = None
    stop_sequences: Optional[list[str]] = None
    provider_id: Optional[str] = None
    stream: bool = False


class ImageBody(BaseModel):
    prompt: str
    model: str = ""
    negative_prompt: Optional[str] = None
    width: Optional[int] = None
    height: Optional[int] = None
    seed: Optional[int] = None
    guidance_scale: Optional[float] = None
    num_images: Optional[int] = None
    style: Optional[str] = None
    provider_id: Optional[str] = None


class VideoBody(BaseModel):
    prompt: str
    model: str = ""
    image_url: Optional[str] = None
    duration: Optional[float] = None
    aspect_ratio: Optional[str] = None
    seed: Optional[int] = None
    provider_id: Optional[str] = None
    wait: bool = False


class CostBody(BaseModel):
    content_type: ContentType
    input_tokens: Optional[int] = None
    output_tokens: Optional[int] = None
    image_count: Optional[int] = None
    video_seconds: Optional[float] = None
    provider_id: Optional[str] = None


class RecommendBody(BaseModel):
    content_type: ContentType
    streaming: bool = False
    min_tokens: Optional[int] = Field(default=None, gt=0)
    max_cost: Optional[float] = Field(default=None, ge=0)


# ── Providers ───────────────────────────────────────────

@router.get("/providers/catalogue")
async def get_catalogue():
    """Every supported vendor, for provider selection."""
    return [
        {
            "provider_type": meta.provider_type.value,
            "display_name": meta.display_name,
            "description": meta.description,
            "requires_api_key": meta.requires_api_key,
            "docs_url": meta.docs_url,
            "content_types": [ct.value for ct in meta.content_types],
        }
        for meta in PROVIDER_META.values()
    ]


@router.get("/providers")
async def list_providers():
    return [_provider_dict(state) for state in _get_service().store.providers()]


@router.get("/providers/status")
async def get_status_summary():
    return _get_service().status_summary()


@router.post("/providers/check")
async def check_all_providers():
    """Re-validate every provider's credential."""
    statuses = await _get_service().check_all_provider_statuses()
    await _persist()
    return {provider_id: status.value for provider_id, status in statuses.items()}


@router.post("/providers")
async def register_provider(body: ProviderCreate):
    service = _get_service()
    provider_id = await service.store.register_provider(
        body.provider_type,
        body.api_key,
        organization_id=body.organization_id,
        display_name=body.display_name,
        metadata=body.metadata,
    )
    await _persist()
    return _provider_dict(service.store.get_state(provider_id))


@router.get("/providers/{provider_id}")
async def get_provider(provider_id: str):
    return _provider_dict(_get_service().store.get_state(provider_id))


@router.patch("/providers/{provider_id}")
async def update_provider(provider_id: str, body: ProviderUpdate):
    state = _get_service().store.update_provider(provider_id, **body.model_dump(exclude_none=True))
    await _persist()
    return _provider_dict(state)


@router.delete("/providers/{provider_id}")
async def remove_provider(provider_id: str):
    _get_service().store.remove_provider(provider_id)
    await _persist()
    return {"status": "removed", "id": provider_id}


@router.put("/providers/{provider_id}/credential")
async def set_credential(provider_id: str, body: CredentialUpdate):
    service = _get_service()
    valid = await service.store.set_credential(provider_id, body.api_key, body.organization_id)
    await _persist()
    return {"valid": valid, "provider": _provider_dict(service.store.get_state(provider_id))}


@router.delete("/providers/{provider_id}/credential")
async def clear_credential(provider_id: str):
    state = _get_service().store.clear_credential(provider_id)
    await _persist()
    return _provider_dict(state)


@router.post("/providers/{provider_id}/validate")
async def validate_provider(provider_id: str):
    service = _get_service()
    valid = await service.store.validate_credential(provider_id)
    await _persist()
    return {"valid": valid, "status": service.store.get_state(provider_id).status.value}


@router.get("/providers/{provider_id}/models")
async def get_provider_models(provider_id: str, content_type: Optional[ContentType] = None):
    """Models a provider offers; OpenRouter lists its live catalogue."""
    adapter = _get_service().store.get_adapter(provider_id)
    if isinstance(adapter, OpenRouterAdapter):
        return [m.get("id") for m in await adapter.fetch_available_models(content_type)]
    if content_type is None:
        return sorted({model for c in adapter.capabilities() for model in c.models})
    return adapter.models_for(content_type)


# ── Defaults ────────────────────────────────────────────

@router.get("/defaults")
async def get_defaults():
    return {ct.value: provider_id for ct, provider_id in _get_service().store.defaults.items()}


@router.put("/defaults/{content_type}")
async def set_default(content_type: ContentType, body: DefaultUpdate):
    _get_service().store.set_default_provider(content_type, body.provider_id)
    await _persist()
    return {"content_type": content_type.value, "provider_id": body.provider_id}


@router.delete("/defaults/{content_type}")
async def clear_default(content_type: ContentType):
    _get_service().store.clear_default_provider(content_type)
    await _persist()
    return {"content_type": content_type.value, "provider_id": None}


@router.get("/models/{content_type}")
async def get_models_for_type(content_type: ContentType):
    return _get_service().models_for_type(content_type)


# ── Generation ──────────────────────────────────────────

@router.post("/generate/text")
async def generate_text(body: TextBody):
    """Generate text; with ``stream`` set, respond with server-sent events."""
    service = _get_service()
    request = TextGenerationRequest(**body.model_dump(exclude={"provider_id", "stream"}))

    if body.stream:
        # Resolve up front so a missing provider is a normal error response
        service.resolve(ContentType.TEXT, body.provider_id)

        async def events():
            try:
                async for chunk in service.stream_text(request, body.provider_id):
                    yield _chunk_event(chunk)
            except ProviderError as e:
                yield _chunk_event(StreamChunk.failed(e))

        return StreamingResponse(events(), media_type="text/event-stream")

    response = await service.generate_text(request, body.provider_id)
    return asdict(response)


@router.post("/generate/image")
async def generate_image(body: ImageBody):
    request = ImageGenerationRequest(**body.model_dump(exclude={"provider_id"}))
    response = await _get_service().generate_image(request, body.provider_id)
    return asdict(response)


@router.post("/generate/video")
async def generate_video(body: VideoBody):
    """Submit a video job; with ``wait`` set, block until it finishes."""
    service = _get_service()
    request = VideoGenerationRequest(**body.model_dump(exclude={"provider_id", "wait"}))
    if body.wait:
        job = await service.generate_video_and_wait(request, body.provider_id)
    else:
        job = await service.submit_video_job(request, body.provider_id)
    return _job_dict(job)


@router.get("/video/{provider_id}/jobs/{job_id:path}")
async def get_video_job(provider_id: str, job_id: str):
    return _job_dict(await _get_service().get_video_job_status(job_id, provider_id))


@router.post("/video/{provider_id}/cancel/{job_id:path}")
async def cancel_video_job(provider_id: str, job_id: str):
    cancelled = await _get_service().cancel_video_job(job_id, provider_id)
    return {"job_id": job_id, "cancelled": cancelled}


# ── Cost & recommendation ───────────────────────────────

@router.post("/cost")
async def estimate_cost(body: CostBody):
    usage = UsageParams(**body.model_dump(exclude={"content_type", "provider_id"}))
    cost = _get_service().estimate_cost(body.content_type, usage, body.provider_id)
    return {"content_type": body.content_type.value, "estimated_cost_usd": cost}


@router.post("/recommend")
async def recommend_provider(body: RecommendBody):
    requirements = ProviderRequirements(
        streaming=body.streaming, min_tokens=body.min_tokens, max_cost=body.max_cost
    )
    provider_id = _get_service().recommend_provider(body.content_type, requirements)
    return {"content_type": body.content_type.value, "provider_id": provider_id}
