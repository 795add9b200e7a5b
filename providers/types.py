"""Capability model and request/response value types shared by every adapter."""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import TYPE_CHECKING, Any, Literal

if TYPE_CHECKING:
    from providers.errors import ProviderError


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def new_id() -> str:
    return str(uuid.uuid4())


class ContentType(str, Enum):
    TEXT = "text"
    IMAGE = "image"
    VIDEO = "video"


class ProviderType(str, Enum):
    """Closed set of vendors with an adapter implementation."""

    OPENAI = "openai"
    ANTHROPIC = "anthropic"
    GEMINI = "gemini"
    KIMI = "kimi"
    OPENROUTER = "openrouter"
    FLUX_PRO = "flux-pro"
    IMAGEN = "imagen"
    RUNWAY = "runway"
    VEO = "veo"


class ProviderStatus(str, Enum):
    INACTIVE = "inactive"
    VALIDATING = "validating"
    ACTIVE = "active"
    ERROR = "error"
    RATE_LIMITED = "rate-limited"


class JobStatus(str, Enum):
    QUEUED = "queued"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (JobStatus.COMPLETED, JobStatus.FAILED)


FinishReason = Literal["stop", "length", "content_filter", "error"]


# ── Capabilities & configuration ────────────────────────


@dataclass(frozen=True)
class ProviderCapability:
    """What a vendor can do for one content type. Declared by the adapter class."""

    content_type: ContentType
    models: tuple[str, ...]
    max_tokens: int | None = None
    max_resolution: str | None = None
    supports_streaming: bool = False
    supports_batching: bool = False
    supports_async_jobs: bool = False
    cost_per_unit: float | None = None  # per 1M input tokens (text), per image, per video second
    rate_limit_per_minute: int | None = None


@dataclass
class ProviderConfig:
    id: str
    provider_type: ProviderType
    display_name: str
    description: str = ""
    capabilities: list[ProviderCapability] = field(default_factory=list)
    is_active: bool = True
    is_default: bool = False
    api_base_url: str | None = None  # Overrides the adapter's vendor URL (proxies, tests)
    metadata: dict[str, Any] = field(default_factory=dict)
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)

    def capability_for(self, content_type: ContentType | str) -> ProviderCapability | None:
        for capability in self.capabilities:
            if capability.content_type == content_type:
                return capability
        return None

    def declares(self, content_type: ContentType | str) -> bool:
        return self.capability_for(content_type) is not None


@dataclass
class ProviderCredential:
    provider_id: str
    api_key: str
    id: str = field(default_factory=new_id)
    organization_id: str | None = None
    expires_at: datetime | None = None
    last_validated: datetime | None = None
    created_at: datetime = field(default_factory=utcnow)


@dataclass
class ProviderUsage:
    """Running usage totals for one provider since ``period_start``."""

    text_tokens_in: int = 0
    text_tokens_out: int = 0
    images_generated: int = 0
    video_seconds_generated: float = 0.0
    estimated_cost_usd: float = 0.0
    period_start: datetime = field(default_factory=utcnow)


@dataclass
class ProviderState:
    """Live aggregate managed by the store. Config and credential are durable; the rest is derived."""

    config: ProviderConfig
    credential: ProviderCredential | None = None
    status: ProviderStatus = ProviderStatus.INACTIVE
    last_error: ProviderError | None = None
    usage: ProviderUsage | None = None

    @property
    def id(self) -> str:
        return self.config.id


# ── Requests & responses ────────────────────────────────


@dataclass
class TextGenerationRequest:
    user_prompt: str
    model: str = ""  # Empty = adapter default
    system_prompt: str | None = None
    max_tokens: int | None = None
    temperature: float | None = None
    top_p: float | None = None
    stop_sequences: list[str] | None = None


@dataclass
class TextGenerationResponse:
    content: str
    model: str
    input_tokens: int = 0
    output_tokens: int = 0
    finish_reason: FinishReason = "stop"
    provider_request_id: str | None = None


@dataclass
class ImageGenerationRequest:
    prompt: str
    model: str = ""
    negative_prompt: str | None = None
    width: int | None = None
    height: int | None = None
    seed: int | None = None
    guidance_scale: float | None = None
    num_images: int | None = None
    style: str | None = None


@dataclass
class GeneratedImage:
    url: str  # Remote URL or data: URL
    base64: str | None = None
    revised_prompt: str | None = None


@dataclass
class ImageGenerationResponse:
    images: list[GeneratedImage]
    model: str
    provider_request_id: str | None = None


@dataclass
class VideoGenerationRequest:
    prompt: str
    model: str = ""
    image_url: str | None = None  # For image-to-video
    duration: float | None = None  # seconds, snapped to vendor-supported values
    aspect_ratio: str | None = None
    seed: int | None = None


@dataclass
class GenerationJob:
    """Vendor-side asynchronous unit of work, advanced only by polling."""

    job_id: str
    status: JobStatus = JobStatus.QUEUED
    progress: float | None = None  # 0-100
    estimated_time_remaining_ms: float | None = None
    result_url: str | None = None
    error: ProviderError | None = None


VideoGenerationJob = GenerationJob


@dataclass
class UsageParams:
    """Usage figures fed to cost estimation."""

    input_tokens: int | None = None
    output_tokens: int | None = None
    image_count: int | None = None
    video_seconds: float | None = None


@dataclass
class ProviderRequirements:
    streaming: bool = False
    min_tokens: int | None = None
    max_cost: float | None = None


# ── Streaming ───────────────────────────────────────────


@dataclass
class StreamChunk:
    """One element of a token stream: token, metadata, complete or error."""

    type: Literal["token", "metadata", "complete", "error"]
    content: str | None = None
    metadata: dict[str, Any] | None = None
    error: ProviderError | None = None

    @classmethod
    def token(cls, content: str) -> StreamChunk:
        return cls(type="token", content=content)

    @classmethod
    def meta(cls, **fields: Any) -> StreamChunk:
        return cls(type="metadata", metadata=fields)

    @classmethod
    def complete(cls) -> StreamChunk:
        return cls(type="complete")

    @classmethod
    def failed(cls, error: ProviderError) -> StreamChunk:
        return cls(type="error", error=error)

    @property
    def is_terminal(self) -> bool:
        return self.type in ("complete", "error")
