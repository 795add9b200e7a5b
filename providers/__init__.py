"""Provider abstraction layer for text, image, and video generation.

One adapter per vendor (OpenAI, Anthropic, Gemini, Kimi, OpenRouter,
Flux Pro, Imagen, Runway, Veo) behind a common interface, a store that
tracks registered providers and their credentials, and a service that
routes requests to the right provider per content type.
"""

from providers.base import BaseAdapter
from providers.errors import ConfigurationError, ErrorCode, ProviderError
from providers.factory import PROVIDER_META, create_adapter, register_configured_providers
from providers.service import ProviderService
from providers.store import ProviderStore
from providers.types import (
    ContentType,
    GenerationJob,
    ImageGenerationRequest,
    ImageGenerationResponse,
    JobStatus,
    ProviderStatus,
    ProviderType,
    StreamChunk,
    TextGenerationRequest,
    TextGenerationResponse,
    VideoGenerationRequest,
)

__all__ = [
    "BaseAdapter",
    "ConfigurationError",
    "ErrorCode",
    "ProviderError",
    "PROVIDER_META",
    "create_adapter",
    "register_configured_providers",
    "ProviderService",
    "ProviderStore",
    "ContentType",
    "GenerationJob",
    "ImageGenerationRequest",
    "ImageGenerationResponse",
    "JobStatus",
    "ProviderStatus",
    "ProviderType",
    "StreamChunk",
    "TextGenerationRequest",
    "TextGenerationResponse",
    "VideoGenerationRequest",
]
