"""Adapter registry: maps each vendor type to its adapter class and UI metadata."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING

from config import Settings, settings as default_settings
from providers.base import BaseAdapter
from providers.errors import ConfigurationError, ProviderError
from providers.image.flux import FluxProAdapter
from providers.image.imagen import ImagenAdapter
from providers.llm.anthropic import AnthropicAdapter
from providers.llm.gemini import GeminiAdapter
from providers.llm.kimi import KimiAdapter
from providers.llm.openai import OpenAIAdapter
from providers.llm.openrouter import OpenRouterAdapter
from providers.types import ContentType, ProviderConfig, ProviderCredential, ProviderType
from providers.video.runway import RunwayAdapter
from providers.video.veo import VeoAdapter

if TYPE_CHECKING:
    from providers.store import ProviderStore

logger = logging.getLogger(__name__)

ADAPTERS: dict[ProviderType, type[BaseAdapter]] = {
    ProviderType.OPENAI: OpenAIAdapter,
    ProviderType.ANTHROPIC: AnthropicAdapter,
    ProviderType.GEMINI: GeminiAdapter,
    ProviderType.KIMI: KimiAdapter,
    ProviderType.OPENROUTER: OpenRouterAdapter,
    ProviderType.FLUX_PRO: FluxProAdapter,
    ProviderType.IMAGEN: ImagenAdapter,
    ProviderType.RUNWAY: RunwayAdapter,
    ProviderType.VEO: VeoAdapter,
}

_missing = set(ProviderType) - set(ADAPTERS)
if _missing:
    raise RuntimeError(f"No adapter registered for: {', '.join(sorted(t.value for t in _missing))}")


@dataclass(frozen=True)
class ProviderMeta:
    """Static vendor information for selection UIs."""

    provider_type: ProviderType
    display_name: str
    description: str
    requires_api_key: bool
    docs_url: str
    content_types: tuple[ContentType, ...]


PROVIDER_META: dict[ProviderType, ProviderMeta] = {
    meta.provider_type: meta
    for meta in (
        ProviderMeta(
            ProviderType.OPENAI,
            "OpenAI",
            "GPT-4o for text, DALL-E 3 for images",
            True,
            "https://platform.openai.com/docs",
            (ContentType.TEXT, ContentType.IMAGE),
        ),
        ProviderMeta(
            ProviderType.ANTHROPIC,
            "Anthropic",
            "Claude 4 models for advanced reasoning",
            True,
            "https://docs.anthropic.com",
            (ContentType.TEXT,),
        ),
        ProviderMeta(
            ProviderType.GEMINI,
            "Google Gemini",
            "Gemini 3/2.5 Pro & Flash for text, reasoning, and image generation",
            True,
            "https://ai.google.dev/gemini-api/docs",
            (ContentType.TEXT, ContentType.IMAGE),
        ),
        ProviderMeta(
            ProviderType.KIMI,
            "Kimi K2",
            "256K context, excellent for long documents and reasoning",
            True,
            "https://platform.moonshot.cn/docs",
            (ContentType.TEXT,),
        ),
        ProviderMeta(
            ProviderType.OPENROUTER,
            "OpenRouter",
            "Access 100+ AI models with one API key - OpenAI, Anthropic, Google, and more",
            True,
            "https://openrouter.ai/docs",
            (ContentType.TEXT, ContentType.IMAGE),
        ),
        ProviderMeta(
            ProviderType.FLUX_PRO,
            "Flux Pro",
            "High-quality images with great text rendering",
            True,
            "https://docs.bfl.ml",
            (ContentType.IMAGE,),
        ),
        ProviderMeta(
            ProviderType.IMAGEN,
            "Google Imagen",
            "Photorealistic image generation from Google",
            True,
            "https://cloud.google.com/vertex-ai/generative-ai/docs/image/generate-images",
            (ContentType.IMAGE,),
        ),
        ProviderMeta(
            ProviderType.RUNWAY,
            "Runway Gen-4",
            "Professional video with motion control",
            True,
            "https://docs.runwayml.com",
            (ContentType.VIDEO,),
        ),
        ProviderMeta(
            ProviderType.VEO,
            "Google Veo",
            "Veo 3 - video generation with native audio and sound",
            True,
            "https://cloud.google.com/vertex-ai/generative-ai/docs/video/overview",
            (ContentType.VIDEO,),
        ),
    )
}


def resolve_provider_type(value: ProviderType | str) -> ProviderType:
    """Parse a vendor tag, raising ConfigurationError for anything unknown."""
    try:
        return ProviderType(value)
    except ValueError:
        raise ConfigurationError(f"No adapter found for provider type: {value}") from None


def adapter_class(provider_type: ProviderType | str) -> type[BaseAdapter]:
    return ADAPTERS[resolve_provider_type(provider_type)]


def supported_provider_types() -> list[ProviderType]:
    return list(ADAPTERS)


def get_provider_meta(provider_type: ProviderType | str) -> ProviderMeta:
    return PROVIDER_META[resolve_provider_type(provider_type)]


def create_adapter(
    config: ProviderConfig,
    credential: ProviderCredential | None = None,
    **kwargs,
) -> BaseAdapter:
    """Instantiate the adapter for ``config.provider_type``.

    Extra keyword arguments (``client``, ``retry_policy``, ``timeout``) are
    passed through to the adapter. Never returns None.
    """
    cls = adapter_class(config.provider_type)
    return cls(config, credential, **kwargs)


# ── Bootstrapping from settings ─────────────────────────


def configured_api_keys(settings: Settings) -> dict[ProviderType, str]:
    """API keys present in settings, by vendor. One Google key serves Gemini, Imagen and Veo."""
    keys = {
        ProviderType.OPENAI: settings.openai_api_key,
        ProviderType.ANTHROPIC: settings.anthropic_api_key,
        ProviderType.GEMINI: settings.google_api_key,
        ProviderType.IMAGEN: settings.google_api_key,
        ProviderType.VEO: settings.google_api_key,
        ProviderType.KIMI: settings.kimi_api_key,
        ProviderType.OPENROUTER: settings.openrouter_api_key,
        ProviderType.FLUX_PRO: settings.bfl_api_key,
        ProviderType.RUNWAY: settings.runway_api_key,
    }
    return {provider_type: key for provider_type, key in keys.items() if key}


async def register_configured_providers(
    store: ProviderStore,
    settings: Settings | None = None,
    *,
    validate: bool | None = None,
) -> list[str]:
    """Register every vendor with a key in settings, then apply configured defaults.

    Vendors already present in the store (e.g. loaded from the database)
    only get their credential filled in when they have none. Returns the
    ids of providers created or updated.
    """
    settings = settings or default_settings
    validate = settings.validate_on_startup if validate is None else validate
    touched = []

    for provider_type, api_key in configured_api_keys(settings).items():
        organization_id = None
        if provider_type == ProviderType.OPENAI:
            organization_id = settings.openai_organization_id or None
        existing = store.find_by_type(provider_type)

        if existing is None:
            provider_id = await store.register_provider(
                provider_type, api_key, organization_id=organization_id, validate=validate
            )
            touched.append(provider_id)
        elif existing.credential is None:
            await store.set_credential(existing.id, api_key, organization_id, validate=validate)
            touched.append(existing.id)

    for content_type, configured in (
        (ContentType.TEXT, settings.default_text_provider),
        (ContentType.IMAGE, settings.default_image_provider),
        (ContentType.VIDEO, settings.default_video_provider),
    ):
        if not configured:
            continue
        try:
            state = store.find_by_type(resolve_provider_type(configured))
            if state is None:
                logger.warning("Default %s provider %s is not registered", content_type.value, configured)
                continue
            store.set_default_provider(content_type, state.id)
        except ProviderError as e:
            logger.warning("Cannot use %s as default %s provider: %s", configured, content_type.value, e.message)

    logger.info("Registered %d provider(s) from settings", len(touched))
    return touched
