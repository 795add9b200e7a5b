"""Kimi K2.5 (Moonshot AI), served through OpenRouter's OpenAI-compatible API."""

from config import settings
from providers.llm.openai_compat import ChatCompletionsAdapter
from providers.types import ContentType, ProviderCapability, ProviderType


class KimiAdapter(ChatCompletionsAdapter):
    provider_type = ProviderType.KIMI
    display_name = "Kimi K2.5"
    description = "256K context window, excellent for long documents and agent orchestration"
    base_url = "https://openrouter.ai/api/v1"
    capability_set = (
        ProviderCapability(
            content_type=ContentType.TEXT,
            models=("moonshotai/kimi-k2.5",),
            max_tokens=256000,
            supports_streaming=True,
            supports_batching=True,
            cost_per_unit=0.12,
            rate_limit_per_minute=100,
        ),
    )

    input_cost_per_million = 0.12
    output_cost_per_million = 0.12

    default_text_model = "moonshotai/kimi-k2.5"

    def extra_headers(self) -> dict[str, str]:
        # OpenRouter attribution
        return {"HTTP-Referer": settings.app_url, "X-Title": settings.app_title}
