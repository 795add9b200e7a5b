"""Text (and chat-model image) adapters: OpenAI, Anthropic, Gemini, Kimi, OpenRouter."""

from providers.llm.anthropic import AnthropicAdapter
from providers.llm.gemini import GeminiAdapter
from providers.llm.kimi import KimiAdapter
from providers.llm.openai import OpenAIAdapter
from providers.llm.openrouter import OpenRouterAdapter

__all__ = ["AnthropicAdapter", "GeminiAdapter", "KimiAdapter", "OpenAIAdapter", "OpenRouterAdapter"]
