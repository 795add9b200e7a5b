"""Configuration via pydantic-settings. Reads from .env or environment."""

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    # ===== DEFAULT PROVIDER PER CONTENT TYPE =====
    # Vendor types (e.g. "anthropic", "imagen", "veo"); empty = first active provider
    default_text_provider: str = ""
    default_image_provider: str = ""
    default_video_provider: str = ""

    # ===== OPENAI (Text + Image) =====
    openai_api_key: str = ""
    openai_organization_id: str = ""

    # ===== ANTHROPIC (Text) =====
    anthropic_api_key: str = ""

    # ===== GOOGLE (Gemini text/image, Imagen, Veo) =====
    google_api_key: str = ""

    # ===== KIMI / OPENROUTER (Text, aggregator) =====
    kimi_api_key: str = ""
    openrouter_api_key: str = ""
    app_url: str = "http://localhost:8001"  # Sent as HTTP-Referer to OpenRouter
    app_title: str = "Content Studio"  # Sent as X-Title to OpenRouter

    # ===== BLACK FOREST LABS (Flux image) =====
    bfl_api_key: str = ""

    # ===== RUNWAY (Video) =====
    runway_api_key: str = ""

    # ===== HTTP / RETRY =====
    http_timeout: float = 60.0  # seconds per request
    retry_max_attempts: int = 3
    retry_base_delay: float = 1.0  # seconds, doubled per attempt
    retry_max_delay: float = 30.0
    retry_jitter: bool = False

    # ===== SYSTEM =====
    validate_on_startup: bool = True  # Check configured credentials when the app starts
    database_url: str = "sqlite+aiosqlite:///./providers.db"
    log_level: str = "INFO"
    port: int = 8001


settings = Settings()
