"""Settings configuration for the DevLink AI routing engine."""

from pydantic_settings import BaseSettings
from pydantic import Field, ConfigDict
from dotenv import load_dotenv
from typing import Optional

# Load environment variables from .env file
load_dotenv()


class Settings(BaseSettings):
    """Application settings with environment variable support."""

    model_config = ConfigDict(
        env_file=".env", env_file_encoding="utf-8", case_sensitive=False, extra="ignore"
    )

    # Direct provider (OpenAI)
    openai_api_key: Optional[str] = Field(
        default=None, description="OpenAI API key (gpt-* models are disabled without it)"
    )
    openai_base_url: str = Field(
        default="https://api.openai.com/v1", description="Base URL for the OpenAI API"
    )

    # Aggregator provider (OpenRouter)
    openrouter_api_key: Optional[str] = Field(
        default=None, description="OpenRouter API key (aggregated models are disabled without it)"
    )
    openrouter_base_url: str = Field(
        default="https://openrouter.ai/api/v1", description="Base URL for the OpenRouter API"
    )
    openrouter_app_url: Optional[str] = Field(
        default=None, description="App URL for OpenRouter analytics (optional)"
    )
    openrouter_app_title: Optional[str] = Field(
        default="DevLink AI", description="App title for OpenRouter tracking (optional)"
    )

    provider_timeout_seconds: float = Field(
        default=60.0, gt=0, description="Per-call timeout for upstream chat completions"
    )

    # Response cache
    ai_cache_ttl_seconds: int = Field(
        default=3600, ge=1, description="TTL for cached AI responses (exact repeats only)"
    )

    # Application Settings
    app_env: str = Field(default="development", description="Application environment")
    log_level: str = Field(default="INFO", description="Logging level")

    # Redis (Optional - shared counter store; in-process counters without it)
    redis_url: Optional[str] = Field(
        default=None, description="Redis connection URL (redis://localhost:6379/0)"
    )
    redis_key_prefix: str = Field(default="devlink:", description="Redis key namespace prefix")

    # CORS
    cors_origins: list[str] = Field(
        default_factory=lambda: ["http://localhost:3000"], description="CORS allowed origins"
    )


def load_settings() -> Settings:
    """Load settings with proper error handling."""
    try:
        return Settings()
    except Exception as e:
        raise ValueError(f"Failed to load settings: {e}") from e
