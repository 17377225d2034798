"""Configuration management using Pydantic Settings."""

import logging
from functools import lru_cache
from typing import Literal

from pydantic import SecretStr, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )

    # Supabase Configuration
    SUPABASE_URL: str = ""
    SUPABASE_SERVICE_ROLE_KEY: SecretStr = SecretStr("")

    # Redis response cache
    REDIS_URL: str = ""
    REDIS_HOST: str = "localhost"
    REDIS_PORT: int = 6379
    CACHE_BACKEND: Literal["redis", "memory"] = "redis"
    CACHE_TTL_SECONDS: int = 3600

    # OpenRouter (template generation)
    OPENROUTER_API_KEY: SecretStr = SecretStr("")
    OPENROUTER_BASE_URL: str = "https://openrouter.ai/api/v1"
    LLM_MODELS: str = (
        "openrouter/openai/gpt-4-turbo,"
        "openrouter/anthropic/claude-3.5-sonnet,"
        "openrouter/google/gemini-pro-1.5"
    )
    LLM_TEMPERATURE: float = 0.8

    # Draft auto-save windows
    DRAFT_LOCAL_SAVE_DEBOUNCE_SECONDS: float = 2.0
    DRAFT_REMOTE_SYNC_DEBOUNCE_SECONDS: float = 10.0

    # Application Settings
    APP_ENV: Literal["development", "staging", "production"] = "development"
    APP_URL: str = "http://localhost:3000"

    # Logging
    LOG_FORMAT: Literal["text", "json"] = "text"
    LOG_LEVEL: str = "INFO"

    # CORS Configuration
    CORS_ORIGINS: str = "http://localhost:3000"

    @field_validator("SUPABASE_URL")
    @classmethod
    def validate_supabase_url(cls, v: str) -> str:
        """Validate that SUPABASE_URL is a valid URL."""
        if v and not v.startswith(("http://", "https://")):
            raise ValueError("SUPABASE_URL must start with http:// or https://")
        return v.rstrip("/") if v else v

    @field_validator("REDIS_URL")
    @classmethod
    def validate_redis_url(cls, v: str) -> str:
        """Validate that REDIS_URL uses a redis scheme."""
        if v and not v.startswith(("redis://", "rediss://", "unix://")):
            raise ValueError("REDIS_URL must start with redis://, rediss:// or unix://")
        return v

    @property
    def cors_origins_list(self) -> list[str]:
        """Get CORS origins as a list."""
        return [origin.strip() for origin in self.CORS_ORIGINS.split(",") if origin.strip()]

    @property
    def llm_models_list(self) -> list[str]:
        """Get the LLM fallback chain as an ordered list."""
        return [model.strip() for model in self.LLM_MODELS.split(",") if model.strip()]

    @property
    def is_production(self) -> bool:
        """Check if running in production mode."""
        return self.APP_ENV == "production"

    def validate_startup(self) -> None:
        """Validate that required secrets are configured.

        Missing secrets are fatal in production and logged elsewhere.

        Raises:
            ValueError: If a required secret is missing in production.
        """
        required_secrets = {
            "SUPABASE_URL": self.SUPABASE_URL,
            "SUPABASE_SERVICE_ROLE_KEY": self.SUPABASE_SERVICE_ROLE_KEY.get_secret_value(),
            "OPENROUTER_API_KEY": self.OPENROUTER_API_KEY.get_secret_value(),
        }
        missing = [name for name, value in required_secrets.items() if not value]
        if not missing:
            return
        if self.is_production:
            raise ValueError(f"Required secrets are missing or empty: {', '.join(missing)}")
        logger.warning("Secrets not configured: %s", ", ".join(missing))


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance.

    Returns:
        Settings instance with validated configuration.

    Raises:
        ValueError: If required secrets are missing in production.
    """
    settings = Settings()
    settings.validate_startup()
    return settings


settings = get_settings()
