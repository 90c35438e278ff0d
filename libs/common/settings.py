"""Application settings for the FAQ support bot."""

from __future__ import annotations

from functools import lru_cache
from typing import Literal

from pydantic import AliasChoices, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from ``FAQBOT_*`` environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="FAQBOT_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Core application settings
    app_env: Literal["development", "staging", "production", "test"] = "development"
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"
    debug: bool = False

    # CORS - use string to avoid JSON parsing issues
    cors_origins_str: str = Field(
        default="http://localhost:3000",
        validation_alias=AliasChoices("faqbot_cors_origins", "cors_origins"),
    )

    @property
    def cors_origins(self) -> list[str]:
        """Parse CORS origins from string."""
        if not self.cors_origins_str.strip():
            return ["http://localhost:3000"]
        return [origin.strip() for origin in self.cors_origins_str.split(",") if origin.strip()]

    # Routing thresholds (similarity in [0, 1])
    direct_threshold: float = Field(default=0.8, ge=0.0, le=1.0)
    synthesis_threshold: float = Field(default=0.5, ge=0.0, le=1.0)
    context_threshold: float = Field(default=0.4, ge=0.0, le=1.0)
    search_match_threshold: float = Field(default=0.5, ge=0.0, le=1.0)
    search_limit: int = Field(default=3, ge=1)
    history_window: int = Field(default=4, ge=0)

    # Conversation memory
    max_session_messages: int = Field(default=10, ge=1)
    session_idle_minutes: int = Field(default=60, ge=1)
    session_sweep_minutes: int = Field(default=30, ge=1)
    use_redis_backing: bool = False
    redis_url: str | None = None

    # Supabase (FAQ corpus + query logs)
    supabase_url: str | None = None
    supabase_key: str | None = None
    supabase_timeout_seconds: float = 5.0

    # Embeddings
    embedding_model: str = "sentence-transformers/all-MiniLM-L6-v2"
    embedding_dimensions: int = 384
    embedding_device: str = "cpu"

    # LLM synthesis
    llm_api_key: str | None = None
    llm_base_url: str = "https://generativelanguage.googleapis.com/v1beta/openai/"
    llm_model: str = "gemini-2.0-flash"
    llm_temperature: float = 0.3
    llm_max_tokens: int = 300
    llm_timeout_seconds: float = 30.0
    llm_daily_limit: int = Field(default=500, ge=0)
    llm_failure_threshold: int = Field(default=5, ge=1)
    llm_cooldown_seconds: float = 300.0
    llm_max_query_chars: int = 500
    llm_max_context_chars: int = 4000
    llm_max_output_chars: int = 2000

    # Rate limiting
    search_rate_limit: int = 10
    search_rate_window_seconds: int = 60

    @field_validator("synthesis_threshold")
    @classmethod
    def validate_synthesis_threshold(cls, v: float, info) -> float:
        """Synthesis tier must sit below the direct tier."""
        direct = info.data.get("direct_threshold", 0.8)
        if v > direct:
            raise ValueError("synthesis_threshold must not exceed direct_threshold")
        return v

    @property
    def is_development(self) -> bool:
        """Check if running in development mode."""
        return self.app_env == "development"

    @property
    def is_production(self) -> bool:
        """Check if running in production mode."""
        return self.app_env == "production"

    @property
    def supabase_configured(self) -> bool:
        return bool(self.supabase_url and self.supabase_key)


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
