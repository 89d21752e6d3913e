"""Configuration for the Career Counsel chat service."""

from functools import lru_cache

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Chat service configuration."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Server settings
    host: str = Field(default="0.0.0.0", description="Server host")
    port: int = Field(default=8003, description="Server port")
    reload: bool = Field(default=False, description="Enable auto-reload in development")
    log_level: str = Field(
        default="INFO", description="Logging level (DEBUG, INFO, WARNING, ERROR)"
    )

    # Database
    database_url: str = Field(
        default="sqlite+aiosqlite:///./counsel.db",
        description="Database connection string (postgresql+asyncpg in production)",
    )

    # Security
    secret_key: str = Field(
        default="change-me",
        description="Secret key for JWT signing and encryption",
    )
    token_lifetime_seconds: int = Field(
        default=3600, description="Lifetime of issued access tokens"
    )

    # AI completion service
    openai_api_key: str = Field(
        default="",
        validation_alias=AliasChoices("OPENAI_API_KEY", "LLM_API_KEY"),
        description="API key for the completion service",
    )
    openai_base_url: str | None = Field(
        default=None,
        validation_alias=AliasChoices("OPENAI_BASE_URL", "LLM_API_BASE"),
        description="Base URL of an OpenAI-compatible completion endpoint",
    )
    openai_model: str = Field(
        default="gpt-4o-mini",
        validation_alias=AliasChoices("OPENAI_MODEL", "LLM_MODEL"),
        description="Model used for counselor replies",
    )

    # Rate limiting (process-local, fixed window)
    rate_limit_window_seconds: int = Field(
        default=15 * 60, ge=1, description="Length of one rate-limit window"
    )
    rate_limit_max_requests: int = Field(
        default=200, ge=1, description="Requests admitted per identity per window"
    )
    scoped_window_seconds: int = Field(
        default=60, ge=1, description="Window of the per-user operation budgets"
    )
    message_rate_limit: int = Field(
        default=10, ge=1, description="Sends and regenerations per user per window"
    )
    session_rate_limit: int = Field(
        default=5, ge=1, description="Session mutations per user per window"
    )
    search_rate_limit: int = Field(
        default=20, ge=1, description="Searches per user per window"
    )
    trust_forwarded_for: bool = Field(
        default=False,
        description="Use the first X-Forwarded-For hop as client identity",
    )

    # Pagination
    max_page_size: int = Field(default=100, ge=1, description="Hard ceiling for limit")
    session_page_size: int = Field(default=20, ge=1, description="Default session page")
    message_page_size: int = Field(default=50, ge=1, description="Default message page")
    search_page_size: int = Field(default=20, ge=1, description="Default search results")
    context_window_size: int = Field(
        default=20, ge=1, description="Messages handed to the completion service"
    )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
