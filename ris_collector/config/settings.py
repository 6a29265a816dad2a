"""Application settings using Pydantic Settings for environment-based configuration."""

from functools import lru_cache
from typing import Literal

from pydantic import Field, RedisDsn
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Central configuration for the ris-collector application.

    All settings can be overridden via environment variables.
    Prefix is not used to allow standard env var names (e.g., REDIS_URL, GITHUB_TOKEN).
    Collection and webhook tuning live in their own prefixed config classes.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Environment
    environment: Literal["development", "staging", "production"] = "development"
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"
    debug: bool = False

    # Redis (state store for collection state, snapshots, webhook queue)
    redis_url: RedisDsn = Field(default="redis://localhost:6379/0")

    # GitHub credentials (comma-separated for multiple tokens with rotation)
    github_token: str | None = None
    github_tokens: str | None = None
    github_webhook_secret: str | None = None

    # Rate limits per upstream API (requests per minute)
    github_rate_limit: int = Field(default=60, ge=1)
    npm_rate_limit: int = Field(default=60, ge=1)
    jsdelivr_rate_limit: int = Field(default=30, ge=1)
    ossf_rate_limit: int = Field(default=30, ge=1)

    # HTTP retry configuration
    max_http_retries: int = Field(default=3, ge=0, le=10)
    max_backoff_seconds: float = Field(default=60.0, ge=1.0, le=300.0)
    http_timeout_seconds: float = Field(default=30.0, gt=0.0)

    # API
    api_host: str = "0.0.0.0"
    api_port: int = 8001
    api_keys: str | None = None  # Comma-separated operator API keys

    # Observability
    metrics_port: int = 8000

    @property
    def is_production(self) -> bool:
        """Check if running in production environment."""
        return self.environment == "production"

    @property
    def github_token_list(self) -> list[str]:
        """All configured GitHub tokens, rotation tokens first."""
        tokens: list[str] = []
        for raw in (self.github_tokens, self.github_token):
            if not raw:
                continue
            for token in raw.split(","):
                token = token.strip()
                if token and token not in tokens:
                    tokens.append(token)
        return tokens

    @property
    def github_configured(self) -> bool:
        """Check if at least one GitHub token is configured."""
        return bool(self.github_token_list)


@lru_cache
def get_settings() -> Settings:
    """
    Get cached settings instance.

    Uses lru_cache to ensure settings are loaded only once.
    Clear cache with get_settings.cache_clear() if needed.
    """
    return Settings()
