"""Webhook queue configuration."""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class WebhookConfig(BaseSettings):
    """
    Configuration for webhook queueing and processing.

    All settings can be overridden via environment variables prefixed with WEBHOOK_.

    Example:
        WEBHOOK_PROCESSED_TTL_SECONDS=86400
        WEBHOOK_DRAIN_INTERVAL_SECONDS=10
    """

    model_config = SettingsConfigDict(
        env_prefix="WEBHOOK_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    processed_ttl_seconds: int = Field(
        default=604800,
        ge=60,
        description="How long processed event ids are remembered (7 days).",
    )
    error_history_size: int = Field(
        default=100,
        ge=1,
        description="Number of processing errors kept for inspection.",
    )
    drain_interval_seconds: float = Field(default=30.0, gt=0.0)
    max_events_per_drain: int = Field(default=100, ge=1)
