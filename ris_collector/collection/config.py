"""
Collection pipeline configuration.

Tuning Guide:
    - lookback_months / max_items_per_source: bound the cost of a baseline
      for very active repositories. 24 months covers two metrics windows.
    - retention_years: must comfortably exceed metrics_window_months so the
      rolling window never reaches pruned history.
    - retry_delay_seconds / refresh_delay_seconds: spacing between
      repositories in batch passes; upstream quotas are shared by all of them.
    - rate_limit_floor: remaining GitHub quota below which multi-page fetches
      are refused up front instead of failing mid-page.
"""

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# Margin required between retention and the metrics window, in months
RETENTION_MARGIN_MONTHS = 6


class CollectionConfig(BaseSettings):
    """
    Configuration for baseline, incremental and retry collection.

    All settings can be overridden via environment variables prefixed with COLLECTION_.

    Example:
        COLLECTION_LOOKBACK_MONTHS=12
        COLLECTION_RETRY_BATCH_SIZE=25
    """

    model_config = SettingsConfigDict(
        env_prefix="COLLECTION_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Baseline bounds
    lookback_months: int = Field(
        default=24,
        ge=1,
        le=120,
        description="How far back a full fetch reaches.",
    )
    max_items_per_source: int = Field(
        default=1000,
        ge=1,
        description="Hard cap on items fetched per GitHub list source.",
    )

    # History
    retention_years: int = Field(
        default=3,
        ge=1,
        le=20,
        description="Items older than this are pruned from snapshots.",
    )
    metrics_window_months: int = Field(
        default=12,
        ge=1,
        le=60,
        description="Rolling window used for derived metrics.",
    )

    # Retry scheduling
    retry_backoff_cap_minutes: int = Field(
        default=60,
        ge=1,
        description="Upper bound of the per-source exponential backoff.",
    )
    retry_batch_size: int = Field(default=10, ge=1, le=1000)
    retry_delay_seconds: float = Field(
        default=2.0,
        ge=0.0,
        description="Spacing between repositories in a retry pass.",
    )
    refresh_delay_seconds: float = Field(
        default=3.0,
        ge=0.0,
        description="Spacing between repositories in a refresh pass.",
    )
    retry_interval_minutes: int = Field(default=15, ge=1)
    refresh_interval_days: int = Field(default=7, ge=1)

    # Quota
    rate_limit_floor: int = Field(
        default=100,
        ge=0,
        description="Minimum remaining GitHub quota before a multi-page fetch.",
    )

    @model_validator(mode="after")
    def _retention_covers_window(self) -> "CollectionConfig":
        if self.retention_years * 12 < self.metrics_window_months + RETENTION_MARGIN_MONTHS:
            raise ValueError(
                f"retention_years={self.retention_years} must cover "
                f"metrics_window_months={self.metrics_window_months} plus "
                f"{RETENTION_MARGIN_MONTHS} months"
            )
        return self
