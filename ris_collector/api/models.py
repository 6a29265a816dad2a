"""
Request and response models for the collection API.
"""

from typing import Any, Literal

from pydantic import BaseModel, Field

from ris_collector.state.schemas import CollectionState


class ErrorResponse(BaseModel):
    """Error body returned by failing endpoints."""

    detail: str
    error_type: str | None = None


class ComponentHealth(BaseModel):
    status: Literal["healthy", "unhealthy"]
    latency_ms: float | None = None
    details: dict[str, Any] | None = None


class HealthResponse(BaseModel):
    status: Literal["healthy", "unhealthy"]
    components: dict[str, ComponentHealth] = Field(default_factory=dict)
    webhook_queue_length: int | None = None
    version: str = "0.1.0"


class WebhookAck(BaseModel):
    """Acknowledgement sent back to GitHub for every accepted delivery."""

    success: bool = True
    event_type: str
    delivery_id: str | None = None
    received: bool = True
    queued: bool = False
    message: str | None = None


class CollectionResponse(BaseModel):
    success: bool
    owner: str
    repo: str
    is_partial: bool
    is_complete: bool
    failed_sources: list[str]
    error: str | None = None
    data_age_seconds: float | None = None
    metrics_calculated: bool = False
    skipped: bool = False


class FailedCollectionsResponse(BaseModel):
    total: int
    collections: list[CollectionState]


class StatusResponse(BaseModel):
    pending_retries: int
    total_failed: int
    approved_count: int
    webhook_queue_length: int
    installations: int


class RetryResponse(BaseModel):
    attempted: int
    succeeded: int
    partial: int
    failed: int


class ProcessWebhooksResponse(BaseModel):
    processed: int
    remaining: int
