"""
Health check endpoint.
"""

import time

import structlog
from fastapi import APIRouter, Depends

from ris_collector.api.dependencies import get_context
from ris_collector.api.models import ComponentHealth, HealthResponse
from ris_collector.context import PipelineContext

router = APIRouter()
logger = structlog.get_logger(__name__)


async def _check_redis(context: PipelineContext) -> ComponentHealth:
    """Ping Redis and measure latency."""
    start = time.perf_counter()
    healthy = await context.store.health_check()
    latency_ms = (time.perf_counter() - start) * 1000
    return ComponentHealth(
        status="healthy" if healthy else "unhealthy",
        latency_ms=round(latency_ms, 2),
    )


@router.get(
    "/health",
    response_model=HealthResponse,
    summary="Service health check",
    description="Check the health of the service and the state store.",
)
async def health_check(
    context: PipelineContext = Depends(get_context),
) -> HealthResponse:
    redis_health = await _check_redis(context)
    components = {
        "redis": redis_health,
        "github_pool": ComponentHealth(
            status="healthy" if context.github_pool.available_count else "unhealthy",
            details={
                "size": context.github_pool.size,
                "available": context.github_pool.available_count,
            },
        ),
    }

    queue_length = None
    if redis_health.status == "healthy":
        queue_length = await context.webhook_queue.queue_length()

    return HealthResponse(
        status=redis_health.status,
        components=components,
        webhook_queue_length=queue_length,
    )
