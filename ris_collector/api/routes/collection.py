"""Collection operator endpoints and the derived-metrics read endpoint."""

import structlog
from fastapi import APIRouter, Depends, HTTPException, Query, status

from ris_collector.activity.calculator import DerivedMetrics
from ris_collector.api.auth import verify_api_key
from ris_collector.api.dependencies import (
    get_orchestrator,
    get_scheduler,
    get_tracker,
    get_webhook_processor,
    get_webhook_queue,
)
from ris_collector.api.models import (
    CollectionResponse,
    ErrorResponse,
    FailedCollectionsResponse,
    ProcessWebhooksResponse,
    RetryResponse,
    StatusResponse,
)
from ris_collector.collection.orchestrator import CollectionOrchestrator
from ris_collector.collection.scheduler import CollectionScheduler
from ris_collector.libraries.schemas import RepositoryKey
from ris_collector.state.schemas import CollectionState
from ris_collector.state.tracker import CollectionStateTracker
from ris_collector.webhooks.processor import WebhookProcessor
from ris_collector.webhooks.queue import WebhookQueue

logger = structlog.get_logger(__name__)
router = APIRouter(prefix="/ris")


def _repository(owner: str, repo: str) -> RepositoryKey:
    try:
        return RepositoryKey(owner, repo)
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(e))


@router.get(
    "/metrics/{owner}/{repo}",
    response_model=DerivedMetrics,
    responses={404: {"model": ErrorResponse, "description": "No data yet"}},
    summary="Derived metrics for a repository",
    description=(
        "Rolling-window statistics computed from the latest snapshot. "
        "`is_partial` is true while some sources are still missing."
    ),
)
async def get_metrics(
    owner: str,
    repo: str,
    months: int = Query(default=12, ge=1, le=60),
    orchestrator: CollectionOrchestrator = Depends(get_orchestrator),
) -> DerivedMetrics:
    metrics = await orchestrator.get_derived_metrics(_repository(owner, repo), months)
    if metrics is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="No data yet")
    return metrics


@router.get("/status", response_model=StatusResponse, summary="Pipeline status")
async def get_status(
    _api_key: str = Depends(verify_api_key),
    scheduler: CollectionScheduler = Depends(get_scheduler),
    queue: WebhookQueue = Depends(get_webhook_queue),
) -> StatusResponse:
    stats = await scheduler.get_stats()
    return StatusResponse(
        **stats,
        webhook_queue_length=await queue.queue_length(),
        installations=len(await queue.get_installations()),
    )


@router.get(
    "/failed",
    response_model=FailedCollectionsResponse,
    summary="Repositories with failed sources",
)
async def get_failed(
    limit: int = Query(default=50, ge=1, le=500),
    _api_key: str = Depends(verify_api_key),
    tracker: CollectionStateTracker = Depends(get_tracker),
) -> FailedCollectionsResponse:
    states = await tracker.get_failed_collections(limit)
    return FailedCollectionsResponse(total=len(states), collections=states)


@router.post(
    "/collect/{owner}/{repo}",
    response_model=CollectionResponse,
    summary="Collect one repository",
)
async def collect(
    owner: str,
    repo: str,
    force: bool = Query(default=False),
    resume: bool = Query(default=True),
    _api_key: str = Depends(verify_api_key),
    orchestrator: CollectionOrchestrator = Depends(get_orchestrator),
) -> CollectionResponse:
    key = _repository(owner, repo)
    logger.info("Manual collection requested", repository=str(key), force=force, resume=resume)
    result = await orchestrator.collect(key, force=force, resume=resume)
    return CollectionResponse(**result.to_dict())


@router.post("/retry", response_model=RetryResponse, summary="Process due retries")
async def retry(
    limit: int | None = Query(default=None, ge=1, le=1000),
    _api_key: str = Depends(verify_api_key),
    scheduler: CollectionScheduler = Depends(get_scheduler),
) -> RetryResponse:
    return RetryResponse(**await scheduler.process_retries(limit))


@router.post(
    "/reset/{owner}/{repo}",
    response_model=CollectionState,
    responses={404: {"model": ErrorResponse, "description": "No collection state"}},
    summary="Reset failed sources to pending",
)
async def reset(
    owner: str,
    repo: str,
    _api_key: str = Depends(verify_api_key),
    tracker: CollectionStateTracker = Depends(get_tracker),
) -> CollectionState:
    state = await tracker.reset_failed_sources(_repository(owner, repo))
    if state is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="No collection state")
    return state


@router.post(
    "/process-webhooks",
    response_model=ProcessWebhooksResponse,
    summary="Drain the webhook queue",
)
async def process_webhooks(
    max_events: int = Query(default=100, ge=1, le=10000),
    _api_key: str = Depends(verify_api_key),
    processor: WebhookProcessor = Depends(get_webhook_processor),
    queue: WebhookQueue = Depends(get_webhook_queue),
) -> ProcessWebhooksResponse:
    processed = await processor.process_all(max_events)
    return ProcessWebhooksResponse(processed=processed, remaining=await queue.queue_length())
