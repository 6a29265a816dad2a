"""
Dependency injection for FastAPI endpoints.

The pipeline context is created by the application lifespan and stored on
``app.state``; endpoints pull their collaborators from it.
"""

from fastapi import HTTPException, Request, status

from ris_collector.collection.orchestrator import CollectionOrchestrator
from ris_collector.collection.scheduler import CollectionScheduler
from ris_collector.context import PipelineContext
from ris_collector.libraries.registry import LibraryRegistry
from ris_collector.state.tracker import CollectionStateTracker
from ris_collector.webhooks.processor import WebhookProcessor
from ris_collector.webhooks.queue import WebhookQueue


def get_context(request: Request) -> PipelineContext:
    context: PipelineContext | None = getattr(request.app.state, "context", None)
    if context is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Pipeline not initialized",
        )
    return context


def get_orchestrator(request: Request) -> CollectionOrchestrator:
    return get_context(request).orchestrator


def get_scheduler(request: Request) -> CollectionScheduler:
    return get_context(request).scheduler


def get_tracker(request: Request) -> CollectionStateTracker:
    return get_context(request).tracker


def get_registry(request: Request) -> LibraryRegistry:
    return get_context(request).registry


def get_webhook_queue(request: Request) -> WebhookQueue:
    return get_context(request).webhook_queue


def get_webhook_processor(request: Request) -> WebhookProcessor:
    return get_context(request).webhook_processor
