"""GitHub webhook receiver."""

import json
from typing import Any

import structlog
from fastapi import APIRouter, Depends, Header, HTTPException, Request, status

from ris_collector.api.dependencies import get_registry, get_webhook_queue
from ris_collector.api.models import ErrorResponse, WebhookAck
from ris_collector.config.settings import get_settings
from ris_collector.libraries.registry import LibraryRegistry
from ris_collector.observability.metrics import get_metrics
from ris_collector.webhooks.queue import WebhookQueue
from ris_collector.webhooks.schemas import (
    InvalidWebhookPayload,
    WebhookEventType,
    build_event,
    decode_installation,
)
from ris_collector.webhooks.signature import verify_signature

logger = structlog.get_logger(__name__)
router = APIRouter()

QUEUED_EVENT_TYPES = frozenset(t.value for t in WebhookEventType)
INSTALLATION_EVENT_TYPES = frozenset({"installation", "installation_repositories"})


@router.post(
    "/webhooks/github",
    response_model=WebhookAck,
    responses={
        400: {"model": ErrorResponse, "description": "Body is not a JSON object"},
        401: {"model": ErrorResponse, "description": "Invalid signature"},
        422: {"model": ErrorResponse, "description": "Malformed event payload"},
        500: {"model": ErrorResponse, "description": "Webhook secret not configured"},
    },
    summary="Receive GitHub webhook",
    description=(
        "Verifies X-Hub-Signature-256, then queues push, pull_request, issues "
        "and release events for approved repositories. Installation events "
        "update the installation registry."
    ),
)
async def github_webhook(
    request: Request,
    x_github_event: str | None = Header(default=None),
    x_github_delivery: str | None = Header(default=None),
    x_hub_signature_256: str | None = Header(default=None),
    queue: WebhookQueue = Depends(get_webhook_queue),
    registry: LibraryRegistry = Depends(get_registry),
) -> WebhookAck:
    secret = get_settings().github_webhook_secret
    if not secret:
        logger.error("GITHUB_WEBHOOK_SECRET is not configured")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Webhook secret not configured",
        )

    body = await request.body()
    if not verify_signature(body, x_hub_signature_256, secret):
        logger.warning("Invalid webhook signature", delivery_id=x_github_delivery)
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid signature",
        )

    try:
        payload = json.loads(body)
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Body is not valid JSON",
        )
    if not isinstance(payload, dict):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Body must be a JSON object",
        )

    event_type = x_github_event or ""
    log = logger.bind(event_type=event_type, delivery_id=x_github_delivery)
    ack = WebhookAck(event_type=event_type, delivery_id=x_github_delivery)

    if event_type == "ping":
        log.info("Webhook ping received", zen=payload.get("zen"))
        return ack

    try:
        if event_type in INSTALLATION_EVENT_TYPES:
            await _handle_installation(payload, queue, registry, log)
            return ack

        if event_type not in QUEUED_EVENT_TYPES:
            log.debug("Ignoring unhandled webhook event")
            ack.message = "event type ignored"
            return ack

        event = build_event(event_type, x_github_delivery or "", payload)
    except InvalidWebhookPayload as e:
        log.warning("Rejected malformed webhook", error=str(e))
        get_metrics().record_webhook_event(event_type, "rejected")
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=str(e),
        )

    if not await registry.is_approved(event.key):
        log.info("Repository not approved, ignoring webhook", repository=str(event.key))
        ack.message = "repository not approved - ignored"
        return ack

    ack.queued = await queue.enqueue(event)
    get_metrics().record_webhook_event(event_type, "queued" if ack.queued else "duplicate")
    if not ack.queued:
        ack.message = "duplicate delivery"
    return ack


async def _handle_installation(
    payload: dict[str, Any],
    queue: WebhookQueue,
    registry: LibraryRegistry,
    log: structlog.stdlib.BoundLogger,
) -> None:
    installation = decode_installation(payload)
    action = installation.action

    if action in ("created", "added"):
        added = installation.repositories + installation.repositories_added
        for repository in added:
            repo = repository.key
            if await registry.is_approved(repo):
                await queue.track_installation(repo, installation.installation.id)
            else:
                log.info("Installed on unapproved repository", repository=str(repo))
    elif action in ("deleted", "removed"):
        removed = installation.repositories + installation.repositories_removed
        for repository in removed:
            await queue.remove_installation(repository.key)
    else:
        log.debug("Ignoring installation action", action=action)
