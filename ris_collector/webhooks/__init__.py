"""Webhook ingestion: queue, processor and payload schemas."""

from ris_collector.webhooks.config import WebhookConfig
from ris_collector.webhooks.processor import WebhookProcessor
from ris_collector.webhooks.queue import WebhookQueue
from ris_collector.webhooks.schemas import (
    InvalidWebhookPayload,
    WebhookEvent,
    WebhookEventType,
    build_event,
    decode_payload,
)
from ris_collector.webhooks.signature import verify_signature

__all__ = [
    "InvalidWebhookPayload",
    "WebhookConfig",
    "WebhookEvent",
    "WebhookEventType",
    "WebhookProcessor",
    "WebhookQueue",
    "build_event",
    "decode_payload",
    "verify_signature",
]
