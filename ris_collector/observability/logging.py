"""
Structured logging configuration using structlog.

Provides JSON-formatted logs for production and pretty console
logs for development. The collectors, tracker and store log through
stdlib ``logging``; their records are routed through the same structlog
processors, so a repository or source bound for a collection pass shows
up on every line the pass produces, whichever layer wrote it.
"""

import logging
import sys
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any

import structlog
from structlog.types import EventDict, Processor, WrappedLogger

from ris_collector.config.settings import get_settings

# Event keys whose values never reach a log sink
CREDENTIAL_KEYS = frozenset(
    {"token", "github_token", "webhook_secret", "signature", "authorization", "api_key"}
)


def redact_credentials(
    logger: WrappedLogger, method_name: str, event_dict: EventDict
) -> EventDict:
    """Mask GitHub tokens, webhook secrets and API keys bound to an event."""
    for key in CREDENTIAL_KEYS.intersection(event_dict):
        event_dict[key] = "***"
    return event_dict


def setup_logging() -> None:
    """
    Configure structured logging for the application.

    In production: JSON-formatted logs (easy to parse in log aggregators)
    In development: Pretty console output with colors

    Usage:
        setup_logging()
        with collection_context("acme/widgets", mode="refresh"):
            logger.info("Collecting")
    """
    settings = get_settings()

    shared_processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
        redact_credentials,
    ]

    renderer: list[Processor]
    if settings.is_production:
        renderer = [
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ]
    else:
        renderer = [structlog.dev.ConsoleRenderer(colors=True)]

    structlog.configure(
        processors=shared_processors + [structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            foreign_pre_chain=shared_processors,
            processors=[structlog.stdlib.ProcessorFormatter.remove_processors_meta, *renderer],
        )
    )
    logging.basicConfig(
        handlers=[handler],
        level=getattr(logging, settings.log_level),
        force=True,
    )

    # Set log levels for noisy libraries
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("asyncio").setLevel(logging.WARNING)


@contextmanager
def collection_context(repository: str, **kwargs: Any) -> Iterator[None]:
    """
    Bind a repository (plus e.g. pass mode or source) for a block.

    Bindings live in context variables, so concurrent source groups each
    see their own ``source`` while sharing the pass's ``repository``.
    """
    with structlog.contextvars.bound_contextvars(repository=repository, **kwargs):
        yield


def bind_context(**kwargs: Any) -> None:
    """
    Bind context variables to all subsequent log messages.

    Used for request and webhook delivery ids in the HTTP API.
    """
    structlog.contextvars.bind_contextvars(**kwargs)


def clear_context() -> None:
    """Clear all bound context variables."""
    structlog.contextvars.clear_contextvars()
