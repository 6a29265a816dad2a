"""
FastAPI application factory.
"""

import time
import uuid
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from ris_collector.api.routes import collection, health, webhooks
from ris_collector.context import PipelineContext
from ris_collector.observability.logging import bind_context, clear_context

logger = structlog.get_logger(__name__)


def create_app(context: PipelineContext | None = None) -> FastAPI:
    """
    Create and configure the FastAPI application.

    Args:
        context: Pre-built pipeline context (tests). Built from settings when
            omitted. Either way it is started and closed by the lifespan.

    Returns:
        Configured FastAPI application
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("Collection API starting up")
        pipeline = context or PipelineContext()
        await pipeline.start()
        app.state.context = pipeline

        yield

        logger.info("Collection API shutting down")
        await pipeline.close()
        app.state.context = None

    openapi_tags = [
        {"name": "health", "description": "Service health checks"},
        {"name": "webhooks", "description": "GitHub webhook ingress"},
        {"name": "collection", "description": "Collection operations and derived metrics"},
    ]

    app = FastAPI(
        title="Repository Activity Collector API",
        description="""
Collects repository activity and ecosystem statistics and serves derived metrics.

## Authentication

Operator endpoints require an `X-API-KEY` header when `API_KEYS` is set.
`/webhooks/github` is authenticated by its HMAC signature instead.
        """,
        version="0.1.0",
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
        openapi_tags=openapi_tags,
    )

    # Request logging and correlation ID
    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        request_id = (
            request.headers.get("X-Request-ID")
            or request.headers.get("X-GitHub-Delivery")
            or str(uuid.uuid4())
        )
        bind_context(request_id=request_id)
        start_time = time.perf_counter()

        try:
            response = await call_next(request)
            duration = time.perf_counter() - start_time
            response.headers["X-Request-ID"] = request_id
            logger.info(
                "HTTP request",
                method=request.method,
                path=request.url.path,
                status_code=response.status_code,
                duration_ms=round(duration * 1000, 2),
            )
            return response
        finally:
            clear_context()

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception):
        logger.error(f"Unhandled exception: {exc}", exc_info=True)
        return JSONResponse(
            status_code=500,
            content={"detail": "Internal server error", "error_type": "internal"},
        )

    app.include_router(health.router, tags=["health"])
    app.include_router(webhooks.router, tags=["webhooks"])
    app.include_router(collection.router, tags=["collection"])

    @app.get("/", include_in_schema=False)
    async def root():
        return {
            "service": "Repository Activity Collector API",
            "version": "0.1.0",
            "docs": "/docs",
        }

    return app
