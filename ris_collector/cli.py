"""
Command-line interface for ris-collector.

Provides commands to collect repositories, run retry and refresh passes,
drain the webhook queue, inspect collection state and run the long-lived
worker and API server.

Usage:
    ris-collector collect acme/widgets       # Baseline or resume one repository
    ris-collector retry --limit 10           # Process due retries
    ris-collector refresh                    # Refresh every approved library
    ris-collector process-webhooks           # Drain the webhook queue
    ris-collector stats                      # Show collection statistics
    ris-collector worker                     # Run the scheduler loops
    ris-collector serve                      # Run the API server
"""

import asyncio
import json
import signal
import sys
from collections.abc import Awaitable, Callable
from typing import Any, TypeVar

import click

from ris_collector.config.settings import get_settings
from ris_collector.context import PipelineContext
from ris_collector.libraries.schemas import RepositoryKey
from ris_collector.observability.logging import setup_logging
from ris_collector.observability.metrics import get_metrics

T = TypeVar("T")


def _run(operation: Callable[[PipelineContext], Awaitable[T]]) -> T:
    """Run one coroutine against a freshly started pipeline context."""

    async def runner() -> T:
        async with PipelineContext() as ctx:
            return await operation(ctx)

    return asyncio.run(runner())


def _parse_repository(value: str) -> RepositoryKey:
    try:
        return RepositoryKey.parse(value)
    except ValueError as e:
        raise click.BadParameter(str(e))


def _echo_json(data: Any) -> None:
    click.echo(json.dumps(data, indent=2, default=str))


@click.group()
@click.option("--debug", is_flag=True, help="Enable debug logging")
def main(debug: bool) -> None:
    """RIS Collector - Resumable repository activity collection."""
    if debug:
        import os
        os.environ["LOG_LEVEL"] = "DEBUG"
        get_settings.cache_clear()

    setup_logging()


@main.command()
@click.argument("repository")
@click.option("--force", is_flag=True, help="Reinitialize state and re-fetch everything")
@click.option("--no-resume", is_flag=True, help="Target all sources, not just unfinished ones")
@click.option("--library-name", default=None, help="Display name for a new snapshot")
def collect(repository: str, force: bool, no_resume: bool, library_name: str | None) -> None:
    """Collect one repository (OWNER/REPO)."""
    repo = _parse_repository(repository)

    async def run(ctx: PipelineContext):
        return await ctx.orchestrator.collect(
            repo, library_name=library_name, force=force, resume=not no_resume
        )

    result = _run(run)
    _echo_json(result.to_dict())

    if not result.success:
        click.echo(click.style(f"Collection failed: {result.error}", fg="red"))
        sys.exit(1)
    if result.is_partial:
        failed = ", ".join(s.value for s in result.failed_sources)
        click.echo(click.style(f"Partial collection, failed sources: {failed}", fg="yellow"))


@main.command()
@click.option("--limit", default=None, type=int, help="Maximum repositories to retry")
def retry(limit: int | None) -> None:
    """Resume repositories whose retry time has passed."""
    summary = _run(lambda ctx: ctx.scheduler.process_retries(limit))
    _echo_json(summary)


@main.command()
def refresh() -> None:
    """Refresh every approved library incrementally."""
    summary = _run(lambda ctx: ctx.scheduler.refresh_all())
    _echo_json(summary)


@main.command("process-webhooks")
@click.option("--max", "max_events", default=100, help="Maximum events to process")
def process_webhooks(max_events: int) -> None:
    """Drain queued webhook events into snapshots."""
    processed = _run(lambda ctx: ctx.webhook_processor.process_all(max_events))
    click.echo(f"Processed {processed} webhook event(s)")


@main.command()
def stats() -> None:
    """Show retry backlog, failures and approved library count."""

    async def run(ctx: PipelineContext) -> dict[str, Any]:
        return {
            **await ctx.scheduler.get_stats(),
            "webhook_queue_length": await ctx.webhook_queue.queue_length(),
            "github_credentials": ctx.github_pool.size,
        }

    _echo_json(_run(run))


@main.command()
@click.option("--limit", default=50, help="Maximum repositories to list")
def failed(limit: int) -> None:
    """List repositories with failed sources, most recent first."""
    states = _run(lambda ctx: ctx.tracker.get_failed_collections(limit))

    if not states:
        click.echo("No failed collections")
        return

    click.echo(f"\n{len(states)} repositories with failures:")
    click.echo("-" * 60)
    for state in states:
        failed_sources = ", ".join(s.value for s in state.failed_sources()) or "-"
        next_retry = state.next_retry_at.isoformat() if state.next_retry_at else "-"
        click.echo(
            f"  {state.repository}: {state.completed_count}/8 complete, "
            f"failed [{failed_sources}], next retry {next_retry}"
        )


@main.command()
@click.argument("repository")
def reset(repository: str) -> None:
    """Return failed sources of OWNER/REPO to pending."""
    repo = _parse_repository(repository)
    state = _run(lambda ctx: ctx.tracker.reset_failed_sources(repo))
    if state is None:
        click.echo(click.style(f"No collection state for {repo}", fg="red"))
        sys.exit(1)
    click.echo(click.style(f"Reset failed sources for {repo}", fg="green"))


@main.command()
@click.argument("repository")
@click.option("--months", default=12, help="Rolling window in months")
def metrics(repository: str, months: int) -> None:
    """Show derived metrics for OWNER/REPO."""
    repo = _parse_repository(repository)
    derived = _run(lambda ctx: ctx.orchestrator.get_derived_metrics(repo, months))
    if derived is None:
        click.echo(click.style(f"No data yet for {repo}", fg="yellow"))
        sys.exit(1)
    _echo_json(derived.model_dump(mode="json"))


@main.command()
@click.option("--metrics/--no-metrics", "expose_metrics", default=True, help="Enable metrics server")
@click.option("--metrics-port", default=None, type=int, help="Metrics server port")
def worker(expose_metrics: bool, metrics_port: int | None) -> None:
    """Run the retry, refresh and webhook-drain loops."""
    from ris_collector.services.scheduler_service import SchedulerService

    async def run():
        async with PipelineContext() as ctx:
            service = SchedulerService(
                ctx.scheduler,
                ctx.webhook_processor,
                collection_config=ctx.collection_config,
                webhook_config=ctx.webhook_config,
            )

            if expose_metrics:
                get_metrics().start_server(port=metrics_port)

            # Handle shutdown signals
            loop = asyncio.get_event_loop()
            for sig in (signal.SIGTERM, signal.SIGINT):
                loop.add_signal_handler(sig, lambda: asyncio.create_task(service.stop()))

            await service.start()

    asyncio.run(run())


@main.command()
@click.option("--host", default=None, help="API server host")
@click.option("--port", default=None, type=int, help="API server port")
@click.option("--reload", is_flag=True, help="Enable auto-reload (dev only)")
@click.option("--metrics-port", default=None, type=int, help="Metrics server port")
def serve(host: str | None, port: int | None, reload: bool, metrics_port: int | None) -> None:
    """Start the API server."""
    import uvicorn

    settings = get_settings()
    host = host or settings.api_host
    port = port or settings.api_port
    metrics_port = metrics_port or settings.metrics_port

    get_metrics().start_server(port=metrics_port)

    click.echo(f"Starting API server on {host}:{port}")
    click.echo(f"Metrics available on http://localhost:{metrics_port}/metrics")
    click.echo(f"API docs available on http://localhost:{port}/docs")

    uvicorn.run(
        "ris_collector.api.app:create_app",
        factory=True,
        host=host,
        port=port,
        reload=reload,
        log_level="info",
    )


@main.command()
def health() -> None:
    """Check connectivity to Redis and credential configuration."""

    async def check(ctx: PipelineContext) -> dict[str, bool]:
        return {
            "redis": await ctx.store.health_check(),
            "github_configured": ctx.settings.github_configured,
            "webhook_secret_configured": bool(ctx.settings.github_webhook_secret),
        }

    results = _run(check)

    click.echo("\nHealth Check Results:")
    click.echo("-" * 40)
    for name, status in results.items():
        icon = "✓" if status else "✗"
        color = "green" if status else "red"
        click.echo(click.style(f"  {icon} {name}: {status}", fg=color))
    click.echo("-" * 40)

    if not results["redis"]:
        click.echo(click.style("Redis unreachable!", fg="red"))
        sys.exit(1)
    click.echo(click.style("State store healthy!", fg="green"))


if __name__ == "__main__":
    main()
