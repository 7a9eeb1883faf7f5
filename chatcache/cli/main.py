"""Command-line interface for chatcache."""

import asyncio
import json
import logging
import sys

import click
import uvicorn

from chatcache import __version__
from chatcache.core.config import settings
from chatcache.core.exceptions import ChatCacheError
from chatcache.observability.logging import configure_logging
from chatcache.utils.service_factory import create_services

logger = logging.getLogger(__name__)


@click.group()
def cli() -> None:
    """chatcache - cache-aside chat message layer."""
    pass


@cli.command()
@click.option("--host", default=settings.api_host, help="Host to bind to", show_default=True)
@click.option(
    "--port", default=settings.api_port, type=int, help="Port to bind to", show_default=True
)
@click.option("--reload", is_flag=True, help="Enable auto-reload for development")
@click.option(
    "--log-level",
    default=settings.log_level.lower(),
    type=click.Choice(["debug", "info", "warning", "error"]),
    help="Logging level",
    show_default=True,
)
def serve(host: str, port: int, reload: bool, log_level: str) -> None:
    """Start the chatcache service (health and admin endpoints)."""
    configure_logging(level=log_level, is_production=settings.is_production)
    logger.info(f"Starting chatcache service on {host}:{port}")

    uvicorn.run(
        "chatcache.api.app:create_app",
        factory=True,
        host=host,
        port=port,
        reload=reload,
        log_level=log_level,
    )


@cli.command()
@click.option("--json", "output_json", is_flag=True, help="Output the report as JSON")
def reconcile(output_json: bool) -> None:
    """Run one reconciliation pass and print its report."""
    configure_logging(level="WARNING")

    async def execute() -> int:
        services = await create_services()
        try:
            if services.job is None:
                click.echo("Message cache is disabled, nothing to reconcile", err=True)
                return 1
            report = await services.job.trigger_sync_now()
        finally:
            await services.lifecycle_manager().shutdown()

        if output_json:
            click.echo(json.dumps(report.to_dict(), indent=2))
        else:
            click.echo(f"Candidates:        {report.candidates}")
            click.echo(f"Users synced:      {report.users_synced}")
            click.echo(f"Users failed:      {report.users_failed}")
            click.echo(f"Messages inserted: {report.messages_inserted}")
            for user_id, error in report.failures.items():
                click.echo(f"  {user_id}: {error}")
        return 1 if report.failures else 0

    try:
        code = asyncio.run(execute())
    except ChatCacheError as e:
        logger.error(f"Reconciliation failed: {e}")
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)
    sys.exit(code)


@cli.command()
@click.argument("user_id")
def warm(user_id: str) -> None:
    """Load USER_ID's recent messages into the cache."""
    configure_logging(level="WARNING")

    async def execute() -> bool:
        services = await create_services()
        try:
            if not services.cache_enabled:
                click.echo("Message cache is disabled, nothing to warm", err=True)
                return False
            await services.repository.warm_cache(user_id)
            return True
        finally:
            await services.lifecycle_manager().shutdown()

    try:
        warmed = asyncio.run(execute())
    except ChatCacheError as e:
        logger.error(f"Warm-up failed: {e}")
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)
    if not warmed:
        sys.exit(1)
    click.echo(f"Warmed cache for {user_id}")


@cli.command()
def version() -> None:
    """Show version information."""
    click.echo(f"chatcache v{__version__}")


if __name__ == "__main__":
    cli()
