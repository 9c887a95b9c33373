#!/usr/bin/env python3
"""
FeedMirror - Telegram Channel Feed Mirror
=========================================

Main application entry point with CLI interface for serving and testing.

Usage:
    python main.py --help                    # Show all commands
    python main.py check-config              # Validate configuration
    python main.py serve                     # Run the feed gateway
    python main.py fetch CHANNEL             # Build one channel's feed once
"""

import sys
import asyncio
import logging
from pathlib import Path

import click
from rich.console import Console
from rich.table import Table

# Add project root to Python path
sys.path.insert(0, str(Path(__file__).parent))

from feedmirror.app import build_components, serve as serve_gateway
from feedmirror.config.settings import get_settings
from feedmirror.utils.logging import configure_application_logging
from feedmirror.utils.exceptions import FeedMirrorError

console = Console()
logger = logging.getLogger(__name__)


def _configure_logging(settings, debug: bool) -> None:
    configure_application_logging(
        log_level="DEBUG" if debug else settings.get_effective_log_level(),
        log_file=settings.logging.file_path,
        enable_console=settings.logging.console_logging,
        structured_logging=settings.logging.structured_logging,
        max_file_size_mb=settings.logging.max_file_size_mb,
        backup_count=settings.logging.backup_count,
    )


@click.group(invoke_without_command=True)
@click.option('--debug', is_flag=True, help='Enable debug mode')
@click.pass_context
def cli(ctx, debug):
    """FeedMirror - RSS mirror for Telegram channels."""
    ctx.ensure_object(dict)
    ctx.obj['debug'] = debug

    if ctx.invoked_subcommand is None:
        click.echo(ctx.get_help())


@cli.command()
@click.pass_context
def check_config(ctx):
    """Validate configuration and environment variables."""
    console.print("[bold blue]🔧 Checking FeedMirror Configuration[/bold blue]")

    try:
        settings = get_settings()

        table = Table(title="Configuration Status")
        table.add_column("Component", style="cyan")
        table.add_column("Status", style="green")
        table.add_column("Details")

        checks = [
            ("Server", _check_server_config),
            ("Upstream", _check_upstream_config),
            ("Media Store", _check_media_config),
            ("Scheduler", _check_scheduler_config),
            ("Logging", _check_logging_config),
        ]

        all_passed = True
        for name, check_func in checks:
            try:
                status, details = check_func(settings)
                table.add_row(name, "✅ Valid" if status else "❌ Invalid", details)
                if not status:
                    all_passed = False
            except Exception as e:
                table.add_row(name, "❌ Error", str(e))
                all_passed = False

        console.print(table)

        if all_passed:
            console.print("[bold green]✅ All configuration checks passed![/bold green]")
            sys.exit(0)
        else:
            console.print("[bold red]❌ Configuration validation failed[/bold red]")
            sys.exit(1)

    except FeedMirrorError as e:
        console.print(f"[bold red]❌ Configuration error: {e}[/bold red]")
        sys.exit(1)


@cli.command()
@click.option('--host', default=None, help='Interface to bind (overrides settings)')
@click.option('--port', type=int, default=None, help='Port to listen on (overrides settings)')
@click.pass_context
def serve(ctx, host, port):
    """Run the feed gateway until interrupted."""
    settings = get_settings()
    _configure_logging(settings, ctx.obj.get('debug'))

    overrides = {}
    if host:
        overrides['host'] = host
    if port:
        overrides['port'] = port
    if overrides:
        settings = settings.model_copy(
            update={'server': settings.server.model_copy(update=overrides)}
        )

    console.print(
        f"[bold blue]📡 FeedMirror serving on {settings.server.host}:{settings.server.port}[/bold blue]"
    )
    asyncio.run(serve_gateway(settings))


@cli.command()
@click.argument('channel')
@click.option('--output', '-o', type=click.Path(dir_okay=False), help='Write the feed to a file')
@click.pass_context
def fetch(ctx, channel, output):
    """Fetch and normalize a single channel once."""
    console.print(f"[bold blue]📡 Fetching channel: {channel}[/bold blue]")

    settings = get_settings()
    _configure_logging(settings, ctx.obj.get('debug'))

    async def run_fetch():
        components = build_components(settings)
        try:
            return await components.pipeline.refresh(channel)
        finally:
            await components.close()

    try:
        xml = asyncio.run(run_fetch())
    except Exception as e:
        console.print(f"[bold red]❌ Feed fetch error: {e}[/bold red]")
        sys.exit(1)

    if output:
        Path(output).write_text(xml, encoding='utf-8')
        console.print(f"[bold green]✅ Feed written to {output}[/bold green]")
    else:
        click.echo(xml)


def _check_server_config(settings) -> tuple[bool, str]:
    """Check listener configuration."""
    server = settings.server
    return True, f"{server.host}:{server.port}, base URL {server.base_url}, default channel {server.default_channel}"


def _check_upstream_config(settings) -> tuple[bool, str]:
    """Check upstream feed service configuration."""
    upstream = settings.upstream
    return True, f"{upstream.url_template} ({upstream.max_attempts} attempts, {upstream.request_timeout}s timeout)"


def _check_media_config(settings) -> tuple[bool, str]:
    """Check that the media directory can be created and written."""
    try:
        media_dir = Path(settings.media.directory)
        media_dir.mkdir(parents=True, exist_ok=True)
        probe = media_dir / ".write_test"
        probe.touch()
        probe.unlink()
        return True, f"Directory: {media_dir.resolve()}"
    except OSError as e:
        return False, str(e)


def _check_scheduler_config(settings) -> tuple[bool, str]:
    """Check refresh interval configuration."""
    scheduler = settings.scheduler
    return True, (
        f"Every {scheduler.min_refresh_minutes}-{scheduler.max_refresh_minutes} min, "
        f"{scheduler.failure_retry_seconds:g}s after failures"
    )


def _check_logging_config(settings) -> tuple[bool, str]:
    """Check logging configuration."""
    try:
        if settings.logging.file_path:
            log_path = Path(settings.logging.file_path)
            log_path.parent.mkdir(parents=True, exist_ok=True)
            return True, f"File: {log_path}, Level: {settings.logging.level.value}"
        return True, f"Console only, Level: {settings.logging.level.value}"
    except OSError as e:
        return False, str(e)


if __name__ == "__main__":
    try:
        cli()
    except KeyboardInterrupt:
        console.print("\n[yellow]👋 FeedMirror interrupted by user[/yellow]")
        sys.exit(130)
    except Exception as e:
        console.print(f"\n[bold red]❌ Unexpected error: {e}[/bold red]")
        sys.exit(1)
