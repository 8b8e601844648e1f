"""Click CLI for ipxcache — run the server and manage the disk cache."""

from __future__ import annotations

import logging
import sys

import click
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from ipxcache.config.hierarchy import load_app_config
from ipxcache.config.schema import AppConfig

console = Console()
error_console = Console(stderr=True)

_config_option = click.option(
    "--config",
    "config_path",
    type=click.Path(dir_okay=False),
    default=None,
    help="Path to config.yml (default: ./config.yml or $IPX_CONFIG).",
)


def _setup_logging(verbosity: int, default_level: str = "WARNING") -> None:
    """Configure logging based on verbosity level."""
    level = logging.getLevelName(default_level.upper())
    if not isinstance(level, int):
        level = logging.WARNING
    if verbosity == 1:
        level = logging.INFO
    elif verbosity >= 2:
        level = logging.DEBUG

    logging.basicConfig(
        level=level,
        format="%(message)s",
        handlers=[RichHandler(console=error_console, show_time=False, show_path=False)],
        force=True,
    )


def _load_config(config_path: str | None, **overrides: object) -> AppConfig:
    try:
        return load_app_config(config_path, **overrides)
    except ValueError as e:
        # pydantic ValidationError is a ValueError
        error_console.print(f"[red]Invalid configuration:[/red] {e}")
        sys.exit(1)


@click.group()
@click.version_option(package_name="ipxcache")
def cli() -> None:
    """ipxcache — Image transform server with a persistent disk cache."""


@cli.command()
@_config_option
@click.option("--host", type=str, default=None, help="Interface to bind.")
@click.option("--port", type=int, default=None, help="Port to listen on.")
@click.option("--fs-dir", type=click.Path(file_okay=False), default=None, help="Source image root.")
@click.option("--cache-dir", type=click.Path(file_okay=False), default=None, help="Disk cache root.")
@click.option("-v", "--verbose", count=True, help="Increase verbosity (-v info, -vv debug).")
def serve(
    config_path: str | None,
    host: str | None,
    port: int | None,
    fs_dir: str | None,
    cache_dir: str | None,
    verbose: int,
) -> None:
    """Run the HTTP server."""
    import uvicorn

    from ipxcache.server.app import create_app

    config = _load_config(
        config_path, host=host, port=port, fs_dir=fs_dir, disk_cache_dir=cache_dir
    )
    _setup_logging(verbose, config.log_level)

    console.print(
        f"[green]ipxcache listening on http://{config.server.host}:{config.server.port}[/green]"
    )
    uvicorn.run(
        create_app(config),
        host=config.server.host,
        port=config.server.port,
        log_config=None,
    )


@cli.command("key")
@_config_option
@click.argument("modifiers")
@click.argument("source")
def show_key(config_path: str | None, modifiers: str, source: str) -> None:
    """Show where MODIFIERS applied to SOURCE is cached."""
    from ipxcache.cache.disk import DiskCacheStore
    from ipxcache.cache.keys import build_cache_key
    from ipxcache.errors.exceptions import IPXError
    from ipxcache.modifiers import format_modifiers, parse_modifiers
    from ipxcache.resolver import SourceResolver

    config = _load_config(config_path)
    resolver = SourceResolver(config.ipx.fs_dir, config.ipx.domains)
    store = DiskCacheStore(config.ipx.disk_cache_dir)

    try:
        identity = resolver.resolve(source)
        location = build_cache_key(modifiers, identity, store.root)
    except IPXError as e:
        error_console.print(f"[red]Error ({e.http_status}):[/red] {e.message}")
        sys.exit(1)

    cached = store.lookup(location)

    table = Table(title="Cache Key", show_header=True)
    table.add_column("Field", style="cyan")
    table.add_column("Value")

    table.add_row("Modifiers", format_modifiers(parse_modifiers(modifiers)))
    table.add_row("Kind", identity.kind.value)
    table.add_row("Source", identity.source)
    if identity.domain:
        table.add_row("Domain", identity.domain)
    if identity.absolute_path is not None:
        table.add_row("Path", str(identity.absolute_path))
    table.add_row("Digest", location.digest)
    table.add_row("Artifact", str(location.artifact_path))
    table.add_row("Cached", "[green]yes[/green]" if cached else "no")

    console.print(table)


@cli.group()
def cache() -> None:
    """Cache management commands."""


@cache.command("stats")
@_config_option
def cache_stats(config_path: str | None) -> None:
    """Show cache statistics."""
    from ipxcache.cache.disk import DiskCacheStore

    config = _load_config(config_path)
    store = DiskCacheStore(config.ipx.disk_cache_dir)
    usage = store.usage()

    table = Table(title="Cache Statistics", show_header=True)
    table.add_column("Metric", style="cyan")
    table.add_column("Value")

    table.add_row("Root", str(store.root))
    table.add_row("Entries", str(usage.entries))
    table.add_row("Size (MB)", f"{usage.size_mb:.1f}")

    console.print(table)


@cache.command("clear")
@_config_option
@click.confirmation_option(prompt="Are you sure you want to clear the cache?")
def cache_clear(config_path: str | None) -> None:
    """Delete every cached image."""
    from ipxcache.cache.disk import DiskCacheStore

    config = _load_config(config_path)
    removed = DiskCacheStore(config.ipx.disk_cache_dir).clear()
    console.print(f"[green]Cache cleared ({removed} entries).[/green]")


def main() -> None:
    """Entry point for the CLI."""
    cli()
