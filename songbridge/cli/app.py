"""
Defines the command-line interface for the application using Typer.
"""

import asyncio
import json
import logging
import os
import re
from pathlib import Path

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.progress import (
    BarColumn,
    DownloadColumn,
    Progress,
    SpinnerColumn,
    TextColumn,
    TimeRemainingColumn,
    TransferSpeedColumn,
)

from songbridge import __version__
from songbridge.exceptions import ConfigurationError, SongbridgeError
from songbridge.media.downloader import save_stream
from songbridge.models.config import RelayConfig
from songbridge.providers.registry import get_registry
from songbridge.storage.config_manager import ConfigManager
from songbridge.utils.session import close_connection_pool
from songbridge.web.app import build_relay, run

from .formatters import (
    format_error_with_suggestions,
    print_config,
    print_play_info,
    print_providers_table,
    print_search_results,
)

console = Console()

logging.basicConfig(
    level="INFO",
    format="%(message)s",
    datefmt="[%X]",
    handlers=[
        RichHandler(
            console=console,
            rich_tracebacks=True,
            show_path=False,
            show_level=False,
            markup=True,
        )
    ],
)
log = logging.getLogger("songbridge")

app = typer.Typer(
    name="songbridge",
    help=(
        "Search several unofficial music sites and relay their audio. Use"
        " 'songbridge <command> --help' for more info."
    ),
    rich_markup_mode="rich",
    pretty_exceptions_show_locals=False,
    add_completion=False,
)


def get_config_dir() -> Path:
    if os.name == "nt":
        base_dir = Path(os.getenv("APPDATA", "~\\AppData\\Roaming"))
    else:
        base_dir = Path(os.getenv("XDG_CONFIG_HOME", "~/.config"))
    return base_dir.expanduser() / "songbridge"


CONFIG_DIR = get_config_dir()
CONFIG_FILE = CONFIG_DIR / "config.ini"


def _load_config(cli_options: dict | None = None) -> RelayConfig:
    try:
        return ConfigManager(CONFIG_FILE).load_config(cli_options)
    except ConfigurationError as e:
        console.print(format_error_with_suggestions(e))
        raise typer.Exit(code=1) from e


def _parse_extra_option(extra: str | None) -> dict | None:
    if not extra:
        return None
    try:
        value = json.loads(extra)
    except json.JSONDecodeError as e:
        console.print(f"[red]✗ --extra must be a JSON object: {e}[/red]")
        raise typer.Exit(code=1) from e
    if not isinstance(value, dict):
        console.print("[red]✗ --extra must be a JSON object.[/red]")
        raise typer.Exit(code=1)
    return value


def default_output_name(song_id: str, ext: str) -> str:
    """A filesystem-safe fallback name, since ids may be whole encoded URLs."""
    stem = re.sub(r"[^\w.-]+", "_", song_id).strip("._")[:48] or "track"
    return f"music-{stem}.{ext}"


@app.callback(invoke_without_command=True)
def main_callback(
    ctx: typer.Context,
    verbose: int = typer.Option(
        0,
        "--verbose",
        "-v",
        count=True,
        help="Increase logging verbosity (-vv for debug).",
    ),
    version: bool = typer.Option(
        False, "--version", help="Show version and exit.", is_eager=True
    ),
    show_config: bool = typer.Option(
        False, "--show-config", help="Display the current configuration."
    ),
):
    """songbridge CLI"""
    if version:
        console.print(f"[bold]songbridge[/bold] version [cyan]{__version__}[/cyan]")
        raise typer.Exit()

    log_level = "INFO"
    if verbose >= 2:
        log_level = "DEBUG"
    logging.getLogger("songbridge").setLevel(log_level)

    if show_config:
        print_config(CONFIG_FILE, _load_config())
        raise typer.Exit()

    if ctx.invoked_subcommand is None:
        console.print(ctx.get_help())


@app.command()
def init(
    force: bool = typer.Option(
        False, "--force", "-f", help="Overwrite an existing file without asking."
    ),
):
    """Write a configuration file with default values."""
    if (
        CONFIG_FILE.exists()
        and not force
        and not typer.confirm("Configuration file already exists. Overwrite it?")
    ):
        raise typer.Abort()

    try:
        ConfigManager(CONFIG_FILE).save_new_config()
    except ConfigurationError as e:
        console.print(format_error_with_suggestions(e))
        raise typer.Exit(code=1) from e
    console.print(f"[bold green]✓ Configuration saved to '{CONFIG_FILE}'[/bold green]")


@app.command()
def serve(
    host: str | None = typer.Option(None, "--host", help="Interface to bind."),
    port: int | None = typer.Option(None, "--port", "-p", help="Port to listen on."),
):
    """Run the HTTP service (search, resolve and download endpoints)."""
    config = _load_config({"host": host, "port": port})
    console.print(
        f"[bold cyan]🎵 Serving on http://{config.host}:{config.port}[/bold cyan]"
        f" [dim](default provider: {config.default_provider})[/dim]"
    )
    run(config)


@app.command()
def search(
    query: str = typer.Argument(..., help="Song title, artist or both."),
    provider: str | None = typer.Option(
        None, "--provider", "-p", help="Provider name (see `songbridge providers`)."
    ),
    all_providers: bool = typer.Option(
        False, "--all", "-a", help="Search every provider concurrently."
    ),
):
    """Search for songs."""
    config = _load_config()
    registry = get_registry(config)

    async def _search_async():
        try:
            if all_providers:
                results = await asyncio.gather(
                    *(p.search(query) for p in registry.list_all()),
                    return_exceptions=True,
                )
                return [
                    item
                    for batch in results
                    if not isinstance(batch, BaseException)
                    for item in batch
                ]
            return await registry.get(provider).search(query)
        finally:
            await close_connection_pool()

    print_search_results(asyncio.run(_search_async()), query)


@app.command()
def resolve(
    song_id: str = typer.Argument(..., metavar="ID", help="An id from search results."),
    provider: str | None = typer.Option(None, "--provider", "-p", help="Provider name."),
    extra: str | None = typer.Option(
        None, "--extra", help="Provider context from search results, as JSON."
    ),
):
    """Resolve an id into a direct media URL."""
    config = _load_config()
    adapter = get_registry(config).get(provider)
    extra_payload = _parse_extra_option(extra)

    async def _resolve_async():
        try:
            return await adapter.get_play_info(song_id, extra_payload)
        finally:
            await close_connection_pool()

    try:
        info = asyncio.run(_resolve_async())
    except SongbridgeError as e:
        console.print(format_error_with_suggestions(e, {"provider": adapter.name}))
        raise typer.Exit(code=1) from e
    print_play_info(info, adapter.name)


@app.command(name="download")
def download_command(
    song_id: str = typer.Argument(..., metavar="ID", help="An id from search results."),
    provider: str | None = typer.Option(None, "--provider", "-p", help="Provider name."),
    output: Path | None = typer.Option(
        None, "--output", "-o", help="Target file. Defaults to music-<id>.<ext>."
    ),
    extra: str | None = typer.Option(
        None, "--extra", help="Provider context from search results, as JSON."
    ),
):
    """Download a song through the stream relay."""
    config = _load_config()
    adapter = get_registry(config).get(provider)
    relay = build_relay(config)
    extra_payload = _parse_extra_option(extra)

    progress = Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}", justify="left"),
        BarColumn(bar_width=30),
        "[progress.percentage]{task.percentage:>3.0f}%",
        "•",
        DownloadColumn(),
        "•",
        TransferSpeedColumn(),
        "•",
        TimeRemainingColumn(),
        console=console,
        transient=False,
    )

    async def _download_async() -> tuple[Path, int]:
        try:
            info = await adapter.get_play_info(song_id, extra_payload)
            destination = output or Path(default_output_name(song_id, info.type))
            destination.parent.mkdir(parents=True, exist_ok=True)

            stream = await relay.open(info.url)
            async with stream:
                with progress:
                    task_id = progress.add_task(
                        destination.name, total=stream.content_length
                    )

                    def _on_progress(done: int, total: int | None) -> None:
                        progress.update(task_id, completed=done, total=total)

                    written = await save_stream(
                        stream,
                        str(destination),
                        chunk_size=config.chunk_size,
                        on_progress=_on_progress,
                    )
            return destination, written
        finally:
            await close_connection_pool()

    try:
        destination, written = asyncio.run(_download_async())
    except SongbridgeError as e:
        console.print(format_error_with_suggestions(e, {"provider": adapter.name}))
        raise typer.Exit(code=1) from e
    console.print(
        f"[bold green]✓ Saved {written} bytes to '{destination}'[/bold green]"
    )


@app.command()
def providers(
    check: str | None = typer.Option(
        None,
        "--check",
        metavar="QUERY",
        help="Run QUERY against every provider and report result counts.",
    ),
):
    """List the registered providers."""
    registry = get_registry(_load_config())
    if not check:
        print_providers_table(registry.names(), registry.default_name)
        return

    async def _check_async() -> dict[str, int]:
        try:
            adapters = registry.list_all()
            results = await asyncio.gather(
                *(p.search(check) for p in adapters), return_exceptions=True
            )
            counts = {}
            for adapter, items in zip(adapters, results):
                if isinstance(items, BaseException):
                    log.warning(f"Search on {adapter.name} raised: {items}")
                    counts[adapter.name] = 0
                else:
                    counts[adapter.name] = len(items)
            return counts
        finally:
            await close_connection_pool()

    console.print(f"[dim]Searching every provider for '{check}'...[/dim]")
    print_providers_table(registry.names(), registry.default_name, asyncio.run(_check_async()))
