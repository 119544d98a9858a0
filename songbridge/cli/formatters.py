"""
Functions for formatting and displaying data in the console using Rich.
"""

from pathlib import Path

from rich import box
from rich.console import Console
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from songbridge.models.config import RelayConfig
from songbridge.models.music import MusicItem, PlayInfo

console = Console()


def format_error_with_suggestions(
    error: Exception, context: dict | None = None
) -> Panel:
    """Formats an error with actionable suggestions into a Rich Panel."""
    error_type = type(error).__name__
    error_msg = str(error)

    suggestions_map = {
        "ResolutionError": [
            "• The provider could not turn this id into a playable URL.",
            "• Search again: ids from some providers expire.",
            "• Try the same song on another provider with -p.",
        ],
        "UpstreamError": [
            "• The media host rejected the request.",
            "• The resolved link may have expired; resolve it again.",
        ],
        "TransportError": [
            "• The media host could not be reached or timed out.",
            "• Check your internet connection.",
            "• Raise download_timeout or retry_limit in the config file.",
        ],
        "ConfigurationError": [
            "• Check the values in your configuration file.",
            "• Run `songbridge init --force` to write a fresh one.",
        ],
        "ClientResponseError": [
            "• A network connection issue occurred.",
            "• The upstream site might be temporarily unavailable.",
        ],
        "TimeoutError": [
            "• A request timed out, which may indicate throttling by the upstream.",
            "• Try again in a few minutes.",
        ],
    }

    suggestions = suggestions_map.get(
        error_type, ["• Run the command with -vv for detailed logs."]
    )

    error_text = Text()
    error_text.append(f"{error_type}: ", style="bold red")
    error_text.append(error_msg)

    content = Table.grid(padding=(1, 0))
    content.add_row(error_text)
    content.add_row()
    content.add_row(Text("Suggestions", style="bold yellow"))
    content.add_row(Text("\n".join(suggestions)))

    if context:
        content.add_row()
        content.add_row(Text(f"Context: {context}", style="dim"))

    return Panel(
        content,
        title="[bold red]An Error Occurred[/bold red]",
        border_style="red",
        box=box.ROUNDED,
        expand=False,
    )


def print_search_results(items: list[MusicItem], query: str) -> None:
    """Displays search hits with the ids needed for `resolve` and `download`."""
    if not items:
        console.print(f"[yellow]No results for '{query}'.[/yellow]")
        return

    table = Table(
        title=f"Results for [cyan]{query}[/cyan]",
        box=box.SIMPLE_HEAVY,
        show_lines=False,
    )
    table.add_column("#", justify="right", style="dim")
    table.add_column("Title", style="bold")
    table.add_column("Artist")
    table.add_column("Album", style="dim")
    table.add_column("Provider", style="magenta")
    table.add_column("ID", style="cyan", overflow="fold")

    for index, item in enumerate(items, 1):
        table.add_row(
            str(index),
            item.title,
            item.artist,
            item.album or "",
            item.provider,
            item.id,
        )
    console.print(table)


def print_play_info(info: PlayInfo, provider: str) -> None:
    table = Table.grid(padding=(0, 2))
    table.add_column(style="bold")
    table.add_column()
    table.add_row("Provider", provider)
    table.add_row("URL", f"[cyan]{info.url}[/cyan]")
    table.add_row("Type", info.type)
    if info.cover:
        table.add_row("Cover", info.cover)
    console.print(Panel(table, title="[bold green]Resolved[/bold green]", expand=False))


def print_providers_table(
    names: list[str], default: str, counts: dict[str, int] | None = None
) -> None:
    """Lists providers in registration order, with optional check results."""
    table = Table(title="Providers", box=box.ROUNDED)
    table.add_column("Name", style="magenta")
    table.add_column("Default", justify="center")
    if counts is not None:
        table.add_column("Results", justify="right")
        table.add_column("Status", justify="center")

    for name in names:
        row = [name, "[green]✓[/green]" if name == default else ""]
        if counts is not None:
            count = counts.get(name, 0)
            row.append(str(count))
            row.append("[green]OK[/green]" if count else "[red]EMPTY[/red]")
        table.add_row(*row)
    console.print(table)


def print_config(config_path: Path, config: RelayConfig) -> None:
    table = Table(
        title=f"Configuration ([dim]{config_path}[/dim])",
        box=box.ROUNDED,
        show_header=True,
    )
    table.add_column("Key", style="bold cyan")
    table.add_column("Value")
    for key, value in config.model_dump().items():
        table.add_row(key, str(value))
    console.print(table)
