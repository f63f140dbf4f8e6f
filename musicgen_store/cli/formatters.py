"""
Functions for formatting and displaying data in the console using Rich.
"""

from pathlib import Path
from typing import Any

from rich import box
from rich.console import Console
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from musicgen_store.models.config import StoreConfig
from musicgen_store.models.track import Track
from musicgen_store.storage.legacy_migrator import MigrationReport
from musicgen_store.utils.formatting import format_size, truncate_prompt


def format_error_with_suggestions(
    error: Exception, context: dict | None = None
) -> Panel:
    """Formats an error with actionable suggestions into a Rich Panel."""
    error_type = type(error).__name__
    error_msg = str(error)

    suggestions_map = {
        "OpenError": [
            "• Check that the data directory is writable.",
            "• The database may have been created by a newer version of this tool.",
            "• Run `mgstore --show-config` to see which database is used.",
        ],
        "TransactionError": [
            "• The track database may be locked by another process.",
            "• Free up disk space and try again.",
        ],
        "InvalidTrackError": [
            "• The audio file appears to be empty.",
        ],
        "ConfigurationError": [
            "• Fix the reported value in the configuration file.",
            "• Run `mgstore init --force` to write a fresh configuration.",
        ],
        "GenerationError": [
            "• Check `api_base_url` in the configuration file.",
            "• The generation service might be temporarily unavailable.",
        ],
        "ClientResponseError": [
            "• A network connection issue occurred.",
            "• Please try again in a few minutes.",
        ],
    }

    suggestions = suggestions_map.get(
        error_type, ["• Run the command with -vv for detailed logs."]
    )

    error_text = Text()
    error_text.append(f"{error_type}: ", style="bold red")
    error_text.append(error_msg)

    suggestion_text = Text("\n".join(suggestions))

    content = Table.grid(padding=(1, 0))
    content.add_row(error_text)
    content.add_row()
    content.add_row(Text("Suggestions", style="bold yellow"))
    content.add_row(suggestion_text)

    if context:
        content.add_row()
        content.add_row(Text(f"Context: {context}", style="dim"))

    return Panel(
        content,
        title="[bold red]An Error Occurred[/bold red]",
        border_style="red",
        expand=False,
    )


def print_config(config_path: Path, config_data: dict[str, Any]):
    """Displays the current configuration."""
    console = Console()
    content = ""
    for key, value in config_data.items():
        if isinstance(value, (list, tuple)):
            value = ", ".join(map(str, value))
        content += f"{key} = {value}\n"

    console.print(
        Panel(
            content.strip(),
            title=f"Configuration ([dim]{config_path}[/dim])",
            border_style="cyan",
        )
    )


def print_tracks_table(tracks: list[Track], handles: dict[int, str] | None = None):
    """Displays the stored history, newest first."""
    console = Console()
    if not tracks:
        console.print("[dim]No tracks in history yet.[/dim]")
        return

    table = Table(title="Generation History", box=box.ROUNDED)
    table.add_column("ID", style="dim", no_wrap=True)
    table.add_column("Prompt", style="cyan")
    table.add_column("Length", justify="right")
    table.add_column("Date")
    table.add_column("Size", justify="right", style="green")
    table.add_column("Edited", justify="center")
    if handles is not None:
        table.add_column("Handle", style="magenta", no_wrap=True)

    for track in tracks:
        row = [
            str(track.id),
            truncate_prompt(track.prompt),
            track.duration,
            track.date,
            format_size(track.audio_blob.size),
            "✓" if track.is_edited else "",
        ]
        if handles is not None:
            row.append(handles.get(track.id, ""))
        table.add_row(*row)

    console.print(table)
    total = sum(t.audio_blob.size for t in tracks)
    console.print(
        f"[bold]{len(tracks)}[/bold] tracks, [green]{format_size(total)}[/green] "
        "of audio stored."
    )


def print_migration_report(report: MigrationReport | None):
    """Displays the outcome of a legacy archive migration."""
    console = Console()
    if report is None:
        console.print("[dim]No legacy history archive found.[/dim]")
        return

    table = Table(show_header=False, box=None, padding=(0, 2))
    table.add_column(style="bold cyan", justify="right")
    table.add_column()
    table.add_row("Entries found:", str(report.total))
    table.add_row("✓ Migrated:", f"[green]{report.migrated}[/green]")
    if report.skipped:
        table.add_row("○ Dropped:", f"[yellow]{report.skipped}[/yellow]")

    if report.aborted:
        title = "[bold yellow]Legacy archive unreadable, discarded[/bold yellow]"
        border = "yellow"
    else:
        title = "[bold green]✓ Legacy Migration Complete[/bold green]"
        border = "green"
    console.print(Panel(table, title=title, border_style=border, expand=False))


def print_validation_table(config: StoreConfig):
    """Displays a summary of the current settings."""
    console = Console()
    table = Table(show_header=False, box=None, padding=(0, 2))
    table.add_column(style="bold cyan")
    table.add_column()

    table.add_row("Database:", f"[dim]{config.database_path}[/dim]")
    table.add_row("Flat Storage:", f"[dim]{config.flat_store_dir}[/dim]")
    table.add_row("Flat Quota:", format_size(config.flat_quota_bytes))
    table.add_row(
        "Retention Ladder:", " → ".join(str(n) for n in config.retention_ladder)
    )
    table.add_row(
        "Flat History:",
        "✓ Enabled" if config.persist_flat_history else "✗ Disabled",
    )
    table.add_row("Generation API:", config.api_base_url or "[dim]not set[/dim]")

    console.print(
        Panel(
            table,
            title="[bold green]✓ Validated Settings[/bold green]",
            border_style="green",
        )
    )
