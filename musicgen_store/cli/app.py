"""
Defines the command-line interface for the track store using Typer.
"""

import asyncio
import logging
import mimetypes
import os
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from pathlib import Path

import aiofiles
import mutagen
import typer
from rich.console import Console
from rich.logging import RichHandler

from musicgen_store import __version__
from musicgen_store.api.client import GenerationClient
from musicgen_store.core.history import HistorySession
from musicgen_store.exceptions import MusicGenStoreError
from musicgen_store.models.config import StoreConfig
from musicgen_store.models.track import AdvancedSettings, AudioBlob
from musicgen_store.storage.config_manager import ConfigManager
from musicgen_store.storage.schema_store import close_all_stores
from musicgen_store.utils.structured_logger import create_structured_logger

from .formatters import (
    print_config,
    print_migration_report,
    print_tracks_table,
    print_validation_table,
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
log = logging.getLogger("musicgen_store")

app = typer.Typer(
    name="mgstore",
    help=(
        "Keep a local history of generated music. Use 'mgstore <command> --help'"
        " for more info."
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
    return base_dir.expanduser() / "musicgen-store"


CONFIG_DIR = get_config_dir()
CONFIG_FILE = CONFIG_DIR / "config.ini"

_json_log = False


def load_config() -> StoreConfig:
    return ConfigManager(CONFIG_FILE).load_config()


@asynccontextmanager
async def open_session(config: StoreConfig) -> AsyncIterator[HistorySession]:
    """Starts a history session and releases its handles and store on exit."""
    base_logger, events = create_structured_logger(
        log_dir=Path(config.data_dir) / "logs", enable_json=_json_log
    )
    session = HistorySession(config, events=events)
    try:
        await session.start()
        if session.degraded:
            console.print(
                "[yellow]⚠️  Track database unavailable; using flat history.[/yellow]"
            )
        yield session
    finally:
        session.close()
        await close_all_stores()
        base_logger.close()


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
    json_log: bool = typer.Option(
        False, "--json-log", help="Also write structured events to a JSONL log file."
    ),
):
    """Generated Music Store CLI"""
    global _json_log

    if version:
        console.print(f"[bold]musicgen-store[/bold] version [cyan]{__version__}[/cyan]")
        raise typer.Exit()

    log_level = "INFO"
    if verbose >= 2:
        log_level = "DEBUG"
    logging.getLogger("musicgen_store").setLevel(log_level)
    _json_log = json_log

    if show_config:
        config_manager = ConfigManager(CONFIG_FILE)
        config = config_manager.load_config()
        print_config(CONFIG_FILE, config.model_dump(exclude={"config_path"}))
        raise typer.Exit()

    if ctx.invoked_subcommand is None:
        console.print(ctx.get_help())


@app.command()
def init(
    data_dir: Path | None = typer.Option(  # noqa: B008
        None, "--data-dir", help="Where the track database and flat storage live."
    ),
    api_url: str | None = typer.Option(
        None, "--api-url", help="Base URL of the music generation service."
    ),
    force: bool = typer.Option(
        False, "--force", "-f", help="Overwrite an existing configuration."
    ),
):
    """Write a configuration file with default settings."""
    if (
        CONFIG_FILE.exists()
        and not force
        and not typer.confirm("Configuration file already exists. Overwrite it?")
    ):
        raise typer.Abort()

    settings = {}
    if data_dir is not None:
        settings["data_dir"] = str(data_dir.expanduser())
    if api_url:
        settings["api_base_url"] = api_url
    ConfigManager(CONFIG_FILE).save_new_config(settings)
    console.print(f"\n[bold green]✓ Configuration saved to '{CONFIG_FILE}'[/bold green]")


@app.command(name="list")
def list_command(
    show_handles: bool = typer.Option(
        False, "--handles", help="Show the playback handle minted for each track."
    ),
    as_json: bool = typer.Option(
        False, "--json", help="Print the history as JSON (without audio)."
    ),
):
    """List stored tracks, newest first."""

    async def _list_async():
        async with open_session(load_config()) as session:
            if as_json:
                console.print_json(session.export_json())
                return
            handles = None
            if show_handles:
                handles = {
                    t.id: session.handles.get(t.id).uri
                    for t in session.tracks
                    if session.handles.get(t.id)
                }
            print_tracks_table(session.tracks, handles)

    asyncio.run(_list_async())


def _probe_duration(path: Path) -> float:
    """Reads the audio length from the file's metadata, if mutagen understands it."""
    try:
        audio = mutagen.File(path)
    except mutagen.MutagenError as e:
        log.debug(f"Could not probe '{path.name}': {e}")
        return 0.0
    if audio is None or not getattr(audio, "info", None):
        return 0.0
    return audio.info.length


@app.command(name="import")
def import_command(
    file: Path = typer.Argument(  # noqa: B008
        ..., exists=True, dir_okay=False, readable=True, help="Audio file to import."
    ),
    prompt: str = typer.Option(..., "--prompt", "-p", help="Prompt for the track."),
):
    """Add an existing audio file to the history."""

    async def _import_async():
        async with aiofiles.open(file, "rb") as f:
            data = await f.read()
        mime_type = mimetypes.guess_type(file.name)[0] or "audio/wav"
        duration = _probe_duration(file)

        async with open_session(load_config()) as session:
            track = await session.record_generation(
                prompt, duration, AudioBlob(data=data, mime_type=mime_type)
            )
            console.print(f"[green]✓ Imported '{file.name}' as track {track.id}.[/green]")

    asyncio.run(_import_async())


@app.command(name="export")
def export_command(
    track_id: int = typer.Argument(..., help="ID of the track to export."),
    output: Path = typer.Argument(..., help="Destination file."),  # noqa: B008
):
    """Write a stored track's audio to a file."""

    async def _export_async():
        async with open_session(load_config()) as session:
            try:
                handle = session.select(track_id)
            except KeyError:
                console.print(f"[red]✗ No track with ID {track_id}.[/red]")
                raise typer.Exit(code=1) from None
            async with aiofiles.open(output, "wb") as f:
                await f.write(handle.open().read())
            console.print(f"[green]✓ Wrote track {track_id} to '{output}'.[/green]")

    asyncio.run(_export_async())


@app.command()
def delete(
    track_id: int = typer.Argument(..., help="ID of the track to delete."),
    force: bool = typer.Option(
        False, "--force", "-f", help="Bypass the confirmation prompt."
    ),
):
    """Delete a track from the history."""
    if not force and not typer.confirm(f"Delete track {track_id}?"):
        console.print("[yellow]Operation cancelled.[/yellow]")
        raise typer.Abort()

    async def _delete_async():
        async with open_session(load_config()) as session:
            if session.find(track_id) is None:
                console.print(f"[yellow]No track with ID {track_id}.[/yellow]")
                return
            await session.delete(track_id)
            console.print(f"[green]✓ Track {track_id} deleted.[/green]")

    asyncio.run(_delete_async())


@app.command()
def migrate():
    """Import a legacy flat history archive into the track database."""

    async def _migrate_async():
        async with open_session(load_config()) as session:
            if session.degraded:
                raise typer.Exit(code=1)
            print_migration_report(session.migration_report)

    asyncio.run(_migrate_async())


@app.command()
def generate(
    prompt: str = typer.Argument(..., help="What the music should sound like."),
    duration: int = typer.Option(
        20, "--duration", "-d", min=1, max=300, help="Length in seconds."
    ),
):
    """Generate a new track with the remote service and store it."""

    async def _generate_async():
        config = load_config()
        async with (
            GenerationClient(config.api_base_url) as client,
            open_session(config) as session,
        ):
            console.print("[cyan]Generating music...[/cyan]")
            track = await session.generate(client, prompt, duration)
            console.print(f"[green]✓ Stored new track {track.id}.[/green]")

    asyncio.run(_generate_async())


@app.command()
def refine(
    track_id: int = typer.Argument(..., help="ID of the track to refine."),
    temperature: float = typer.Option(1.0, "--temperature", help="Sampling temperature."),
    cfg_coef: float = typer.Option(8.0, "--cfg-coef", help="Classifier-free guidance."),
    top_k: int = typer.Option(250, "--top-k", min=0, help="Top-k sampling cutoff."),
    top_p: float = typer.Option(
        0.0, "--top-p", min=0.0, max=1.0, help="Nucleus sampling cutoff (0 disables)."
    ),
    no_sampling: bool = typer.Option(
        False, "--no-sampling", help="Use greedy decoding instead of sampling."
    ),
):
    """Regenerate a stored track with new sampling settings, in place."""
    settings = AdvancedSettings(
        temperature=temperature,
        cfg_coef=cfg_coef,
        top_k=top_k,
        top_p=top_p,
        use_sampling=not no_sampling,
    )

    async def _refine_async():
        config = load_config()
        async with (
            GenerationClient(config.api_base_url) as client,
            open_session(config) as session,
        ):
            if session.find(track_id) is None:
                console.print(f"[red]✗ No track with ID {track_id}.[/red]")
                raise typer.Exit(code=1)
            console.print("[cyan]Refining track...[/cyan]")
            track = await session.refine(client, track_id, settings)
            console.print(f"[green]✓ Track {track.id} updated.[/green]")

    asyncio.run(_refine_async())


@app.command()
def validate():
    """Validate the current configuration."""
    try:
        print_validation_table(load_config())
    except MusicGenStoreError as e:
        console.print(f"[red]✗ Configuration is invalid: {e}[/red]")
        raise typer.Exit(code=1) from e
