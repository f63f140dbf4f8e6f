"""
One-time migration from the legacy flat history archive (base64 audio inside a JSON
array) to the structured track store.
"""

import json
import logging
from dataclasses import dataclass, field
from typing import Any

from pydantic import ValidationError

from musicgen_store.exceptions import DecodeError, MigrationError
from musicgen_store.models.config import DEFAULT_LEGACY_KEY
from musicgen_store.models.track import DEFAULT_MIME_TYPE, AudioBlob, LegacyEntry, Track
from musicgen_store.utils.codec import decode_audio
from musicgen_store.utils.structured_logger import StoreEventLogger

from .flat_store import FlatStore
from .repository import TrackRepository

log = logging.getLogger(__name__)


@dataclass
class MigrationReport:
    """Outcome of one pass over the legacy archive."""

    total: int = 0
    migrated: int = 0
    skipped: int = 0
    aborted: bool = False
    migrated_ids: list[int] = field(default_factory=list)


def parse_legacy_archive(raw: str) -> list[Any]:
    """
    Parses the serialized legacy archive.

    Raises:
        MigrationError: If the text is not a JSON array.
    """
    try:
        data = json.loads(raw)
    except (json.JSONDecodeError, TypeError) as e:
        raise MigrationError(f"Legacy archive is not valid JSON: {e}") from e
    if not isinstance(data, list):
        raise MigrationError(
            f"Legacy archive must be a JSON array, got {type(data).__name__}."
        )
    return data


def legacy_entry_to_track(item: Any, mime_type: str = DEFAULT_MIME_TYPE) -> Track:
    """
    Converts one legacy row into a Track with decoded binary audio.

    Raises:
        DecodeError: If the row is malformed or has no decodable audio.
    """
    if not isinstance(item, dict):
        raise DecodeError(f"Legacy entry is not an object: {item!r:.60}")
    try:
        entry = LegacyEntry.model_validate(item)
    except ValidationError as e:
        raise DecodeError(f"Legacy entry failed validation: {e}") from e

    if not entry.base64_audio:
        raise DecodeError(f"Legacy entry {entry.id} has no audio payload.")
    data = decode_audio(entry.base64_audio)

    try:
        return Track(
            id=entry.id,
            prompt=entry.prompt,
            duration=entry.duration,
            date=entry.date,
            audio_blob=AudioBlob(data=data, mime_type=mime_type),
            advanced_settings=entry.advanced_settings,
            is_edited=entry.is_edited,
        )
    except ValidationError as e:
        raise DecodeError(f"Legacy entry {entry.id} is not a valid track: {e}") from e


async def migrate_legacy_archive(
    raw: str | None,
    repository: TrackRepository,
    mime_type: str = DEFAULT_MIME_TYPE,
    events: StoreEventLogger | None = None,
) -> MigrationReport:
    """
    Transfers every decodable entry of a legacy archive into the repository.

    A parse failure or a corrupt entry is logged and never raised. Entries are
    upserted by id, so running the same archive twice produces no duplicates.

    Args:
        raw: The serialized legacy archive, or None when there is none.
        repository: Destination for the migrated tracks.
        mime_type: Mime type assigned to decoded payloads.
        events: Optional structured event sink.

    Returns:
        A MigrationReport describing what was transferred.

    Raises:
        TransactionError: If a write to the repository fails mid-run.
    """
    report = MigrationReport()
    if raw is None:
        return report

    try:
        items = parse_legacy_archive(raw)
    except MigrationError as e:
        log.warning(f"[yellow]Legacy history could not be parsed, skipping: {e}[/yellow]")
        if events:
            events.migration_aborted(str(e))
        report.aborted = True
        return report

    report.total = len(items)
    for item in items:
        try:
            track = legacy_entry_to_track(item, mime_type)
        except DecodeError as e:
            report.skipped += 1
            log.debug(f"Dropping legacy entry: {e}")
            if events:
                track_id = item.get("id") if isinstance(item, dict) else None
                events.entry_skipped(track_id, str(e))
            continue

        await repository.add_or_replace(track)
        report.migrated += 1
        report.migrated_ids.append(track.id)

    if events:
        events.migration_completed(report.total, report.migrated, report.skipped)
    return report


async def run_startup_migration(
    flat_store: FlatStore,
    repository: TrackRepository,
    legacy_key: str = DEFAULT_LEGACY_KEY,
    mime_type: str = DEFAULT_MIME_TYPE,
    events: StoreEventLogger | None = None,
) -> MigrationReport | None:
    """
    Runs the legacy migration if the legacy archive key is present.

    The key is removed once the pass finishes, including after a parse failure or
    skipped entries. If a repository write fails the key is kept so the migration
    re-runs on the next start.

    Returns:
        The MigrationReport, or None when there was nothing to migrate.
    """
    raw = flat_store.get(legacy_key)
    if raw is None:
        return None

    log.info("[yellow]Migrating legacy history archive to the track store...[/yellow]")
    report = await migrate_legacy_archive(raw, repository, mime_type, events)
    flat_store.remove(legacy_key)

    if not report.aborted:
        log.info(
            f"[green]✓ Migrated {report.migrated} of {report.total} legacy "
            "entries.[/green]"
        )
    if report.skipped:
        log.info(
            f"[dim]{report.skipped} legacy entries had no usable audio and were "
            "dropped.[/dim]"
        )
    return report
