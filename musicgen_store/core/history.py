"""
The generation history as the interface layer sees it.

`HistorySession` ties the track store, the legacy migration, the flat fallback, and
the playback handles together. Storage problems never escape it: the session keeps
working on whatever history it could load and logs what went wrong.
"""

import json
import logging

from musicgen_store.api.client import GeneratedAudio, GenerationClient
from musicgen_store.exceptions import (
    DecodeError,
    MigrationError,
    OpenError,
    TransactionError,
)
from musicgen_store.models.config import StoreConfig
from musicgen_store.models.track import AdvancedSettings, AudioBlob, Track, now_ms
from musicgen_store.playback.handles import Handle, HandleManager
from musicgen_store.storage.flat_store import FlatStore
from musicgen_store.storage.legacy_migrator import (
    MigrationReport,
    legacy_entry_to_track,
    parse_legacy_archive,
    run_startup_migration,
)
from musicgen_store.storage.quota_guard import QuotaGuard, RetentionLadder
from musicgen_store.storage.repository import TrackRepository
from musicgen_store.storage.schema_store import SchemaStore, open_store
from musicgen_store.utils.formatting import (
    format_track_date,
    format_track_duration,
    parse_track_duration,
)
from musicgen_store.utils.structured_logger import StoreEventLogger

log = logging.getLogger(__name__)


class HistorySession:
    """
    Holds the displayed history and keeps storage and playback handles in step
    with it.

    Usage:
        session = HistorySession(config)
        await session.start()
        track = await session.record_generation("lofi beat", 20, audio)
        handle = session.select(track.id)
        ...
        session.close()
    """

    def __init__(
        self,
        config: StoreConfig,
        store: SchemaStore | None = None,
        handles: HandleManager | None = None,
        events: StoreEventLogger | None = None,
    ):
        self.config = config
        self._store = store
        self._events = events
        self.flat_store = FlatStore(config.flat_store_dir, config.flat_quota_bytes)
        self.quota_guard = QuotaGuard(
            self.flat_store,
            key=config.legacy_key,
            ladder=RetentionLadder(tuple(config.retention_ladder)),
            events=events,
        )
        self.handles = handles if handles is not None else HandleManager(events=events)
        self.repository: TrackRepository | None = None
        self.migration_report: MigrationReport | None = None
        self.tracks: list[Track] = []
        self.selected_id: int | None = None

    @property
    def degraded(self) -> bool:
        """True when the structured store could not be opened."""
        return self.repository is None

    async def start(self) -> list[Track]:
        """
        Opens the store, migrates any legacy archive, and loads the history.

        Falls back to the flat history when the store cannot be opened.
        """
        try:
            if self._store is not None:
                store = await self._store.open()
            else:
                store = await open_store(self.config.database_path)
        except OpenError as e:
            log.error(f"[red]Track store unavailable, using flat history: {e}[/red]")
            self.tracks = self._load_flat_history()
            self._refresh_handles()
            return self.tracks

        self.repository = TrackRepository(store)
        try:
            self.migration_report = await run_startup_migration(
                self.flat_store,
                self.repository,
                legacy_key=self.config.legacy_key,
                mime_type=self.config.default_mime_type,
                events=self._events,
            )
        except TransactionError as e:
            log.warning(f"Legacy migration interrupted, retrying on next start: {e}")

        await self.reload()
        return self.tracks

    async def reload(self) -> list[Track]:
        """Re-reads the history from the store and re-mints every handle."""
        if self.repository is not None:
            try:
                self.tracks = await self.repository.list_all()
            except TransactionError as e:
                log.error(f"[red]Could not read history, showing last known: {e}[/red]")
        self._refresh_handles()
        return self.tracks

    def _load_flat_history(self) -> list[Track]:
        raw = self.flat_store.get(self.config.legacy_key)
        if raw is None:
            return []
        try:
            items = parse_legacy_archive(raw)
        except MigrationError as e:
            log.warning(f"Flat history is unreadable: {e}")
            return []

        tracks = []
        for item in items:
            try:
                tracks.append(
                    legacy_entry_to_track(item, self.config.default_mime_type)
                )
            except DecodeError as e:
                log.debug(f"Skipping flat history entry: {e}")
        tracks.sort(key=lambda t: t.id, reverse=True)
        return tracks

    def _refresh_handles(self) -> None:
        self.handles.retain_only(t.id for t in self.tracks)
        for track in self.tracks:
            self.handles.handle_for(track)

    def find(self, track_id: int) -> Track | None:
        return next((t for t in self.tracks if t.id == track_id), None)

    def _put_in_working_set(self, track: Track) -> None:
        others = [t for t in self.tracks if t.id != track.id]
        self.tracks = sorted([track, *others], key=lambda t: t.id, reverse=True)

    def _persist_flat(self) -> None:
        outcome = self.quota_guard.persist(self.tracks)
        restored = self.quota_guard.restore_once(self.tracks, outcome)
        if restored is not None:
            self.tracks = restored
            self._refresh_handles()

    async def _save(self, track: Track) -> Track:
        if self.repository is not None:
            try:
                track_id = await self.repository.add_or_replace(track)
                if track.id != track_id:
                    track = track.model_copy(update={"id": track_id})
            except TransactionError as e:
                log.error(f"[red]Could not save track {track.id}: {e}[/red]")
        if track.id is None:
            track = track.model_copy(update={"id": now_ms()})

        self._put_in_working_set(track)
        if self.degraded or self.config.persist_flat_history:
            self._persist_flat()
        return track

    async def record_generation(
        self,
        prompt: str,
        duration_s: float,
        audio: GeneratedAudio | AudioBlob,
        settings: AdvancedSettings | None = None,
    ) -> Track:
        """Stores a freshly generated track and makes it the selected one."""
        blob = audio.to_blob() if isinstance(audio, GeneratedAudio) else audio
        track = Track(
            id=now_ms(),
            prompt=prompt,
            duration=format_track_duration(duration_s),
            date=format_track_date(),
            audio_blob=blob,
            advanced_settings=settings,
        )
        track = await self._save(track)
        if self.find(track.id) is not None:
            self.handles.handle_for(track)
            self.selected_id = track.id
        return track

    async def record_refinement(
        self,
        track_id: int,
        audio: GeneratedAudio | AudioBlob,
        settings: AdvancedSettings | None = None,
    ) -> Track:
        """
        Overwrites a track in place with refined audio. The old playback handle is
        revoked when the new one is created.

        Raises:
            KeyError: If the track is not part of the history.
        """
        current = self.find(track_id)
        if current is None:
            raise KeyError(track_id)

        blob = audio.to_blob() if isinstance(audio, GeneratedAudio) else audio
        updated = current.model_copy(
            update={
                "audio_blob": blob,
                "date": format_track_date(),
                "advanced_settings": settings or current.advanced_settings,
                "is_edited": True,
            }
        )
        updated = await self._save(updated)
        if self.find(updated.id) is not None:
            self.handles.handle_for(updated)
        return updated

    async def generate(
        self, client: GenerationClient, prompt: str, duration_s: int
    ) -> Track:
        """Requests a new track from the generation service and records it."""
        audio = await client.generate(prompt, duration_s)
        return await self.record_generation(prompt, duration_s, audio)

    async def refine(
        self, client: GenerationClient, track_id: int, settings: AdvancedSettings
    ) -> Track:
        """Requests refined audio for an existing track and overwrites it."""
        current = self.find(track_id)
        if current is None:
            raise KeyError(track_id)
        audio = await client.refine(
            current.prompt, parse_track_duration(current.duration), settings
        )
        return await self.record_refinement(track_id, audio, settings)

    async def delete(self, track_id: int) -> None:
        """Removes a track from the history and revokes its handle."""
        self.handles.release(track_id)
        if self.repository is not None:
            try:
                await self.repository.remove_by_id(track_id)
            except TransactionError as e:
                log.error(f"[red]Could not delete track {track_id}: {e}[/red]")

        self.tracks = [t for t in self.tracks if t.id != track_id]
        if self.selected_id == track_id:
            self.selected_id = None
        if self.degraded or self.config.persist_flat_history:
            self._persist_flat()

    def select(self, track_id: int) -> Handle:
        """
        Returns a playable handle for a track in the history.

        Raises:
            KeyError: If the track is not part of the history.
        """
        track = self.find(track_id)
        if track is None:
            raise KeyError(track_id)
        self.selected_id = track_id
        return self.handles.handle_for(track)

    def export_json(self) -> str:
        """Serializes the visible history (without audio) for display or debugging."""
        return json.dumps(
            [
                t.model_dump(mode="json", by_alias=True, exclude={"audio_blob"})
                for t in self.tracks
            ],
            indent=2,
        )

    def close(self) -> None:
        """Revokes every handle the session handed out."""
        self.handles.close()
        self.selected_id = None
