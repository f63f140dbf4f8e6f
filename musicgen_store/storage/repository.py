"""
Domain-level access to stored tracks on top of the schema store.
"""

import logging
from typing import Any

from pydantic import ValidationError

from musicgen_store.exceptions import InvalidTrackError, TransactionError
from musicgen_store.models.track import AudioBlob, Track

from .schema_store import SchemaStore

log = logging.getLogger(__name__)


def track_to_record(track: Track) -> dict[str, Any]:
    """Flattens a Track into the record shape the schema store persists."""
    return {
        "id": track.id,
        "prompt": track.prompt,
        "duration": track.duration,
        "date": track.date,
        "audio_blob": track.audio_blob.data,
        "mime_type": track.audio_blob.mime_type,
        "advanced_settings": (
            track.advanced_settings.model_dump(by_alias=True)
            if track.advanced_settings is not None
            else None
        ),
        "is_edited": track.is_edited,
    }


def record_to_track(record: dict[str, Any]) -> Track:
    """
    Validates a stored record back into a Track.

    Raises:
        TransactionError: If the stored record no longer matches the Track model.
    """
    try:
        return Track(
            id=record["id"],
            prompt=record["prompt"],
            duration=record["duration"],
            date=record["date"],
            audio_blob=AudioBlob(
                data=record["audio_blob"], mime_type=record["mime_type"]
            ),
            advanced_settings=record.get("advanced_settings"),
            is_edited=record.get("is_edited", False),
        )
    except (KeyError, ValidationError) as e:
        raise TransactionError(
            f"Stored track {record.get('id')} failed validation: {e}"
        ) from e


class TrackRepository:
    """CRUD over Track entities. Ordering and uniqueness come from the store."""

    def __init__(self, store: SchemaStore):
        self.store = store

    async def add_or_replace(self, track: Track) -> int:
        """
        Stores a track, overwriting any existing track with the same id.

        Returns:
            The id the track was stored under.

        Raises:
            InvalidTrackError: If the track has no audio payload.
            TransactionError: If the write fails.
        """
        if not track.audio_blob.is_usable():
            raise InvalidTrackError(
                f"Refusing to store track {track.id} without audio data."
            )
        track_id = await self.store.put(track_to_record(track))
        log.debug(f"Stored track {track_id} ({track.audio_blob.size} bytes).")
        return track_id

    async def list_all(self) -> list[Track]:
        """Returns every stored track, newest first."""
        return [record_to_track(r) for r in await self.store.get_all()]

    async def get(self, track_id: int) -> Track | None:
        record = await self.store.get(track_id)
        return record_to_track(record) if record else None

    async def remove_by_id(self, track_id: int) -> None:
        await self.store.delete(track_id)
        log.debug(f"Removed track {track_id}.")
