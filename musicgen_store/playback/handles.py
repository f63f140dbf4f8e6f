"""
Ephemeral playback handles bound to stored audio blobs.

A handle is a `blob:` URI registered in an in-memory registry. The registry lives
only as long as the process, so no handle ever outlives a restart; after a reload
every handle has to be minted again from the stored blob.
"""

import io
import logging
from collections.abc import Iterable, Iterator
from contextlib import contextmanager
from uuid import uuid4

from musicgen_store.exceptions import HandleRevokedError, InvalidTrackError
from musicgen_store.models.track import AudioBlob, Track
from musicgen_store.utils.structured_logger import StoreEventLogger

log = logging.getLogger(__name__)

BLOB_URI_PREFIX = "blob:musicgen/"


class BlobRegistry:
    """Maps live blob URIs to the audio payloads they address."""

    def __init__(self):
        self._blobs: dict[str, AudioBlob] = {}

    def create(self, blob: AudioBlob) -> str:
        uri = f"{BLOB_URI_PREFIX}{uuid4()}"
        self._blobs[uri] = blob
        return uri

    def resolve(self, uri: str) -> AudioBlob | None:
        return self._blobs.get(uri)

    def revoke(self, uri: str) -> bool:
        """Forgets a URI. Returns False if it was not registered."""
        return self._blobs.pop(uri, None) is not None

    def __contains__(self, uri: str) -> bool:
        return uri in self._blobs

    def __len__(self) -> int:
        return len(self._blobs)


class Handle:
    """A revocable reference to one track's audio payload."""

    def __init__(self, uri: str, track_id: int, blob: AudioBlob, registry: BlobRegistry):
        self.uri = uri
        self.track_id = track_id
        self.blob = blob
        self._registry = registry
        self._revoked = False

    @property
    def mime_type(self) -> str:
        return self.blob.mime_type

    @property
    def revoked(self) -> bool:
        return self._revoked

    def open(self) -> io.BytesIO:
        """
        Opens the addressed payload for reading.

        Raises:
            HandleRevokedError: If the handle has been revoked.
        """
        blob = None if self._revoked else self._registry.resolve(self.uri)
        if blob is None:
            raise HandleRevokedError(f"Handle {self.uri} has been revoked.")
        return io.BytesIO(blob.data)

    def __repr__(self) -> str:
        state = "revoked" if self._revoked else "live"
        return f"<Handle {self.uri} track={self.track_id} {state}>"


class HandleManager:
    """
    Owns the playback handles for displayed tracks.

    At most one live handle exists per track id. Creating a handle for an id that
    already has one revokes the old handle first, and every handle is revoked
    exactly once: on replacement, on release, or when the manager is closed.
    """

    def __init__(
        self,
        registry: BlobRegistry | None = None,
        events: StoreEventLogger | None = None,
    ):
        self.registry = registry if registry is not None else BlobRegistry()
        self._events = events
        self._live: dict[int, Handle] = {}

    @property
    def live_count(self) -> int:
        return len(self._live)

    def get(self, track_id: int) -> Handle | None:
        return self._live.get(track_id)

    def create_handle(self, track: Track) -> Handle:
        """
        Mints a fresh handle for a stored track, revoking the previous one for the
        same id.

        Raises:
            InvalidTrackError: If the track has no id or no audio payload.
        """
        if track.id is None:
            raise InvalidTrackError("Cannot create a handle for an unsaved track.")
        if not track.audio_blob.is_usable():
            raise InvalidTrackError(f"Track {track.id} has no audio to play.")

        self.release(track.id)
        uri = self.registry.create(track.audio_blob)
        handle = Handle(uri, track.id, track.audio_blob, self.registry)
        self._live[track.id] = handle
        if self._events:
            self._events.handle_created(track.id, uri)
        return handle

    def handle_for(self, track: Track) -> Handle:
        """
        Returns the live handle for a track, minting a new one when there is none or
        when the track's audio has changed since the handle was created.
        """
        handle = self._live.get(track.id)
        if handle is not None and handle.blob == track.audio_blob:
            return handle
        return self.create_handle(track)

    def revoke(self, handle: Handle) -> bool:
        """
        Revokes a handle. Revoking an already revoked handle does nothing.

        Returns:
            True if this call released the handle.
        """
        if handle.revoked:
            return False
        handle._revoked = True
        self.registry.revoke(handle.uri)
        if self._live.get(handle.track_id) is handle:
            del self._live[handle.track_id]
        if self._events:
            self._events.handle_revoked(handle.track_id, handle.uri)
        return True

    def release(self, track_id: int) -> bool:
        """Revokes the live handle for a track id, if there is one."""
        handle = self._live.get(track_id)
        return self.revoke(handle) if handle is not None else False

    def retain_only(self, track_ids: Iterable[int]) -> int:
        """Revokes every live handle whose track is no longer displayed."""
        keep = set(track_ids)
        stale = [h for tid, h in self._live.items() if tid not in keep]
        for handle in stale:
            self.revoke(handle)
        return len(stale)

    def close(self) -> None:
        """Revokes every live handle."""
        count = 0
        for handle in list(self._live.values()):
            count += self.revoke(handle)
        if count:
            log.debug(f"Revoked {count} playback handles on close.")

    @contextmanager
    def bind(self, track: Track) -> Iterator[Handle]:
        """Creates a handle for the duration of a `with` block."""
        handle = self.create_handle(track)
        try:
            yield handle
        finally:
            self.revoke(handle)

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False
