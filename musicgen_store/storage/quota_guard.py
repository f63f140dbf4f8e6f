"""
Capacity back-off for the flat history representation.

When the serialized history no longer fits the flat store's quota, the oldest
entries are dropped step by step along a declared retention ladder until a write
succeeds, or the guard gives up.
"""

import json
import logging
from collections.abc import Iterator, Sequence
from dataclasses import dataclass
from enum import Enum

from musicgen_store.exceptions import QuotaError
from musicgen_store.models.config import DEFAULT_LEGACY_KEY, DEFAULT_RETENTION_LADDER
from musicgen_store.models.track import Track
from musicgen_store.utils.codec import encode_audio
from musicgen_store.utils.structured_logger import StoreEventLogger

from .flat_store import FlatStore

log = logging.getLogger(__name__)


class PersistState(Enum):
    """Terminal states of one persist attempt."""

    FULL = "full"  # Whole history written
    TRUNCATED = "truncated"  # Written after dropping the oldest entries
    GAVE_UP = "gave_up"  # Nothing written


@dataclass(frozen=True)
class RetentionLadder:
    """Ordered retention sizes tried after the full history fails to fit."""

    rungs: tuple[int, ...] = DEFAULT_RETENTION_LADDER

    def __post_init__(self):
        if not self.rungs:
            raise ValueError("Retention ladder needs at least one rung.")
        if any(n < 1 for n in self.rungs):
            raise ValueError("Retention ladder rungs must be positive.")
        if any(a <= b for a, b in zip(self.rungs, self.rungs[1:])):
            raise ValueError("Retention ladder rungs must be strictly decreasing.")

    def __iter__(self) -> Iterator[int]:
        return iter(self.rungs)

    @property
    def smallest(self) -> int:
        return self.rungs[-1]

    def attempts_for(self, count: int) -> list[int]:
        """
        Returns the sizes to try for a history of `count` items: the full size first,
        then each rung that actually drops something.
        """
        return [count] + [n for n in self.rungs if n < count]


@dataclass(frozen=True)
class PersistOutcome:
    state: PersistState
    original_count: int
    kept_count: int

    @property
    def removed_items(self) -> bool:
        return self.state is PersistState.TRUNCATED and (
            self.kept_count < self.original_count
        )


def serialize_history(tracks: Sequence[Track]) -> str:
    """Serializes tracks into the flat history format, audio inlined as base64."""
    entries = []
    for track in tracks:
        entry = {
            "id": track.id,
            "prompt": track.prompt,
            "duration": track.duration,
            "date": track.date,
            "base64Audio": encode_audio(track.audio_blob.data),
            "isEdited": track.is_edited,
        }
        if track.advanced_settings is not None:
            entry["advancedSettings"] = track.advanced_settings.model_dump(
                by_alias=True
            )
        entries.append(entry)
    return json.dumps(entries)


class QuotaGuard:
    """
    Writes the newest-first history to the flat store, truncating along a retention
    ladder when the store reports that its quota is exhausted.
    """

    def __init__(
        self,
        flat_store: FlatStore,
        key: str = DEFAULT_LEGACY_KEY,
        ladder: RetentionLadder | None = None,
        events: StoreEventLogger | None = None,
    ):
        self.flat_store = flat_store
        self.key = key
        self.ladder = ladder or RetentionLadder()
        self._events = events
        self._last_restored: tuple[int, ...] | None = None

    def persist(self, history: Sequence[Track]) -> PersistOutcome:
        """
        Persists as much of the history as fits.

        Args:
            history: Tracks ordered newest first; truncation keeps a prefix.

        Returns:
            A PersistOutcome. GAVE_UP means nothing was written and the previous
            flat value, if any, has been removed.
        """
        items = list(history)

        for size in self.ladder.attempts_for(len(items)):
            try:
                self.flat_store.set(self.key, serialize_history(items[:size]))
            except QuotaError as e:
                log.debug(f"Flat history write of {size} items failed: {e}")
                continue
            except OSError as e:
                log.warning(f"Flat history write failed: {e}")
                break

            if size == len(items):
                return PersistOutcome(PersistState.FULL, len(items), size)

            log.warning(
                f"[yellow]Storage full: kept the {size} most recent of "
                f"{len(items)} tracks in flat history.[/yellow]"
            )
            if self._events:
                self._events.quota_truncated(len(items), size)
            return PersistOutcome(PersistState.TRUNCATED, len(items), size)

        # The key never holds a snapshot older than the working set
        try:
            self.flat_store.remove(self.key)
        except OSError as e:
            log.warning(f"Could not drop stale flat history: {e}")
        log.debug(f"Abandoned flat history write of {len(items)} items.")
        if self._events:
            self._events.quota_gave_up(len(items), self.ladder.smallest)
        return PersistOutcome(PersistState.GAVE_UP, len(items), 0)

    def restore_once(
        self, working_set: Sequence[Track], outcome: PersistOutcome
    ) -> list[Track] | None:
        """
        Returns the working set cut down to what was persisted, or None when the
        caller should leave its working set alone.

        A given truncated snapshot is handed back only once, so feeding the result
        into another `persist` call cannot loop.
        """
        if not outcome.removed_items or outcome.kept_count >= len(working_set):
            return None

        restored = list(working_set[: outcome.kept_count])
        signature = tuple(track.id for track in restored)
        if signature == self._last_restored:
            return None
        self._last_restored = signature
        return restored
