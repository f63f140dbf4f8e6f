import json

import pytest

from musicgen_store.exceptions import QuotaError
from musicgen_store.storage.flat_store import FlatStore
from musicgen_store.storage.quota_guard import (
    PersistState,
    QuotaGuard,
    RetentionLadder,
    serialize_history,
)

KEY = "musicGenerationHistory"


class ItemLimitedStore:
    """Flat store stand-in that only accepts histories up to `max_items` long."""

    def __init__(self, max_items: int):
        self.max_items = max_items
        self.values: dict[str, str] = {}
        self.attempts: list[int] = []

    def set(self, key: str, value: str) -> None:
        count = len(json.loads(value))
        self.attempts.append(count)
        if count > self.max_items:
            raise QuotaError(f"{count} items do not fit")
        self.values[key] = value

    def remove(self, key: str) -> None:
        self.values.pop(key, None)

    def stored_ids(self, key: str = KEY) -> list[int]:
        return [entry["id"] for entry in json.loads(self.values[key])]


@pytest.fixture
def history(make_track):
    # Newest first, like the displayed history
    return [make_track(track_id, data=bytes([track_id % 256])) for track_id in range(1030, 1000, -1)]


@pytest.mark.parametrize("capacity, kept", [(20, 20), (15, 10), (7, 5)])
def test_truncates_to_first_rung_that_fits(history, capacity, kept):
    store = ItemLimitedStore(capacity)
    guard = QuotaGuard(store, KEY)

    outcome = guard.persist(history)

    assert outcome.state is PersistState.TRUNCATED
    assert outcome.kept_count == kept
    assert store.stored_ids() == [t.id for t in history[:kept]]


def test_full_history_written_when_it_fits(history):
    store = ItemLimitedStore(100)

    outcome = QuotaGuard(store, KEY).persist(history)

    assert outcome.state is PersistState.FULL
    assert store.attempts == [30]
    assert store.stored_ids() == [t.id for t in history]


def test_gives_up_after_smallest_rung(history):
    store = ItemLimitedStore(2)
    store.values[KEY] = "[]"

    outcome = QuotaGuard(store, KEY).persist(history)

    assert outcome.state is PersistState.GAVE_UP
    assert store.attempts == [30, 20, 10, 5]
    assert KEY not in store.values


def test_rungs_not_smaller_than_history_are_skipped(make_track):
    store = ItemLimitedStore(3)
    tracks = [make_track(i) for i in range(12, 0, -1)]

    outcome = QuotaGuard(store, KEY).persist(tracks)

    assert store.attempts == [12, 10, 5]
    assert outcome.state is PersistState.GAVE_UP


def test_custom_ladder(history):
    store = ItemLimitedStore(8)
    guard = QuotaGuard(store, KEY, ladder=RetentionLadder((25, 8, 2)))

    outcome = guard.persist(history)

    assert store.attempts == [30, 25, 8]
    assert outcome.kept_count == 8


def test_restore_once_only_hands_back_a_truncation_once(history):
    store = ItemLimitedStore(10)
    guard = QuotaGuard(store, KEY)

    outcome = guard.persist(history)
    restored = guard.restore_once(history, outcome)
    assert [t.id for t in restored] == [t.id for t in history[:10]]

    # Persisting the restored set again changes nothing and must not restore again
    second = guard.persist(restored)
    assert second.state is PersistState.FULL
    assert guard.restore_once(restored, second) is None
    assert guard.restore_once(history, outcome) is None


def test_restore_once_ignores_full_and_gave_up_outcomes(history):
    guard = QuotaGuard(ItemLimitedStore(100), KEY)
    assert guard.restore_once(history, guard.persist(history)) is None

    guard = QuotaGuard(ItemLimitedStore(0), KEY)
    assert guard.restore_once(history, guard.persist(history)) is None


def test_works_against_byte_quota_of_real_flat_store(tmp_path, make_track):
    tracks = [make_track(i, data=b"x" * 300) for i in range(1030, 1000, -1)]
    one_entry = len(serialize_history(tracks[:1]))
    flat_store = FlatStore(tmp_path, quota_bytes=one_entry * 12)

    outcome = QuotaGuard(flat_store, KEY).persist(tracks)

    assert outcome.state is PersistState.TRUNCATED
    assert outcome.kept_count == 10
    assert [e["id"] for e in json.loads(flat_store.get(KEY))] == [t.id for t in tracks[:10]]


@pytest.mark.parametrize("rungs", [(), (5, 10), (10, 0), (5, 5)])
def test_invalid_ladders_are_rejected(rungs):
    with pytest.raises(ValueError):
        RetentionLadder(rungs)


def test_giving_up_drops_the_previous_snapshot(tmp_path, make_track):
    flat_store = FlatStore(tmp_path, quota_bytes=2048)
    guard = QuotaGuard(flat_store, KEY)
    assert guard.persist([make_track(1, data=b"old")]).state is PersistState.FULL

    outcome = guard.persist([make_track(1, data=b"x" * 4096, is_edited=True)])

    assert outcome.state is PersistState.GAVE_UP
    assert flat_store.get(KEY) is None
