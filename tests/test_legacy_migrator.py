import json

import pytest

from musicgen_store.exceptions import DecodeError, MigrationError, TransactionError
from musicgen_store.storage.legacy_migrator import (
    legacy_entry_to_track,
    migrate_legacy_archive,
    parse_legacy_archive,
    run_startup_migration,
)

LEGACY_KEY = "musicGenerationHistory"


def _archive(*entries) -> str:
    return json.dumps(list(entries))


@pytest.mark.asyncio
async def test_migrates_only_entries_with_audio_and_removes_key(flat_store, repository):
    flat_store.set(
        LEGACY_KEY,
        _archive(
            {"id": 1, "prompt": "a", "duration": "5s", "date": "d", "base64Audio": "QUJD"},
            {"id": 2, "prompt": "b", "duration": "5s", "date": "d"},
        ),
    )

    report = await run_startup_migration(flat_store, repository)

    tracks = await repository.list_all()
    assert [t.id for t in tracks] == [1]
    assert tracks[0].audio_blob.data == b"ABC"
    assert tracks[0].prompt == "a"
    assert flat_store.get(LEGACY_KEY) is None
    assert (report.total, report.migrated, report.skipped) == (2, 1, 1)


@pytest.mark.asyncio
async def test_archive_without_any_audio_still_removes_key(flat_store, repository):
    flat_store.set(LEGACY_KEY, _archive({"id": 1, "prompt": "a"}, {"id": 2}))

    report = await run_startup_migration(flat_store, repository)

    assert report.migrated == 0
    assert await repository.list_all() == []
    assert flat_store.get(LEGACY_KEY) is None


@pytest.mark.asyncio
async def test_no_archive_means_nothing_to_do(flat_store, repository):
    assert await run_startup_migration(flat_store, repository) is None


@pytest.mark.asyncio
async def test_unparseable_archive_is_logged_and_discarded(flat_store, repository):
    flat_store.set(LEGACY_KEY, "{not json")

    report = await run_startup_migration(flat_store, repository)

    assert report.aborted
    assert flat_store.get(LEGACY_KEY) is None
    assert await repository.list_all() == []


@pytest.mark.asyncio
async def test_corrupt_base64_entries_are_skipped(repository):
    raw = _archive(
        {"id": 1, "base64Audio": "!!!not base64!!!"},
        {"id": 2, "base64Audio": "QUJD"},
        "not an object",
    )

    report = await migrate_legacy_archive(raw, repository)

    assert report.migrated_ids == [2]
    assert report.skipped == 2


@pytest.mark.asyncio
async def test_rerunning_migration_does_not_duplicate(repository):
    raw = _archive(
        {"id": 1, "prompt": "a", "base64Audio": "QUJD"},
        {"id": 2, "prompt": "b", "base64Audio": "REVG"},
    )

    await migrate_legacy_archive(raw, repository)
    await migrate_legacy_archive(raw, repository)

    assert [t.id for t in await repository.list_all()] == [2, 1]


@pytest.mark.asyncio
async def test_interrupted_migration_keeps_key_for_next_start(flat_store, repository):
    flat_store.set(
        LEGACY_KEY,
        _archive(
            {"id": 1, "base64Audio": "QUJD"},
            {"id": 2, "base64Audio": "REVG"},
        ),
    )

    class FlakyRepository:
        def __init__(self):
            self.calls = 0

        async def add_or_replace(self, track):
            self.calls += 1
            if self.calls == 2:
                raise TransactionError("disk full")
            return await repository.add_or_replace(track)

    with pytest.raises(TransactionError):
        await run_startup_migration(flat_store, FlakyRepository())
    assert flat_store.get(LEGACY_KEY) is not None

    await run_startup_migration(flat_store, repository)

    assert [t.id for t in await repository.list_all()] == [2, 1]
    assert flat_store.get(LEGACY_KEY) is None


@pytest.mark.asyncio
async def test_preserves_metadata_and_settings(repository):
    raw = _archive(
        {
            "id": 1700000000000,
            "prompt": "lofi beat",
            "duration": "20s",
            "date": "Oct 19, 02:15 PM",
            "base64Audio": "data:audio/wav;base64,UklGRg==",
            "advancedSettings": {"reverb": 0.5, "cfgCoef": 3.0},
        }
    )

    await migrate_legacy_archive(raw, repository)
    track = await repository.get(1700000000000)

    assert track.audio_blob.data == b"RIFF"
    assert track.duration == "20s"
    assert track.date == "Oct 19, 02:15 PM"
    assert track.advanced_settings.reverb == 0.5
    assert track.advanced_settings.cfg_coef == 3.0


def test_parse_rejects_non_array():
    with pytest.raises(MigrationError):
        parse_legacy_archive('{"id": 1}')


def test_numeric_duration_is_coerced_to_display_string():
    track = legacy_entry_to_track({"id": 3, "duration": 10, "base64Audio": "QUJD"})
    assert track.duration == "10s"


def test_entry_with_empty_audio_is_a_decode_error():
    with pytest.raises(DecodeError):
        legacy_entry_to_track({"id": 3, "base64Audio": ""})
