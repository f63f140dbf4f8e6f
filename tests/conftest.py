from pathlib import Path

import pytest

from musicgen_store.models.config import StoreConfig
from musicgen_store.models.track import AudioBlob, Track
from musicgen_store.storage.flat_store import FlatStore
from musicgen_store.storage.repository import TrackRepository
from musicgen_store.storage.schema_store import SchemaStore


def build_track(
    track_id: int | None = 1000, prompt: str = "p", data: bytes = b"RIFF", **kwargs
) -> Track:
    return Track(
        id=track_id,
        prompt=prompt,
        duration=kwargs.pop("duration", "20s"),
        date=kwargs.pop("date", "Oct 19, 02:15 PM"),
        audio_blob=AudioBlob(data=data),
        **kwargs,
    )


@pytest.fixture
def make_track():
    return build_track


@pytest.fixture
def store(tmp_path: Path):
    store = SchemaStore(tmp_path / "tracks.sqlite")
    yield store
    if store._conn is not None:
        store._conn.close()


@pytest.fixture
def repository(store: SchemaStore) -> TrackRepository:
    return TrackRepository(store)


@pytest.fixture
def flat_store(tmp_path: Path) -> FlatStore:
    return FlatStore(tmp_path / "flat", quota_bytes=1024 * 1024)


@pytest.fixture
def config(tmp_path: Path) -> StoreConfig:
    return StoreConfig(data_dir=str(tmp_path / "data"))
