import pytest

from musicgen_store.exceptions import QuotaError
from musicgen_store.storage.flat_store import FlatStore


def test_set_get_remove(tmp_path):
    store = FlatStore(tmp_path, quota_bytes=1024)

    store.set("theme", "dark")

    assert store.get("theme") == "dark"
    assert store.keys() == ["theme"]
    store.remove("theme")
    store.remove("theme")
    assert store.get("theme") is None


def test_write_over_quota_raises_and_keeps_previous_value(tmp_path):
    store = FlatStore(tmp_path, quota_bytes=64)
    store.set("k", "small")

    with pytest.raises(QuotaError):
        store.set("k", "x" * 100)

    assert store.get("k") == "small"


def test_replacing_a_value_does_not_count_it_twice(tmp_path):
    store = FlatStore(tmp_path, quota_bytes=40)
    store.set("k", "a" * 30)

    store.set("k", "b" * 30)

    assert store.usage() == len("k") + 30


def test_quota_is_shared_between_keys(tmp_path):
    store = FlatStore(tmp_path, quota_bytes=50)
    store.set("a", "x" * 30)

    with pytest.raises(QuotaError):
        store.set("b", "y" * 30)
