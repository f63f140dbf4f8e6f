"""
A small, file-based key/value store for strings with a hard size quota, used for
the flat history representation and the legacy archive key.
"""

import hashlib
import json
import logging
from contextlib import suppress
from pathlib import Path

from musicgen_store.exceptions import QuotaError

log = logging.getLogger(__name__)


class FlatStore:
    """
    Persists string values under string keys, one JSON file per key.

    The combined size of all stored values is capped at `quota_bytes`; a write that
    would cross the cap raises QuotaError and leaves the previous value untouched.
    """

    def __init__(self, store_dir: Path, quota_bytes: int = 5 * 1024 * 1024):
        """
        Initializes the flat store.

        Args:
            store_dir: The directory where value files will be stored.
            quota_bytes: The maximum combined size of all stored values.
        """
        self.store_dir = Path(store_dir)
        self.store_dir.mkdir(parents=True, exist_ok=True)
        self.quota_bytes = quota_bytes

    def _get_path(self, key: str) -> Path:
        """Generates a safe filename for a given key."""
        hashed_key = hashlib.md5(key.encode("utf-8")).hexdigest()  # noqa: S324
        return self.store_dir / f"{hashed_key}.json"

    @staticmethod
    def _value_size(key: str, value: str) -> int:
        # Approximates the UTF-16 accounting of browser storage
        return len(key.encode("utf-8")) + len(value.encode("utf-8"))

    def _read_entry(self, path: Path) -> dict | None:
        try:
            with open(path, encoding="utf-8") as f:
                return json.load(f)
        except (json.JSONDecodeError, OSError) as e:
            log.debug(f"Flat store read failed for '{path.name}': {e}")
            return None

    def get(self, key: str) -> str | None:
        """Returns the stored value, or None if the key is absent or unreadable."""
        path = self._get_path(key)
        if not path.is_file():
            return None
        entry = self._read_entry(path)
        return entry.get("value") if entry else None

    def keys(self) -> list[str]:
        keys = []
        for path in self.store_dir.glob("*.json"):
            entry = self._read_entry(path)
            if entry and "key" in entry:
                keys.append(entry["key"])
        return sorted(keys)

    def usage(self) -> int:
        """Returns the number of bytes currently counted against the quota."""
        total = 0
        for path in self.store_dir.glob("*.json"):
            entry = self._read_entry(path)
            if entry:
                total += self._value_size(entry.get("key", ""), entry.get("value", ""))
        return total

    def set(self, key: str, value: str) -> None:
        """
        Stores a value, replacing any previous value for the key.

        Raises:
            QuotaError: If the write would exceed the store's quota.
            OSError: If the file cannot be written.
        """
        path = self._get_path(key)
        previous = self.get(key)
        used = self.usage()
        if previous is not None:
            used -= self._value_size(key, previous)
        needed = self._value_size(key, value)

        if used + needed > self.quota_bytes:
            raise QuotaError(
                f"Writing {needed} bytes to '{key}' exceeds the "
                f"{self.quota_bytes}-byte quota ({used} bytes in use)."
            )

        tmp_path = path.with_suffix(".tmp")
        with open(tmp_path, "w", encoding="utf-8") as f:
            json.dump({"key": key, "value": value}, f)
        tmp_path.replace(path)

    def remove(self, key: str) -> None:
        """Removes a key. Removing an absent key is not an error."""
        path = self._get_path(key)
        with suppress(FileNotFoundError):
            path.unlink()

