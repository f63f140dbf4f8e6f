"""
Manages the versioned SQLite database that durably keeps track records and their
binary audio payloads.
"""

import asyncio
import json
import logging
import sqlite3
from pathlib import Path
from typing import Any

from musicgen_store.exceptions import OpenError, TransactionError
from musicgen_store.models.track import DEFAULT_MIME_TYPE, now_ms

log = logging.getLogger(__name__)

SCHEMA_VERSION = 1
STORE_NAME = "tracks"

# Statements that bring a database from (version - 1) up to `version`.
_UPGRADES: dict[int, list[str]] = {
    1: [
        f"""
        CREATE TABLE IF NOT EXISTS {STORE_NAME} (
            id INTEGER PRIMARY KEY NOT NULL,
            prompt TEXT NOT NULL DEFAULT '',
            duration TEXT NOT NULL DEFAULT '',
            date TEXT NOT NULL DEFAULT '',
            audio_blob BLOB NOT NULL,
            mime_type TEXT NOT NULL DEFAULT '{DEFAULT_MIME_TYPE}',
            advanced_settings TEXT,
            is_edited INTEGER NOT NULL DEFAULT 0
        );
        """,
    ],
}

_COLUMNS = (
    "id",
    "prompt",
    "duration",
    "date",
    "audio_blob",
    "mime_type",
    "advanced_settings",
    "is_edited",
)


class SchemaStore:
    """
    An asynchronous key -> binary-record store on top of a single SQLite connection.

    Every operation runs the blocking sqlite3 call in a worker thread. A lock
    serializes transactions on the one shared connection, so writes are applied in
    the order they were issued.
    """

    def __init__(self, db_path: Path, schema_version: int = SCHEMA_VERSION):
        self.db_path = Path(db_path)
        self.schema_version = schema_version
        self._conn: sqlite3.Connection | None = None
        self._open_task: asyncio.Future | None = None
        self._lock = asyncio.Lock()

    @property
    def is_open(self) -> bool:
        return self._conn is not None

    async def open(self) -> "SchemaStore":
        """
        Opens the database, creating or upgrading the schema when needed.

        Safe to call any number of times. Concurrent callers share one pending open,
        so the upgrade step never runs twice.

        Raises:
            OpenError: If the database cannot be opened or upgraded.
        """
        if self._conn is not None:
            return self

        if self._open_task is None:
            self._open_task = asyncio.ensure_future(asyncio.to_thread(self._open_sync))
        task = self._open_task

        try:
            self._conn = await asyncio.shield(task)
        except OpenError:
            if self._open_task is task:
                self._open_task = None
            raise
        return self

    def _open_sync(self) -> sqlite3.Connection:
        """Connects with tuned PRAGMA settings and applies pending schema upgrades."""
        try:
            self.db_path.parent.mkdir(parents=True, exist_ok=True)
            conn = sqlite3.connect(self.db_path, timeout=30, check_same_thread=False)
        except (OSError, sqlite3.Error) as e:
            log.error(f"Failed to open track store at '{self.db_path}': {e}")
            raise OpenError(f"Could not open track store: {e}") from e

        try:
            conn.row_factory = sqlite3.Row
            conn.execute("PRAGMA journal_mode=WAL;")
            conn.execute("PRAGMA synchronous=NORMAL;")
            conn.execute("PRAGMA temp_store=MEMORY;")
            self._upgrade(conn)
            return conn
        except (OpenError, sqlite3.Error) as e:
            conn.close()
            if isinstance(e, OpenError):
                raise
            log.error(f"Failed to initialize track store at '{self.db_path}': {e}")
            raise OpenError(f"Could not initialize track store: {e}") from e

    def _upgrade(self, conn: sqlite3.Connection) -> None:
        current = conn.execute("PRAGMA user_version;").fetchone()[0]
        if current > self.schema_version:
            raise OpenError(
                f"Track store at '{self.db_path}' has schema version {current}, "
                f"newer than the supported version {self.schema_version}."
            )
        if current == self.schema_version:
            return

        log.debug(
            f"Upgrading track store schema from v{current} to v{self.schema_version}."
        )
        with conn:
            for version in range(current + 1, self.schema_version + 1):
                for statement in _UPGRADES.get(version, []):
                    conn.execute(statement)
            # PRAGMA does not accept bound parameters
            conn.execute(f"PRAGMA user_version = {int(self.schema_version)};")

    async def close(self) -> None:
        """Closes the shared connection. A later call to `open()` reconnects."""
        async with self._lock:
            if self._conn is not None:
                await asyncio.to_thread(self._conn.close)
                self._conn = None
                self._open_task = None
                log.debug("Track store connection closed.")

    async def _run(self, func, *args):
        """Runs a synchronous database function on the shared connection."""
        async with self._lock:
            # A close() may have run while this call waited for the lock
            await self.open()
            try:
                return await asyncio.to_thread(func, *args)
            except (sqlite3.Error, json.JSONDecodeError) as e:
                log.error(f"Track store transaction failed: {e}")
                raise TransactionError(f"Track store transaction failed: {e}") from e

    @staticmethod
    def _record_to_row(record: dict[str, Any]) -> tuple:
        settings = record.get("advanced_settings")
        return (
            record["id"],
            record.get("prompt", ""),
            record.get("duration", ""),
            record.get("date", ""),
            bytes(record["audio_blob"]),
            record.get("mime_type") or DEFAULT_MIME_TYPE,
            json.dumps(settings) if settings is not None else None,
            1 if record.get("is_edited") else 0,
        )

    @staticmethod
    def _row_to_record(row: sqlite3.Row) -> dict[str, Any]:
        record = {key: row[key] for key in _COLUMNS}
        if record["advanced_settings"] is not None:
            record["advanced_settings"] = json.loads(record["advanced_settings"])
        record["audio_blob"] = bytes(record["audio_blob"])
        record["is_edited"] = bool(record["is_edited"])
        return record

    def _put_sync(self, record: dict[str, Any]) -> int:
        placeholders = ", ".join("?" * len(_COLUMNS))
        with self._conn:
            self._conn.execute(
                f"INSERT OR REPLACE INTO {STORE_NAME} ({', '.join(_COLUMNS)})"  # noqa: S608
                f" VALUES ({placeholders})",
                self._record_to_row(record),
            )
        return record["id"]

    async def put(self, record: dict[str, Any]) -> int:
        """
        Inserts or overwrites a record by id, assigning a timestamp id when absent.

        Returns:
            The id the record was stored under.

        Raises:
            TransactionError: If the write fails.
        """
        record = dict(record)
        if not record.get("id"):
            record["id"] = now_ms()
        return await self._run(self._put_sync, record)

    def _get_all_sync(self) -> list[dict[str, Any]]:
        cursor = self._conn.execute(
            f"SELECT {', '.join(_COLUMNS)} FROM {STORE_NAME} ORDER BY id DESC"  # noqa: S608
        )
        return [self._row_to_record(row) for row in cursor.fetchall()]

    async def get_all(self) -> list[dict[str, Any]]:
        """Returns every record, newest (highest id) first."""
        return await self._run(self._get_all_sync)

    def _get_sync(self, record_id: int) -> dict[str, Any] | None:
        row = self._conn.execute(
            f"SELECT {', '.join(_COLUMNS)} FROM {STORE_NAME} WHERE id = ?",  # noqa: S608
            (record_id,),
        ).fetchone()
        return self._row_to_record(row) if row else None

    async def get(self, record_id: int) -> dict[str, Any] | None:
        """Returns a single record, or None if no record has that id."""
        return await self._run(self._get_sync, record_id)

    def _delete_sync(self, record_id: int) -> None:
        with self._conn:
            self._conn.execute(
                f"DELETE FROM {STORE_NAME} WHERE id = ?",  # noqa: S608
                (record_id,),
            )

    async def delete(self, record_id: int) -> None:
        """Removes a record. Deleting an id that does not exist is not an error."""
        await self._run(self._delete_sync, record_id)


_stores: dict[Path, SchemaStore] = {}


async def open_store(db_path: Path) -> SchemaStore:
    """
    Gets or opens the process-wide store for a database path.

    Only one connection per database file exists for the lifetime of the process.

    Raises:
        OpenError: If the database cannot be opened.
    """
    key = Path(db_path).expanduser().resolve()
    store = _stores.get(key)
    if store is None:
        store = _stores[key] = SchemaStore(key)
    return await store.open()


async def close_all_stores() -> None:
    """Closes every process-wide store opened through `open_store`."""
    while _stores:
        _, store = _stores.popitem()
        await store.close()
