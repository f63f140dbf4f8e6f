"""
Event log for the track store.

Store events (migrations, quota back-off, handle lifecycle) go to the regular
`musicgen_store` logger and, when enabled, to a JSON-lines file for later analysis.
"""

import json
import logging
import os
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, TextIO

LOG_FILE_PREFIX = "store_events"


class StructuredLogger:
    """
    Writes named events with key/value context to the console logger and an
    optional JSONL file.

    Usage:
        with StructuredLogger("musicgen_store", log_dir=Path("logs")) as events:
            events.emit(logging.INFO, "migration_completed", migrated=11, skipped=1)
    """

    def __init__(
        self,
        name: str,
        log_dir: Path | None = None,
        enable_json: bool = True,
        enable_console: bool = True,
    ):
        """
        Args:
            name: Name of the console logger events are forwarded to.
            log_dir: Directory for the JSONL file; no file is written without one.
            enable_json: Write events to the JSONL file.
            enable_console: Forward events to the console logger.
        """
        self.name = name
        self.enable_console = enable_console
        self._logger = logging.getLogger(name)
        self._context: dict[str, Any] = {"pid": os.getpid()}
        self._file: TextIO | None = None
        self.path: Path | None = None

        if enable_json and log_dir is not None:
            log_dir.mkdir(parents=True, exist_ok=True)
            stamp = datetime.now().strftime("%Y%m%d_%H%M%S")
            self.path = log_dir / f"{LOG_FILE_PREFIX}_{stamp}.jsonl"
            self._file = open(self.path, "a", encoding="utf-8")  # noqa: SIM115

    @property
    def writes_json(self) -> bool:
        return self._file is not None and not self._file.closed

    def bind(self, **context) -> None:
        """Adds fields that are attached to every later event."""
        self._context.update(context)

    def emit(self, level: int, event: str, **context) -> None:
        if self.enable_console and self._logger.isEnabledFor(level):
            details = " ".join(f"{k}={v}" for k, v in context.items())
            # Brackets would be read as rich markup by the console handler
            self._logger.log(
                level, f"[{event}] {details}".rstrip(), extra={"markup": False}
            )
        if self.writes_json:
            self._write(logging.getLevelName(level), event, context)

    def _write(self, level: str, event: str, context: dict[str, Any]) -> None:
        record = {
            "ts": datetime.now(timezone.utc).isoformat(),
            "level": level,
            "event": event,
            **self._context,
            **context,
        }
        try:
            self._file.write(json.dumps(record, default=str) + "\n")
            self._file.flush()
        except OSError as e:
            self._logger.warning(f"Could not write event log: {e}")

    def close(self) -> None:
        if self._file is not None and not self._file.closed:
            self._file.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False


class StoreEventLogger:
    """Named events raised by the storage, migration, and playback layers."""

    def __init__(self, logger: StructuredLogger):
        self.logger = logger

    def migration_completed(self, total: int, migrated: int, skipped: int):
        self.logger.emit(
            logging.INFO,
            "migration_completed",
            total=total,
            migrated=migrated,
            skipped=skipped,
        )

    def migration_aborted(self, error: str):
        """The legacy archive could not be parsed at all."""
        self.logger.emit(logging.WARNING, "migration_aborted", error=error)

    def entry_skipped(self, track_id: Any, reason: str):
        self.logger.emit(
            logging.DEBUG, "migration_entry_skipped", track_id=track_id, reason=reason
        )

    def quota_truncated(self, original: int, kept: int):
        """The flat history only fit after dropping its oldest entries."""
        self.logger.emit(logging.WARNING, "quota_truncated", original=original, kept=kept)

    def quota_gave_up(self, original: int, smallest_rung: int):
        self.logger.emit(
            logging.DEBUG,
            "quota_gave_up",
            original=original,
            smallest_rung=smallest_rung,
        )

    def handle_created(self, track_id: int, uri: str):
        self.logger.emit(logging.DEBUG, "handle_created", track_id=track_id, uri=uri)

    def handle_revoked(self, track_id: int, uri: str):
        self.logger.emit(logging.DEBUG, "handle_revoked", track_id=track_id, uri=uri)


def create_structured_logger(
    log_dir: Path | None = None, enable_json: bool = False
) -> tuple[StructuredLogger, StoreEventLogger]:
    """
    Builds the event logger used by a CLI session.

    Returns:
        Tuple of (base_logger, store_event_logger). The caller closes the base logger.
    """
    base = StructuredLogger("musicgen_store", log_dir=log_dir, enable_json=enable_json)
    return base, StoreEventLogger(base)
