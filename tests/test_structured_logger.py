import json
import logging

from musicgen_store.exceptions import QuotaError
from musicgen_store.storage.quota_guard import QuotaGuard
from musicgen_store.utils.structured_logger import create_structured_logger


def _read_events(path):
    return [json.loads(line) for line in path.read_text(encoding="utf-8").splitlines()]


def test_events_are_written_as_json_lines(tmp_path):
    base, events = create_structured_logger(log_dir=tmp_path, enable_json=True)
    base.bind(db="tracks.sqlite")

    events.migration_completed(total=2, migrated=1, skipped=1)
    events.handle_revoked(1000, "blob:musicgen/x")
    base.close()

    first, second = _read_events(base.path)
    assert first["event"] == "migration_completed"
    assert first["level"] == "INFO"
    assert (first["total"], first["migrated"], first["skipped"]) == (2, 1, 1)
    assert first["db"] == "tracks.sqlite"
    assert second["event"] == "handle_revoked"
    assert second["track_id"] == 1000


def test_no_file_without_json_logging(tmp_path):
    base, events = create_structured_logger(log_dir=tmp_path, enable_json=False)

    events.quota_gave_up(30, 5)
    base.close()

    assert base.path is None
    assert list(tmp_path.iterdir()) == []


def test_events_reach_console_logger(caplog):
    _, events = create_structured_logger()

    with caplog.at_level(logging.WARNING, logger="musicgen_store"):
        events.quota_truncated(30, 10)

    assert "[quota_truncated] original=30 kept=10" in caplog.text


def test_quota_guard_reports_truncation(tmp_path, make_track):
    class TinyStore:
        def set(self, key, value):
            if len(json.loads(value)) > 5:
                raise QuotaError("full")

    base, events = create_structured_logger(log_dir=tmp_path, enable_json=True)
    history = [make_track(i) for i in range(12, 0, -1)]

    QuotaGuard(TinyStore(), events=events).persist(history)
    base.close()

    (record,) = _read_events(base.path)
    assert record["event"] == "quota_truncated"
    assert (record["original"], record["kept"]) == (12, 5)


def test_abandoned_write_stays_off_the_console_at_warning(caplog):
    _, events = create_structured_logger()

    with caplog.at_level(logging.WARNING, logger="musicgen_store"):
        events.quota_gave_up(30, 5)

    assert "quota_gave_up" not in caplog.text
