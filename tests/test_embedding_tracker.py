from datetime import datetime, timezone

from rag_agent.services.embedding_tracker import EmbeddingTrackerStore
from rag_agent.services.types import RepositoryKey


def _store(tmp_path) -> EmbeddingTrackerStore:
    return EmbeddingTrackerStore(db_path=tmp_path / "nested" / "tracker.db")


def test_new_repository_starts_empty(tmp_path):
    tracker = _store(tmp_path).get("acme-widgets")
    assert tracker.get_latest_commit() is None
    assert tracker.get_errored_files() == {}
    assert tracker.get_errored_filenames_as_array() == []
    assert (tmp_path / "nested" / "tracker.db").exists()


def test_latest_commit_round_trip_and_persistence(tmp_path):
    store = _store(tmp_path)
    store.get("acme-widgets").set_latest_commit("abc123")
    store.get("acme-widgets").set_latest_commit("def456")
    assert store.get("acme-widgets").get_latest_commit() == "def456"

    reopened = EmbeddingTrackerStore(db_url=store.db_url)
    assert reopened.get("acme-widgets").get_latest_commit() == "def456"


def test_errored_files_keep_order_and_overwrite(tmp_path):
    tracker = _store(tmp_path).get("acme-widgets")
    tracker.file_errored("b.py", "old")
    tracker.file_errored("a.py", "aaa")
    tracker.file_errored("b.py", "new")

    assert tracker.get_errored_files() == {"b.py": "new", "a.py": "aaa"}
    assert tracker.get_errored_filenames_as_array() == ["b.py", "a.py"]

    tracker.clear_errored_files()
    assert tracker.get_errored_files() == {}


def test_repositories_are_isolated(tmp_path):
    store = _store(tmp_path)
    one = store.for_repository(RepositoryKey("acme", "widgets"))
    two = store.for_repository(RepositoryKey("acme", "gadgets"))

    one.set_latest_commit("111")
    one.file_errored("x.py", "x")
    assert two.get_latest_commit() is None
    assert two.get_errored_files() == {}

    two.clear_errored_files()
    assert one.get_errored_filenames_as_array() == ["x.py"]


def _wall_clock(value: datetime) -> datetime:
    # SQLite hands timestamps back without an offset; everything is stored in UTC.
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc)
    return value.replace(tzinfo=None)


def test_sync_status_snapshot(tmp_path):
    tracker = _store(tmp_path).get("acme-widgets")
    started = datetime(2024, 1, 1, 12, 0, 0, tzinfo=timezone.utc)
    finished = datetime(2024, 1, 1, 12, 5, 0, tzinfo=timezone.utc)
    tracker.record_sync_status("running", started_at=started)
    tracker.set_latest_commit("abc")
    tracker.file_errored("bad.py", "content")
    tracker.record_sync_status("completed_with_errors", finished_at=finished)

    snap = tracker.snapshot()
    assert snap["key"] == "acme-widgets"
    assert snap["latest_commit"] == "abc"
    assert snap["last_sync_status"] == "completed_with_errors"
    assert snap["last_sync_error"] is None
    assert _wall_clock(snap["last_sync_started_at"]) == _wall_clock(started)
    assert _wall_clock(snap["last_sync_finished_at"]) == _wall_clock(finished)
    assert snap["errored_files"] == ["bad.py"]


def test_update_stamps_use_utc_clock(tmp_path):
    tracker = _store(tmp_path).get("acme-widgets")
    before = datetime.now(timezone.utc)
    tracker.set_latest_commit("abc")
    tracker.record_sync_status("running", started_at=datetime.now(timezone.utc))

    snap = tracker.snapshot()
    assert _wall_clock(snap["updated_at"]) >= _wall_clock(before)
    assert _wall_clock(snap["last_sync_started_at"]) >= _wall_clock(before)


def test_failed_status_keeps_error_message(tmp_path):
    tracker = _store(tmp_path).get("acme-widgets")
    tracker.record_sync_status("failed", error="compare unavailable")
    assert tracker.snapshot()["last_sync_error"] == "compare unavailable"
