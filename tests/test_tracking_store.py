import pytest

from anitrack.database import BUSY_TIMEOUT_MS
from anitrack.errors import StoreError
from anitrack.models.tracked_entry import TrackedEntry
from anitrack.services.tracking_store import TrackingStore, latest_schema_version


def test_new_store_is_at_latest_version(store):
    assert store.schema_version == latest_schema_version()


def test_upsert_sets_ordinal_and_recency(store):
    saved = store.upsert(TrackedEntry.build("x", "Title", " 13.5 "))
    assert saved.episode_label == "13.5"
    assert saved.episode_ordinal == 13.5
    assert saved.updated_at.tzinfo is not None
    assert store.latest().show_id == "x"


def test_non_numeric_label_has_no_ordinal(store):
    saved = store.upsert(TrackedEntry.build("x", "Title", "OVA"))
    assert saved.episode_ordinal is None


def test_upsert_keeps_one_row_per_show(store):
    store.upsert(TrackedEntry.build("x", "Title", "1"))
    store.upsert(TrackedEntry.build("x", "Title", "2"))
    store.upsert(TrackedEntry.build("x", "Title", "2"))
    entries = store.list_by_recency()
    assert len(entries) == 1
    assert entries[0].episode_label == "2"


def test_updated_at_strictly_increases(store):
    first = store.upsert(TrackedEntry.build("a", "A", "1"))
    second = store.upsert(TrackedEntry.build("b", "B", "1"))
    third = store.upsert(TrackedEntry.build("a", "A", "2"))
    assert first.updated_at < second.updated_at < third.updated_at
    assert [entry.show_id for entry in store.list_by_recency()] == ["a", "b"]
    assert store.latest().episode_label == "2"


def test_get_and_delete(store):
    store.upsert(TrackedEntry.build("a", "A", "1"))
    assert store.get("a").title == "A"
    assert store.delete("a") is True
    assert store.get("a") is None
    assert store.delete("a") is False
    assert store.latest() is None


def test_store_persists_across_reopen(db_url, store):
    store.upsert(TrackedEntry.build("a", "A", "4"))
    reopened = TrackingStore(db_url)
    try:
        assert reopened.schema_version == latest_schema_version()
        assert reopened.get("a").episode_label == "4"
    finally:
        reopened.close()


def test_store_creates_parent_directory(tmp_path):
    path = tmp_path / "nested" / "dir" / "anitrack.db"
    store = TrackingStore(f"sqlite:///{path}")
    try:
        store.migrate()
        assert path.exists()
    finally:
        store.close()


def test_sqlalchemy_failures_become_store_errors(db_url):
    unmigrated = TrackingStore(db_url)
    try:
        # No tracked_entries table before migrating
        with pytest.raises(StoreError):
            unmigrated.latest()
    finally:
        unmigrated.close()


def test_file_store_uses_wal_and_busy_timeout(store):
    with store.engine.connect() as conn:
        assert conn.exec_driver_sql("PRAGMA journal_mode").scalar() == "wal"
        assert conn.exec_driver_sql("PRAGMA busy_timeout").scalar() == BUSY_TIMEOUT_MS
