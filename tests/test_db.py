"""Tests for the SQLite session store."""

from datetime import timezone

import pytest

from gamehouse.db import SessionStoreError, SqliteSessionStore, load_sessions

from tests.conftest import BASE, at, make_record


class TestSave:
    """Inserting and updating session records."""

    def test_insert_assigns_id_and_round_trips_fields(self, store):
        record = store.save(make_record(display_name="Alice", active=True))
        assert record.id is not None

        (loaded,) = store.find_all()
        assert loaded.id == record.id
        assert loaded.display_name == "Alice"
        assert loaded.activity == "chess"
        assert loaded.start_time == BASE
        assert loaded.start_time.tzinfo == timezone.utc
        assert loaded.active is True
        assert loaded.accumulated_seconds == 0.0

    def test_close_persists_duration(self, store):
        record = store.save(make_record(active=True))
        record.accumulated_seconds = 90.5
        record.active = False
        store.save(record)

        (loaded,) = store.find_all()
        assert loaded.active is False
        assert loaded.accumulated_seconds == 90.5

    def test_closed_record_cannot_be_rewritten(self, store):
        record = store.save(make_record(active=True))
        record.accumulated_seconds = 60
        record.active = False
        store.save(record)

        record.accumulated_seconds = 999
        with pytest.raises(SessionStoreError):
            store.save(record)
        assert store.find_all()[0].accumulated_seconds == 60

    def test_second_active_record_for_same_pair_is_rejected(self, store):
        store.save(make_record(active=True))
        with pytest.raises(SessionStoreError):
            store.save(make_record(active=True, start=at(5)))
        assert len(store.find_all()) == 1

    def test_same_activity_may_be_active_for_different_identities(self, store):
        store.save(make_record(identity="u1", active=True))
        store.save(make_record(identity="u2", active=True))
        assert len(store.find_all_active()) == 2


class TestLookups:
    """Filtered reads."""

    def test_find_active_filters_identity_and_state(self, store):
        store.save(make_record(identity="u1", activity="chess", active=True))
        store.save(make_record(identity="u1", activity="go", seconds=30))
        store.save(make_record(identity="u2", activity="chess", active=True))

        active = store.find_active("u1")
        assert [(r.identity, r.activity) for r in active] == [("u1", "chess")]
        assert len(store.find_all_active()) == 2
        assert len(store.find_all()) == 3

    def test_find_all_orders_by_start_time(self, store):
        store.save(make_record(activity="late", start=at(30), seconds=1))
        store.save(make_record(activity="early", start=at(0), seconds=1))
        assert [r.activity for r in store.find_all()] == ["early", "late"]

    def test_empty_store_returns_empty_lists(self, store):
        assert store.find_all() == []
        assert store.find_active("nobody") == []


def test_load_sessions_reads_file_database(tmp_path):
    path = tmp_path / "sessions.sqlite3"
    writer = SqliteSessionStore.open(path)
    writer.save(make_record(active=True))
    writer.save(make_record(activity="go", seconds=10))
    writer.close()

    assert len(load_sessions(path)) == 2
    assert [r.activity for r in load_sessions(path, active_only=True)] == ["chess"]


def test_load_sessions_wraps_unreadable_database(tmp_path):
    path = tmp_path / "not-a-database.sqlite3"
    path.write_bytes(b"this is not sqlite" * 100)
    with pytest.raises(SessionStoreError):
        load_sessions(path)
