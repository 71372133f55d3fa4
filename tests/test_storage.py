"""Tests for SQLite and in-memory key/value storage."""

import pytest

from tagtree.storage import MemoryStorage, SqliteStorage, Storage


@pytest.fixture(params=["sqlite", "memory"])
def storage(request, tmp_path):
    if request.param == "sqlite":
        store = SqliteStorage(tmp_path / "sub" / "workspace.db")
    else:
        store = MemoryStorage()
    yield store
    store.close()


def test_satisfies_protocol(storage):
    assert isinstance(storage, Storage)


def test_get_missing(storage):
    assert storage.get("missing") is None


def test_set_get_overwrite(storage):
    storage.set("k", "one")
    storage.set("k", "two")
    assert storage.get("k") == "two"


def test_delete(storage):
    storage.set("k", "v")
    storage.delete("k")
    assert storage.get("k") is None
    storage.delete("k")  # absent key is fine


def test_sqlite_persists_across_connections(tmp_path):
    db = tmp_path / "workspace.db"
    with SqliteStorage(db) as first:
        first.set("tree", '{"version": 1, "tree": []}')
    with SqliteStorage(db) as second:
        assert second.get("tree") == '{"version": 1, "tree": []}'


def test_sqlite_close_is_idempotent(tmp_path):
    store = SqliteStorage(tmp_path / "workspace.db")
    store.close()
    store.close()
