from __future__ import annotations

import json
import sqlite3

import pytest

from todosync.db import SQLiteKeyValueStore
from todosync.local_store import PROJECTS_KEY, TASKS_KEY, USER_ID_KEY, LocalStore
from todosync.repositories import InMemoryKeyValueStore, StorageUnavailableError, get_kv_store

from .fakes import make_task


class TestLocalStore:
    def test_absent_is_empty(self, local):
        assert local.load_tasks() == []
        assert local.get_user_id() is None
        assert local.load_projects() == []

    def test_tasks_round_trip(self, local):
        tasks = [make_task(1, "a", updated="2024-01-02T00:00:00Z"), make_task("x", "b", project="work")]
        local.save_tasks(tasks)
        assert local.load_tasks() == tasks

    def test_stored_as_camel_case_json(self, kv, local):
        local.save_tasks([make_task(1, "a", updated="2024-01-02T00:00:00Z")])
        stored = json.loads(kv.get(TASKS_KEY))
        assert stored[0]["createdAt"] == "2024-01-01T00:00:00Z"
        assert stored[0]["updatedAt"] == "2024-01-02T00:00:00Z"

    @pytest.mark.parametrize("raw", ["{not json", '{"id": 1}', '"text"', "null"])
    def test_corrupt_task_data_is_empty(self, kv, local, raw):
        kv.set(TASKS_KEY, raw)
        assert local.load_tasks() == []

    def test_invalid_entries_skipped(self, kv, local):
        kv.set(TASKS_KEY, json.dumps([{"id": 1, "text": "keep"}, {"text": "no id"}]))
        assert [t.text for t in local.load_tasks()] == ["keep"]

    def test_user_id(self, kv, local):
        local.set_user_id("abc")
        assert local.get_user_id() == "abc"
        kv.set(USER_ID_KEY, "   ")
        assert local.get_user_id() is None

    def test_projects_deduplicated(self, kv, local):
        local.save_projects(["home", "work", "home", " ", "work"])
        assert local.load_projects() == ["home", "work"]
        kv.set(PROJECTS_KEY, "oops")
        assert local.load_projects() == []


class TestKeyValueStores:
    def test_in_memory(self):
        store = InMemoryKeyValueStore()
        assert store.get("k") is None
        store.set("k", "v")
        store.set("k", "v2")
        assert store.get("k") == "v2"
        assert store.delete("k") is True
        assert store.delete("k") is False

    def test_sqlite_persists_across_instances(self, tmp_path):
        path = str(tmp_path / "nested" / "local.db")
        store = SQLiteKeyValueStore(path)
        store.set("k", "v")
        store.set("k", "v2")
        assert SQLiteKeyValueStore(path).get("k") == "v2"
        assert store.delete("k") is True
        assert store.get("k") is None

    def test_sqlite_backs_local_store(self, tmp_path):
        local = LocalStore(SQLiteKeyValueStore(str(tmp_path / "local.db")))
        tasks = [make_task(1, "a")]
        local.save_tasks(tasks)
        assert local.load_tasks() == tasks

    def test_sqlite_unopenable_path(self, tmp_path):
        blocker = tmp_path / "file"
        blocker.write_text("x")
        with pytest.raises(StorageUnavailableError):
            SQLiteKeyValueStore(str(blocker / "db.sqlite"))

    def test_sqlite_table_layout(self, tmp_path):
        path = str(tmp_path / "kv.db")
        SQLiteKeyValueStore(path).set("a", "1")
        with sqlite3.connect(path) as conn:
            rows = conn.execute("SELECT key, value FROM kv").fetchall()
        assert rows == [("a", "1")]


class TestStoreFactory:
    def test_memory_backend_is_shared(self, monkeypatch):
        monkeypatch.setenv("PERSISTENCE_BACKEND", "memory")
        first = get_kv_store()
        first.set("k", "v")
        assert get_kv_store() is first
        first.delete("k")

    def test_sqlite_backend(self, monkeypatch, tmp_path):
        monkeypatch.setenv("PERSISTENCE_BACKEND", "sqlite")
        monkeypatch.setenv("SQLITE_DB_PATH", str(tmp_path / "server.db"))
        assert isinstance(get_kv_store(), SQLiteKeyValueStore)

    def test_unknown_backend_is_unavailable(self, monkeypatch):
        monkeypatch.setenv("PERSISTENCE_BACKEND", "cloudflare-kv")
        with pytest.raises(StorageUnavailableError):
            get_kv_store()


class TestUnreadableCache:
    @pytest.fixture()
    def broken(self, tmp_path):
        path = tmp_path / "local.db"
        store = LocalStore(SQLiteKeyValueStore(str(path)))
        path.write_bytes(b"not a database" * 100)
        return store

    def test_reads_are_absent(self, broken):
        assert broken.load_tasks() == []
        assert broken.get_user_id() is None
        assert broken.load_projects() == []

    def test_writes_do_not_raise(self, broken):
        broken.save_tasks([make_task(1, "a")])
        broken.set_user_id("u1")
        broken.save_projects(["work"])
        assert broken.load_tasks() == []
