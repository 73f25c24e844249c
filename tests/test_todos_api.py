import os

import pytest
from fastapi.testclient import TestClient

# Ensure we default to memory backend for tests to avoid filesystem dependencies
os.environ.setdefault("PERSISTENCE_BACKEND", "memory")

from todosync.api.main import app  # noqa: E402
from todosync.repositories import (  # noqa: E402
    InMemoryKeyValueStore,
    StorageError,
    StorageUnavailableError,
    get_kv_store,
)

client = TestClient(app)

ORIGIN = "https://todo.example.com"


@pytest.fixture(autouse=True)
def store():
    """Fresh in-memory store per test."""
    s = InMemoryKeyValueStore()
    app.dependency_overrides[get_kv_store] = lambda: s
    yield s
    app.dependency_overrides.clear()


def todo_payload(task_id=1, text="Test Task", completed=False):
    return {
        "id": task_id,
        "text": text,
        "completed": completed,
        "createdAt": "2024-01-01T00:00:00.000Z",
        "updatedAt": "2024-01-01T00:00:00.000Z",
    }


class TestHealth:
    def test_health_check(self):
        res = client.get("/")
        assert res.status_code == 200
        data = res.json()
        assert data["message"] == "Healthy"
        assert "backend" in data


class TestGetTodos:
    def test_unknown_user_is_empty_list(self):
        res = client.get("/api/todos", params={"userId": "nobody"})
        assert res.status_code == 200
        assert res.json() == []

    @pytest.mark.parametrize("params", [{}, {"userId": ""}, {"userId": "   "}])
    def test_missing_user_id(self, params):
        res = client.get("/api/todos", params=params)
        assert res.status_code == 400
        assert res.json()["detail"] == "userId required"

    def test_corrupt_stored_value_is_500(self, store):
        store.set("todos:u1", "{broken")
        res = client.get("/api/todos", params={"userId": "u1"})
        assert res.status_code == 500
        assert res.json()["error"] == "StorageError"


class TestSaveTodos:
    def test_save_then_get(self, store):
        todos = [todo_payload(1, "a"), todo_payload("b2", "b", completed=True)]
        res = client.post("/api/todos", json={"userId": "u1", "todos": todos})
        assert res.status_code == 200
        assert res.json() == {"success": True}

        # Stored verbatim under the namespaced key
        assert store.get("todos:u1") is not None

        res_get = client.get("/api/todos", params={"userId": "u1"})
        assert res_get.status_code == 200
        assert res_get.json() == todos

    def test_last_write_wins(self):
        client.post("/api/todos", json={"userId": "u1", "todos": [todo_payload(1, "first")]})
        client.post("/api/todos", json={"userId": "u1", "todos": [todo_payload(2, "second")]})
        res = client.get("/api/todos", params={"userId": "u1"})
        assert [t["text"] for t in res.json()] == ["second"]

    def test_users_are_isolated(self):
        client.post("/api/todos", json={"userId": "u1", "todos": [todo_payload(1, "mine")]})
        res = client.get("/api/todos", params={"userId": "u2"})
        assert res.json() == []

    def test_unknown_task_fields_preserved(self):
        todo = {**todo_payload(1), "priority": "high"}
        client.post("/api/todos", json={"userId": "u1", "todos": [todo]})
        res = client.get("/api/todos", params={"userId": "u1"})
        assert res.json()[0]["priority"] == "high"

    def test_empty_list_allowed(self):
        res = client.post("/api/todos", json={"userId": "u1", "todos": []})
        assert res.status_code == 200
        assert client.get("/api/todos", params={"userId": "u1"}).json() == []

    def test_entries_stored_as_received(self):
        todos = [1, "x", None, {"id": 2}]
        res = client.post("/api/todos", json={"userId": "u1", "todos": todos})
        assert res.status_code == 200
        assert client.get("/api/todos", params={"userId": "u1"}).json() == todos

    @pytest.mark.parametrize(
        "body",
        [
            {"todos": []},
            {"userId": "", "todos": []},
            {"userId": "u1"},
            {"userId": "u1", "todos": "not a list"},
            {"userId": "u1", "todos": {"id": 1}},
        ],
    )
    def test_invalid_body_is_400(self, body):
        res = client.post("/api/todos", json=body)
        assert res.status_code == 400
        data = res.json()
        assert data["error"] == "ValidationError"
        assert data["message"] == "Invalid request body"


class TestStorageFailures:
    def test_unavailable_store_is_500(self):
        def unavailable():
            raise StorageUnavailableError("no backend")

        app.dependency_overrides[get_kv_store] = unavailable
        res_get = client.get("/api/todos", params={"userId": "u1"})
        assert res_get.status_code == 500
        assert res_get.json()["message"] == "KV store not configured"

        res_post = client.post("/api/todos", json={"userId": "u1", "todos": []})
        assert res_post.status_code == 500

    def test_write_failure_is_500(self):
        class FailingStore(InMemoryKeyValueStore):
            def set(self, key, value):
                raise StorageError("disk full")

        failing = FailingStore()
        app.dependency_overrides[get_kv_store] = lambda: failing
        res = client.post("/api/todos", json={"userId": "u1", "todos": []})
        assert res.status_code == 500
        assert res.json() == {"error": "StorageError", "message": "disk full"}


class TestCors:
    def test_simple_request_headers(self):
        res = client.get("/api/todos", params={"userId": "u1"}, headers={"Origin": ORIGIN})
        assert res.headers["access-control-allow-origin"] == "*"

    def test_post_headers(self):
        res = client.post(
            "/api/todos", json={"userId": "u1", "todos": []}, headers={"Origin": ORIGIN}
        )
        assert res.headers["access-control-allow-origin"] == "*"

    def test_preflight(self):
        res = client.options(
            "/api/todos",
            headers={
                "Origin": ORIGIN,
                "Access-Control-Request-Method": "POST",
                "Access-Control-Request-Headers": "Content-Type",
            },
        )
        assert res.status_code == 200
        assert res.headers["access-control-allow-origin"] == "*"
        assert "POST" in res.headers["access-control-allow-methods"]

    def test_bare_options(self):
        res = client.options("/api/todos")
        assert res.status_code == 200
        assert res.content == b""
        assert res.headers["access-control-allow-origin"] == "*"
        assert res.headers["access-control-allow-methods"] == "GET, POST, OPTIONS"

    def test_get_without_origin(self):
        res = client.get("/api/todos", params={"userId": "u1"})
        assert res.status_code == 200
        assert res.headers["access-control-allow-origin"] == "*"
        assert res.headers["access-control-allow-methods"] == "GET, POST, OPTIONS"
        assert res.headers["access-control-allow-headers"] == "Content-Type"

    def test_post_without_origin(self):
        res = client.post("/api/todos", json={"userId": "u1", "todos": []})
        assert res.status_code == 200
        assert res.headers["access-control-allow-origin"] == "*"
        assert res.headers["access-control-allow-methods"] == "GET, POST, OPTIONS"

    def test_errors_without_origin(self):
        res = client.get("/api/todos")
        assert res.status_code == 400
        assert res.headers["access-control-allow-origin"] == "*"
        res = client.post("/api/todos", json={"todos": []})
        assert res.status_code == 400
        assert res.headers["access-control-allow-origin"] == "*"
