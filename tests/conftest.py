# tests/conftest.py

from __future__ import annotations

import pytest

from todosync.local_store import LocalStore
from todosync.repositories import InMemoryKeyValueStore
from todosync.sync import SyncOrchestrator

from .fakes import FakeRemoteStore


@pytest.fixture()
def kv() -> InMemoryKeyValueStore:
    return InMemoryKeyValueStore()


@pytest.fixture()
def local(kv: InMemoryKeyValueStore) -> LocalStore:
    return LocalStore(kv)


@pytest.fixture()
def remote() -> FakeRemoteStore:
    return FakeRemoteStore()


@pytest.fixture()
def orchestrator(local: LocalStore, remote: FakeRemoteStore) -> SyncOrchestrator:
    """
    Orchestrator with short timers so debounce behaviour is observable in tests.
    """
    return SyncOrchestrator(
        local,
        remote,  # type: ignore[arg-type]
        user_id="u1",
        debounce_seconds=0.05,
        resync_interval_seconds=0.05,
    )
