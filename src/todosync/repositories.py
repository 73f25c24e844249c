from __future__ import annotations

from abc import ABC, abstractmethod
from functools import lru_cache
from threading import RLock
from typing import Dict, Optional

from .settings import get_settings


class StorageError(Exception):
    """Raised when a key-value backend fails to read or write."""


class StorageUnavailableError(StorageError):
    """Raised when no key-value backend is configured or it cannot be opened."""


# PUBLIC_INTERFACE
class KeyValueStore(ABC):
    """
    Abstract contract for string key-value storage.

    Used on both sides of sync: the endpoint keeps one JSON document per user,
    and the client keeps its on-device cache. Each put/get is atomic per key.
    """

    @abstractmethod
    def get(self, key: str) -> Optional[str]:
        """Return the value stored under key, or None if absent."""

    @abstractmethod
    def set(self, key: str, value: str) -> None:
        """Store value under key, replacing any previous value."""

    @abstractmethod
    def delete(self, key: str) -> bool:
        """Remove key. Return True if it existed, False otherwise."""


class InMemoryKeyValueStore(KeyValueStore):
    """
    Thread-safe in-memory store suitable for testing and default runtime.
    """

    def __init__(self) -> None:
        self._lock = RLock()
        self._items: Dict[str, str] = {}

    def get(self, key: str) -> Optional[str]:
        with self._lock:
            return self._items.get(key)

    def set(self, key: str, value: str) -> None:
        with self._lock:
            self._items[key] = value

    def delete(self, key: str) -> bool:
        with self._lock:
            return self._items.pop(key, None) is not None


@lru_cache(maxsize=None)
def _open_store(backend: str, sqlite_db_path: str) -> KeyValueStore:
    if backend == "memory":
        return InMemoryKeyValueStore()
    if backend == "sqlite":
        from .db import SQLiteKeyValueStore

        return SQLiteKeyValueStore(sqlite_db_path)
    raise StorageUnavailableError(f"Unsupported persistence backend: {backend!r}")


# PUBLIC_INTERFACE
def get_kv_store() -> KeyValueStore:
    """
    Return the configured key-value store based on settings.
    - memory: InMemoryKeyValueStore (one instance per process)
    - sqlite: SQLiteKeyValueStore at SQLITE_DB_PATH

    Raises StorageUnavailableError for unknown backends or a database that
    cannot be opened.
    """
    settings = get_settings()
    return _open_store(settings.persistence_backend, settings.sqlite_db_path)
