from __future__ import annotations

import json
import logging
from typing import Any, Iterable, List, Optional

from .models import Task, parse_task_list
from .repositories import KeyValueStore, StorageError

logger = logging.getLogger(__name__)

TASKS_KEY = "todos"
USER_ID_KEY = "todoUserId"
PROJECTS_KEY = "projects"


# PUBLIC_INTERFACE
class LocalStore:
    """
    On-device cache of the task list, the sync identity and the project names.

    Storage failures never reach the caller: an unreadable or corrupt value is
    logged and treated as absent, and a failed write is logged while the
    in-memory list and the push path carry on.
    """

    def __init__(self, kv: KeyValueStore) -> None:
        self._kv = kv

    def _get(self, key: str) -> Optional[str]:
        try:
            return self._kv.get(key)
        except StorageError:
            logger.exception("Local cache read of %r failed; treating it as absent", key)
            return None

    def _set(self, key: str, value: str) -> None:
        try:
            self._kv.set(key, value)
        except StorageError:
            logger.exception("Local cache write of %r failed; continuing in memory", key)

    def _load_json(self, key: str) -> Any:
        raw = self._get(key)
        if raw is None:
            return None
        try:
            return json.loads(raw)
        except ValueError:
            logger.warning("Ignoring corrupt JSON stored under %r", key)
            return None

    def load_tasks(self) -> List[Task]:
        data = self._load_json(TASKS_KEY)
        if data is None:
            return []
        if not isinstance(data, list):
            logger.warning("Ignoring stored task list of type %s", type(data).__name__)
            return []
        return parse_task_list(data)

    def save_tasks(self, tasks: Iterable[Task]) -> None:
        self._set(TASKS_KEY, json.dumps([t.to_json() for t in tasks], ensure_ascii=False))

    def get_user_id(self) -> Optional[str]:
        value = self._get(USER_ID_KEY)
        if value is None or not value.strip():
            return None
        return value

    def set_user_id(self, user_id: str) -> None:
        self._set(USER_ID_KEY, user_id)

    def load_projects(self) -> List[str]:
        data = self._load_json(PROJECTS_KEY)
        if not isinstance(data, list):
            return []
        return _unique_names(data)

    def save_projects(self, names: Iterable[str]) -> None:
        self._set(PROJECTS_KEY, json.dumps(_unique_names(names), ensure_ascii=False))


def _unique_names(values: Iterable[Any]) -> List[str]:
    seen = set()
    out: List[str] = []
    for v in values:
        if not isinstance(v, str):
            continue
        name = v.strip()
        if name and name not in seen:
            seen.add(name)
            out.append(name)
    return out
