from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Callable, List, Optional, Set

from .db import SQLiteKeyValueStore
from .local_store import LocalStore
from .merge import merge_tasks
from .migration import IdentityMigration, resolve_sync_identity
from .models import Task, TaskFilter, TaskId, new_task_id, utc_now_iso
from .remote import RemoteStoreClient
from .repositories import InMemoryKeyValueStore, KeyValueStore, StorageUnavailableError
from .scheduling import DebounceTimer, PeriodicTask
from .settings import Settings, get_settings

logger = logging.getLogger(__name__)

ChangeListener = Callable[[List[Task]], None]


@dataclass
class SyncState:
    """
    Mutable session state owned by a SyncOrchestrator.

    - tasks: the current reconciled list, in display order
    - sync_enabled: True after the last fetch succeeded; pushes only happen then
    - user_id: identity the list is synced under
    """

    tasks: List[Task] = field(default_factory=list)
    sync_enabled: bool = False
    user_id: Optional[str] = None


def _as_set(tasks: List[Task]) -> Set[str]:
    return {t.model_dump_json(by_alias=True) for t in tasks}


# PUBLIC_INTERFACE
class SyncOrchestrator:
    """
    Keeps the in-memory task list, the local cache and the remote copy in step.

    Local writes happen synchronously on every mutation. Pushes are debounced
    and only attempted while sync is enabled; pulls happen on start, on every
    resync interval and when the app becomes visible again. No failure on the
    remote side is raised to callers: the app keeps working from the local cache.
    """

    def __init__(
        self,
        local: LocalStore,
        remote: RemoteStoreClient,
        *,
        user_id: Optional[str] = None,
        canonical_user_id: Optional[str] = None,
        debounce_seconds: float = 2.0,
        resync_interval_seconds: float = 30.0,
        on_change: Optional[ChangeListener] = None,
    ) -> None:
        self._local = local
        self._remote = remote
        self._canonical_user_id = canonical_user_id
        self._on_change = on_change
        self.state = SyncState(user_id=user_id)
        self._debounce = DebounceTimer(debounce_seconds, self._push_current)
        self._resync = PeriodicTask(resync_interval_seconds, self.periodic_resync, name="todosync-resync")
        self._background: Set["asyncio.Task[Any]"] = set()

    # ---- lifecycle ----

    async def start(self) -> None:
        """Resolve the identity, migrate a legacy one, load, then start periodic resync."""
        identity = resolve_sync_identity(self._local, self._canonical_user_id)
        if identity.legacy_id is not None:
            await IdentityMigration(self._local, self._remote).migrate(identity.legacy_id, identity.user_id)
        self.state.user_id = identity.user_id
        logger.info("Syncing as %s", identity.user_id)
        await self.load_and_sync()
        self.start_periodic_resync()

    async def close(self) -> None:
        """
        Orderly shutdown: persist locally, wait for pushes already under way, then
        push the final state and wait for it before releasing the remote client.

        Unlike flush_on_suspend() this awaits the upload, so the last edits are on
        the remote once close() returns (or the push failed and was logged).
        """
        self._debounce.cancel()
        self._resync.stop()
        self._local.save_tasks(self.state.tasks)
        await self._debounce.drain()
        if self._background:
            await asyncio.gather(*list(self._background), return_exceptions=True)
        if self.state.sync_enabled and self.state.tasks:
            await self._push_current()
        await self._remote.aclose()

    def start_periodic_resync(self) -> None:
        self._resync.start()

    def stop_periodic_resync(self) -> None:
        self._resync.stop()

    # ---- sync ----

    async def load_and_sync(self) -> None:
        """
        Show the cached list right away, then reconcile it with the remote copy.

        On a failed fetch sync is disabled and the cached list stays in place.
        """
        self.state.tasks = self._local.load_tasks()
        self._notify()

        user_id = self._require_user_id()
        try:
            remote_tasks = await self._remote.fetch(user_id)
        except Exception:
            logger.exception("Remote fetch raised; continuing with local data")
            remote_tasks = None

        if remote_tasks is None:
            if self.state.sync_enabled:
                logger.warning("Sync disabled: remote unavailable, using %d local tasks", len(self.state.tasks))
            self.state.sync_enabled = False
            return

        # Mutations made while the fetch was in flight are already in state.tasks.
        current = self.state.tasks
        if remote_tasks:
            reconciled = merge_tasks(current, remote_tasks)
        else:
            reconciled = list(current)

        self.state.tasks = reconciled
        self._local.save_tasks(reconciled)
        if not self.state.sync_enabled:
            logger.info("Sync enabled (%d local, %d remote tasks)", len(current), len(remote_tasks))
        self.state.sync_enabled = True
        self._notify()

        if _as_set(reconciled) != _as_set(remote_tasks):
            self._debounce.schedule()

    async def periodic_resync(self) -> None:
        if not self.state.sync_enabled:
            logger.debug("Periodic resync skipped: sync disabled")
            return
        await self.load_and_sync()

    def schedule_save(self) -> None:
        """Persist locally now and, when syncing, push after the debounce window."""
        self._local.save_tasks(self.state.tasks)
        if self.state.sync_enabled:
            self._debounce.schedule()
        else:
            logger.debug("Sync disabled; saved locally only")

    async def _push_current(self) -> None:
        tasks = list(self.state.tasks)
        try:
            await self._remote.push(self._require_user_id(), tasks)
        except Exception:
            logger.exception("Remote push raised; local data stays authoritative")

    def flush_on_suspend(self) -> None:
        """
        Called when the app is hidden or about to exit. Never waits for the network.
        """
        self._debounce.cancel()
        self._resync.stop()
        self._local.save_tasks(self.state.tasks)

        if not (self.state.sync_enabled and self.state.tasks):
            return

        user_id = self._require_user_id()
        tasks = list(self.state.tasks)
        if self._remote.send_beacon(user_id, tasks):
            logger.info("Queued %d tasks for upload on suspend", len(tasks))
            return

        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.warning("Could not upload on suspend: beacon closed and no event loop")
            return
        task = loop.create_task(self._remote.push(user_id, tasks))
        self._background.add(task)
        task.add_done_callback(self._background.discard)

    async def resume(self) -> None:
        self.start_periodic_resync()
        await self.load_and_sync()

    async def on_visibility_change(self, visible: bool) -> None:
        if visible:
            await self.resume()
        else:
            self.flush_on_suspend()

    # ---- UI surface ----

    def get_tasks(self) -> List[Task]:
        return list(self.state.tasks)

    def get_filtered(self, task_filter: TaskFilter = TaskFilter.ALL, project: Optional[str] = None) -> List[Task]:
        tasks = self.state.tasks
        if project is not None:
            tasks = [t for t in tasks if t.project == project]
        if task_filter == TaskFilter.ACTIVE:
            return [t for t in tasks if not t.completed]
        if task_filter == TaskFilter.COMPLETED:
            return [t for t in tasks if t.completed]
        return list(tasks)

    def active_count(self) -> int:
        return sum(1 for t in self.state.tasks if not t.completed)

    def get_projects(self) -> List[str]:
        return self._local.load_projects()

    def add(self, text: str, project: Optional[str] = None) -> None:
        text = text.strip()
        if not text:
            return
        now = utc_now_iso()
        task = Task(id=new_task_id(), text=text, completed=False, project=project, createdAt=now, updatedAt=now)
        self.state.tasks = [task, *self.state.tasks]
        if task.project is not None:
            self.add_project(task.project)
        self._after_mutation()

    def toggle(self, task_id: TaskId) -> None:
        now = utc_now_iso()
        self.state.tasks = [
            t.model_copy(update={"completed": not t.completed, "updated_at": now}) if t.id == task_id else t
            for t in self.state.tasks
        ]
        self._after_mutation()

    def delete(self, task_id: TaskId) -> None:
        self.state.tasks = [t for t in self.state.tasks if t.id != task_id]
        self._after_mutation()

    def clear_completed(self) -> None:
        self.state.tasks = [t for t in self.state.tasks if not t.completed]
        self._after_mutation()

    def add_project(self, name: str) -> None:
        projects = self._local.load_projects()
        if name.strip() and name.strip() not in projects:
            self._local.save_projects([*projects, name])

    # ---- internals ----

    def _after_mutation(self) -> None:
        self.schedule_save()
        self._notify()

    def _notify(self) -> None:
        if self._on_change is not None:
            self._on_change(list(self.state.tasks))

    def _require_user_id(self) -> str:
        if self.state.user_id is None:
            self.state.user_id = resolve_sync_identity(self._local, self._canonical_user_id).user_id
        return self.state.user_id


# PUBLIC_INTERFACE
def create_orchestrator(
    settings: Optional[Settings] = None,
    *,
    on_change: Optional[ChangeListener] = None,
) -> SyncOrchestrator:
    """
    Build an orchestrator from settings: SQLite local cache at
    TODOSYNC_LOCAL_DB_PATH and an httpx client for TODOSYNC_API_URL.
    Call `await orchestrator.start()` from the app's event loop.
    """
    s = settings or get_settings()
    kv: KeyValueStore
    try:
        kv = SQLiteKeyValueStore(s.local_db_path)
    except StorageUnavailableError:
        logger.exception("Local cache unavailable; keeping tasks in memory for this session")
        kv = InMemoryKeyValueStore()
    local = LocalStore(kv)
    remote = RemoteStoreClient(s.api_url, timeout=s.request_timeout_seconds)
    return SyncOrchestrator(
        local,
        remote,
        canonical_user_id=s.user_id,
        debounce_seconds=s.debounce_seconds,
        resync_interval_seconds=s.resync_interval_seconds,
        on_change=on_change,
    )
