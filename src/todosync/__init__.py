"""
Personal to-do list with cross-device sync.

Client side: SyncOrchestrator keeps the in-memory list, the on-device cache
and the remote copy reconciled with merge_tasks. Server side: todosync.api
is the key-value endpoint the client talks to.
"""

from .merge import merge_tasks
from .models import Task, TaskFilter
from .sync import SyncOrchestrator, SyncState, create_orchestrator

__all__ = [
    "SyncOrchestrator",
    "SyncState",
    "Task",
    "TaskFilter",
    "create_orchestrator",
    "merge_tasks",
]

__version__ = "0.1.0"
