"""
Reconciliation of two task lists by identity and recency.

The result is a union: a task missing on one side is kept from the other, and a
task present on both sides resolves to the version with the later effective
time, the remote version winning ties.
"""
from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Dict, Iterable, List, Optional, Sequence

from .models import Task, TaskId

logger = logging.getLogger(__name__)

EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


# PUBLIC_INTERFACE
def parse_timestamp(value: Optional[str]) -> datetime:
    """
    Parse an ISO-8601 timestamp into an aware datetime.

    A trailing 'Z' is accepted, naive values are read as UTC, and missing or
    malformed values map to the epoch so that such tasks lose ties.
    """
    if not value:
        return EPOCH
    s = value.strip()
    if s.endswith(("Z", "z")):
        s = s[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(s)
    except ValueError:
        return EPOCH
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


# PUBLIC_INTERFACE
def effective_time(task: Task) -> datetime:
    """updatedAt if present, else createdAt, else the epoch."""
    return parse_timestamp(task.updated_at or task.created_at)


# PUBLIC_INTERFACE
def sort_by_created_desc(tasks: Iterable[Task]) -> List[Task]:
    """Display order: newest createdAt first; stable for equal timestamps."""
    return sorted(tasks, key=lambda t: parse_timestamp(t.created_at), reverse=True)


# PUBLIC_INTERFACE
def merge_tasks(local: Sequence[Task], remote: Sequence[Task]) -> List[Task]:
    """
    Merge the local and remote task lists.

    - Empty local: the remote list sorted by createdAt descending
    - Empty remote: the local list unchanged, order preserved
    - Otherwise: union by id where remote replaces local when its effective
      time is greater than or equal to the local one, sorted by createdAt
      descending

    Pure and idempotent: merge_tasks(merge_tasks(a, b), b) holds the same
    tasks as merge_tasks(a, b).
    """
    if not local:
        return sort_by_created_desc(remote)
    if not remote:
        return list(local)

    merged: Dict[TaskId, Task] = {}
    for task in local:
        merged[task.id] = task

    replaced = 0
    for task in remote:
        current = merged.get(task.id)
        if current is None or effective_time(task) >= effective_time(current):
            if current is not None and current != task:
                replaced += 1
            merged[task.id] = task

    result = sort_by_created_desc(merged.values())
    logger.debug(
        "Merged %d local + %d remote tasks into %d (%d local versions superseded)",
        len(local),
        len(remote),
        len(result),
        replaced,
    )
    return result
