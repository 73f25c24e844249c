from __future__ import annotations

import logging
import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

logger = logging.getLogger(__name__)

TaskId = Union[int, str]

_TRUTHY = {"1", "true", "yes", "on"}


class TaskFilter(str, Enum):
    """View filters offered to the UI."""

    ALL = "all"
    ACTIVE = "active"
    COMPLETED = "completed"


# PUBLIC_INTERFACE
class Task(BaseModel):
    """
    A single to-do item as stored locally and exchanged with the remote store.

    Fields:
    - id: Opaque identifier, stable for the task's lifetime (legacy clients used
      integer millisecond timestamps, new tasks use random hex strings)
    - text: User-entered content, stored exactly as typed
    - completed: Completion flag
    - project: Optional free-form project tag
    - created_at: ISO-8601 creation timestamp (wire name 'createdAt'), never mutated
    - updated_at: ISO-8601 last-mutation timestamp (wire name 'updatedAt'), the
      only conflict-resolution signal

    Fields written by other clients are preserved untouched so that a round trip
    through this client never drops data.
    """

    model_config = ConfigDict(
        populate_by_name=True,
        extra="allow",
        frozen=True,
        json_schema_extra={
            "example": {
                "id": "3f2b9c1e6f0a4d5e9b7c1a2d3e4f5a6b",
                "text": "Buy groceries",
                "completed": False,
                "project": "home",
                "createdAt": "2025-01-25T10:15:30.123Z",
                "updatedAt": "2025-01-26T09:00:00.000Z",
            }
        },
    )

    id: TaskId = Field(..., description="Unique identifier of the task")
    text: str = Field(default="", description="Task content")
    completed: bool = Field(default=False, description="Completion status flag")
    project: Optional[str] = Field(default=None, description="Optional project tag")
    created_at: Optional[str] = Field(default=None, alias="createdAt", description="Creation timestamp")
    updated_at: Optional[str] = Field(default=None, alias="updatedAt", description="Last update timestamp")

    @field_validator("id", mode="before")
    @classmethod
    def validate_id(cls, v: Any) -> Any:
        if isinstance(v, bool):
            raise ValueError("id must be an integer or a non-empty string")
        if isinstance(v, str) and not v.strip():
            raise ValueError("id must not be empty")
        return v

    @field_validator("text", mode="before")
    @classmethod
    def normalize_text(cls, v: Any) -> str:
        if v is None:
            return ""
        return v if isinstance(v, str) else str(v)

    @field_validator("completed", mode="before")
    @classmethod
    def normalize_completed(cls, v: Any) -> bool:
        if isinstance(v, bool):
            return v
        if isinstance(v, str):
            return v.strip().lower() in _TRUTHY
        return bool(v)

    @field_validator("project", mode="before")
    @classmethod
    def normalize_project(cls, v: Any) -> Optional[str]:
        if v is None:
            return None
        s = v if isinstance(v, str) else str(v)
        return s if s.strip() else None

    @field_validator("created_at", "updated_at", mode="before")
    @classmethod
    def normalize_timestamp(cls, v: Any) -> Optional[str]:
        """
        Keep timestamps as the strings we received. Malformed values are not
        rejected here; the merge treats them as epoch-zero.
        """
        if v is None:
            return None
        return v if isinstance(v, str) else str(v)

    def to_json(self) -> Dict[str, Any]:
        """Return the camelCase wire representation, omitting unset optional fields."""
        return self.model_dump(by_alias=True, exclude_none=True)


# PUBLIC_INTERFACE
def parse_task_list(data: Any) -> List[Task]:
    """
    Normalize decoded JSON into a list of Tasks.

    Non-list input yields an empty list. Entries that are not objects or that
    fail validation (e.g. missing id) are dropped with a warning instead of
    failing the whole list.
    """
    if not isinstance(data, list):
        return []
    tasks: List[Task] = []
    for index, item in enumerate(data):
        if not isinstance(item, dict):
            logger.warning("Skipping non-object task entry at index %d", index)
            continue
        try:
            tasks.append(Task.model_validate(item))
        except ValidationError as exc:
            logger.warning("Skipping invalid task entry at index %d: %s", index, exc.errors())
    return tasks


# PUBLIC_INTERFACE
def new_task_id() -> str:
    """Return a random task id that will not collide across devices."""
    return uuid.uuid4().hex


# PUBLIC_INTERFACE
def utc_now_iso() -> str:
    """Current UTC time as ISO-8601 with millisecond precision and a 'Z' suffix."""
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")
