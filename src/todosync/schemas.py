from __future__ import annotations

from typing import Any, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


# PUBLIC_INTERFACE
class SaveTodosRequest(BaseModel):
    """
    Body of POST /api/todos: the full task list of one user.

    Task entries are stored exactly as received, whatever their JSON type; the
    endpoint does not interpret them.
    """

    model_config = ConfigDict(
        populate_by_name=True,
        json_schema_extra={
            "example": {
                "userId": "my_todos_user",
                "todos": [
                    {
                        "id": 1706178930123,
                        "text": "Buy groceries",
                        "completed": False,
                        "createdAt": "2025-01-25T10:15:30.123Z",
                        "updatedAt": "2025-01-25T10:15:30.123Z",
                    }
                ],
            }
        },
    )

    user_id: str = Field(..., alias="userId", description="Sync identity the list is stored under")
    todos: List[Any] = Field(..., description="Complete task list of the user")

    @field_validator("user_id")
    @classmethod
    def validate_user_id(cls, v: str) -> str:
        """
        Reject blank identities; they would all share one storage key.
        """
        s = v.strip()
        if not s:
            raise ValueError("userId must not be empty")
        return s


# PUBLIC_INTERFACE
class SaveTodosResponse(BaseModel):
    """Acknowledgement returned by POST /api/todos."""

    success: bool = Field(..., description="True when the list was stored")


# PUBLIC_INTERFACE
class ErrorResponse(BaseModel):
    """
    Error envelope shared by all failure responses.
    """

    error: str = Field(..., description="Error class, e.g. ValidationError or StorageUnavailable")
    message: str = Field(..., description="Human readable explanation")
    detail: Optional[Any] = Field(default=None, description="Optional structured detail")
