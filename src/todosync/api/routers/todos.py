from __future__ import annotations

import json
import logging
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Response, status

from ...repositories import KeyValueStore, StorageError, get_kv_store
from ...schemas import ErrorResponse, SaveTodosRequest, SaveTodosResponse
from ...settings import get_settings

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/api/todos",
    tags=["todos"],
)

ALLOWED_METHODS = "GET, POST, OPTIONS"
ALLOWED_HEADERS = "Content-Type"


def storage_key(user_id: str) -> str:
    """Key the task list of user_id is stored under."""
    return f"todos:{user_id}"


def cors_headers() -> Dict[str, str]:
    """
    CORS headers sent on every endpoint response, whether or not the request
    carried an Origin header.

    Allow-Origin is only set here for the wildcard configuration; with an explicit
    origin list the middleware echoes the matching request origin instead.
    """
    headers = {
        "Access-Control-Allow-Methods": ALLOWED_METHODS,
        "Access-Control-Allow-Headers": ALLOWED_HEADERS,
    }
    origins = get_settings().cors_allow_origins
    if origins == ["*"] or not origins:
        headers["Access-Control-Allow-Origin"] = "*"
    return headers


def _get_store(store: KeyValueStore = Depends(get_kv_store)) -> KeyValueStore:
    """
    Dependency wrapper for the key-value store to keep signatures clean.
    """
    return store


# PUBLIC_INTERFACE
@router.get(
    "",
    response_model=List[Any],
    summary="Get Todos",
    description="Return the stored task list of a user, or an empty list when nothing is stored yet.",
    responses={
        200: {"description": "Task list (possibly empty)"},
        400: {"description": "userId missing"},
        500: {"model": ErrorResponse, "description": "Storage unavailable or stored data unreadable"},
    },
)
def get_todos(
    response: Response,
    user_id: Optional[str] = Query(None, alias="userId", description="Sync identity"),
    store: KeyValueStore = Depends(_get_store),
) -> List[Any]:
    """
    Read the task list stored for userId.
    """
    response.headers.update(cors_headers())
    if user_id is None or not user_id.strip():
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST, detail="userId required", headers=cors_headers()
        )

    raw = store.get(storage_key(user_id.strip()))
    if raw is None:
        return []
    try:
        todos = json.loads(raw)
    except ValueError as exc:
        raise StorageError(f"Stored task list for {user_id!r} is not valid JSON") from exc
    if not isinstance(todos, list):
        raise StorageError(f"Stored task list for {user_id!r} is not an array")
    return todos


# PUBLIC_INTERFACE
@router.post(
    "",
    response_model=SaveTodosResponse,
    summary="Save Todos",
    description="Replace the stored task list of a user with the list in the request body.",
    responses={
        200: {"description": "List stored"},
        400: {"model": ErrorResponse, "description": "userId missing or todos not an array"},
        500: {"model": ErrorResponse, "description": "Storage unavailable or write failed"},
    },
)
def save_todos(
    payload: SaveTodosRequest,
    response: Response,
    store: KeyValueStore = Depends(_get_store),
) -> SaveTodosResponse:
    """
    Store the complete list under todos:<userId>; last write wins.
    """
    response.headers.update(cors_headers())
    store.set(storage_key(payload.user_id), json.dumps(payload.todos, ensure_ascii=False))
    logger.info("Stored %d todos for %s", len(payload.todos), payload.user_id)
    return SaveTodosResponse(success=True)


# PUBLIC_INTERFACE
@router.options(
    "",
    summary="CORS preflight",
    description="Answer CORS preflight requests; the body is empty.",
    responses={200: {"description": "Preflight accepted"}},
)
def todos_options() -> Response:
    """
    Empty response carrying the CORS headers.
    """
    return Response(status_code=status.HTTP_200_OK, headers=cors_headers())
