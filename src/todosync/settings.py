from __future__ import annotations

import os
from dataclasses import dataclass
from typing import List, Optional


@dataclass(frozen=True)
class Settings:
    """
    Application settings loaded from environment variables.

    Server env vars:
    - PERSISTENCE_BACKEND: 'memory' (default) or 'sqlite'; anything else leaves the
      endpoint without storage (requests answer 500)
    - SQLITE_DB_PATH: path to the server sqlite db file. Default './data/todos.db'
    - CORS_ALLOW_ORIGINS: comma-separated list of allowed origins; '*' by default

    Client env vars:
    - TODOSYNC_API_URL: URL of the /api/todos endpoint
    - TODOSYNC_LOCAL_DB_PATH: path of the on-device cache. Default './data/local.db'
    - TODOSYNC_USER_ID: canonical sync identity; a random one is generated when unset
    - TODOSYNC_DEBOUNCE_SECONDS: quiet period before a push (default 2.0)
    - TODOSYNC_RESYNC_INTERVAL_SECONDS: periodic pull interval (default 30.0)
    - TODOSYNC_REQUEST_TIMEOUT_SECONDS: HTTP timeout for remote calls (default 10.0)

    Shared:
    - LOG_LEVEL: console log level (default INFO)
    - LOG_FILE: optional path of a full debug log file
    """

    persistence_backend: str
    sqlite_db_path: str
    cors_allow_origins: List[str]
    log_level: str
    log_file: Optional[str]
    api_url: str
    local_db_path: str
    user_id: Optional[str]
    debounce_seconds: float
    resync_interval_seconds: float
    request_timeout_seconds: float


def _get_env(name: str, default: str) -> str:
    value = os.getenv(name, default)
    if value is None or value == "":
        return default
    return value


def _get_optional_env(name: str) -> Optional[str]:
    value = os.getenv(name)
    if value is None or value.strip() == "":
        return None
    return value.strip()


def _parse_positive_float(value: str, default: float) -> float:
    try:
        parsed = float(value.strip())
    except ValueError:
        return default
    if parsed <= 0:
        return default
    return parsed


def _parse_origins(origins_value: str) -> List[str]:
    """
    Parse CORS origins from env. Supports:
    - '*' to allow all origins
    - Comma-separated list of origins
    """
    value = origins_value.strip()
    if value == "*":
        return ["*"]
    return [o.strip() for o in value.split(",") if o.strip()]


# PUBLIC_INTERFACE
def get_settings() -> Settings:
    """Return application settings loaded from environment variables."""
    backend = _get_env("PERSISTENCE_BACKEND", "memory").strip().lower()

    sqlite_path = _get_env("SQLITE_DB_PATH", "./data/todos.db").strip()
    origins = _parse_origins(_get_env("CORS_ALLOW_ORIGINS", "*"))

    log_level = _get_env("LOG_LEVEL", "INFO").strip().upper()

    return Settings(
        persistence_backend=backend,
        sqlite_db_path=sqlite_path,
        cors_allow_origins=origins,
        log_level=log_level,
        log_file=_get_optional_env("LOG_FILE"),
        api_url=_get_env("TODOSYNC_API_URL", "http://127.0.0.1:8000/api/todos").strip(),
        local_db_path=_get_env("TODOSYNC_LOCAL_DB_PATH", "./data/local.db").strip(),
        user_id=_get_optional_env("TODOSYNC_USER_ID"),
        debounce_seconds=_parse_positive_float(_get_env("TODOSYNC_DEBOUNCE_SECONDS", "2.0"), 2.0),
        resync_interval_seconds=_parse_positive_float(
            _get_env("TODOSYNC_RESYNC_INTERVAL_SECONDS", "30.0"), 30.0
        ),
        request_timeout_seconds=_parse_positive_float(
            _get_env("TODOSYNC_REQUEST_TIMEOUT_SECONDS", "10.0"), 10.0
        ),
    )
