import logging

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from ..logging_setup import setup_logging
from ..repositories import StorageError, StorageUnavailableError
from ..settings import get_settings
from .routers import todos as todos_router

logger = logging.getLogger(__name__)

openapi_tags = [
    {"name": "health", "description": "Service health and status endpoints."},
    {
        "name": "todos",
        "description": "Per-user task list storage used by sync clients (whole-list GET and POST).",
    },
]

_settings = get_settings()
setup_logging(console_level=_settings.log_level, log_file=_settings.log_file)

app = FastAPI(
    title="Todo Sync",
    description="Key-value endpoint that stores one task list per sync identity.",
    version="0.1.0",
    openapi_tags=openapi_tags,
)

# Configure CORS based on settings (.env -> CORS_ALLOW_ORIGINS), with '*' fallback
allow_all = (_settings.cors_allow_origins == ["*"]) or (len(_settings.cors_allow_origins) == 0)
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"] if allow_all else _settings.cors_allow_origins,
    allow_credentials=False,
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["Content-Type"],
)


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """
    Report malformed requests (missing userId, todos not an array) as 400.

    Response format:
        {
            "error": "ValidationError",
            "message": "Invalid request body",
            "detail": [... pydantic/fastapi error details ...]
        }
    """
    return JSONResponse(
        status_code=400,
        headers=todos_router.cors_headers(),
        content={
            "error": "ValidationError",
            "message": "Invalid request body",
            "detail": jsonable_encoder(exc.errors()),
        },
    )


@app.exception_handler(StorageUnavailableError)
async def storage_unavailable_handler(request: Request, exc: StorageUnavailableError) -> JSONResponse:
    logger.error("Storage unavailable: %s", exc)
    return JSONResponse(
        status_code=500,
        headers=todos_router.cors_headers(),
        content={
            "error": "StorageUnavailable",
            "message": "KV store not configured",
            "detail": "Set PERSISTENCE_BACKEND to 'memory' or 'sqlite' and check SQLITE_DB_PATH",
        },
    )


@app.exception_handler(StorageError)
async def storage_error_handler(request: Request, exc: StorageError) -> JSONResponse:
    logger.error("Storage error: %s", exc)
    return JSONResponse(
        status_code=500,
        headers=todos_router.cors_headers(),
        content={"error": "StorageError", "message": str(exc)},
    )


# PUBLIC_INTERFACE
@app.get("/", summary="Health Check", tags=["health"])
def health_check():
    """
    Health check endpoint.

    Returns:
        A JSON object indicating service health.
    """
    return {"message": "Healthy", "backend": _settings.persistence_backend}


app.include_router(todos_router.router)
