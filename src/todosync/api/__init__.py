"""
HTTP endpoint storing one task list per sync identity.

The FastAPI application lives in todosync.api.main (serve it with any ASGI
server, e.g. `uvicorn todosync.api.main:app`).
"""
