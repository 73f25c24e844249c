from __future__ import annotations

import asyncio
import logging
import queue
import threading
from typing import Any, Dict, List, Optional, Sequence

import httpx

from .models import Task, parse_task_list, utc_now_iso

logger = logging.getLogger(__name__)


def build_payload(user_id: str, tasks: Sequence[Task]) -> Dict[str, Any]:
    """
    Body of POST /api/todos. Tasks that never got an updatedAt are stamped with
    the current time so the remote copy always carries a recency signal.
    """
    todos = []
    for task in tasks:
        data = task.to_json()
        if not data.get("updatedAt"):
            data["updatedAt"] = utc_now_iso()
        todos.append(data)
    return {"userId": user_id, "todos": todos}


class _BeaconQueue:
    """
    Non-blocking POST dispatch for teardown paths.

    Payloads are handed to a daemon worker thread; callers never wait for the
    request, and a pending request never keeps the interpreter alive.
    """

    _STOP = object()

    def __init__(self, url: str, timeout: float, transport: Optional[httpx.BaseTransport] = None) -> None:
        self._url = url
        self._timeout = timeout
        self._transport = transport
        self._queue: "queue.Queue[Any]" = queue.Queue()
        self._lock = threading.Lock()
        self._thread: Optional[threading.Thread] = None
        self._closed = False

    def submit(self, payload: Dict[str, Any]) -> bool:
        with self._lock:
            if self._closed:
                return False
            if self._thread is not None and not self._thread.is_alive():
                logger.warning("Beacon worker is gone; refusing new payloads")
                return False
            if self._thread is None:
                self._thread = threading.Thread(target=self._run, name="todosync-beacon", daemon=True)
                self._thread.start()
            self._queue.put(payload)
        return True

    def close(self) -> None:
        with self._lock:
            if self._closed:
                return
            self._closed = True
            if self._thread is not None:
                self._queue.put(self._STOP)

    def join(self, timeout: float) -> bool:
        """Wait up to timeout seconds for queued payloads to be sent. Return True when drained."""
        thread = self._thread
        if thread is None:
            return True
        thread.join(timeout)
        return not thread.is_alive()

    def _run(self) -> None:
        with httpx.Client(timeout=self._timeout, transport=self._transport) as client:
            while True:
                item = self._queue.get()
                if item is self._STOP:
                    return
                try:
                    response = client.post(self._url, json=item)
                    if response.is_success:
                        logger.info("Beacon delivered %d tasks", len(item["todos"]))
                    else:
                        logger.warning("Beacon rejected: HTTP %d", response.status_code)
                except httpx.HTTPError as exc:
                    logger.warning("Beacon failed: %s", exc)
                except Exception:
                    logger.exception("Beacon worker hit an unexpected error")


# PUBLIC_INTERFACE
class RemoteStoreClient:
    """
    Thin async client for the /api/todos key-value endpoint.

    fetch() and push() never raise for transport or protocol failures: they log
    and report the failure as None / False so callers can fall back to the
    local cache.
    """

    def __init__(
        self,
        api_url: str,
        *,
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        beacon_transport: Optional[httpx.BaseTransport] = None,
    ) -> None:
        self.api_url = api_url
        self._client = httpx.AsyncClient(timeout=timeout, transport=transport)
        self._beacon = _BeaconQueue(api_url, timeout, transport=beacon_transport)

    async def fetch(self, user_id: str) -> Optional[List[Task]]:
        """Return the remote task list for user_id, or None when it could not be read."""
        try:
            response = await self._client.get(self.api_url, params={"userId": user_id})
        except httpx.HTTPError as exc:
            logger.warning("Remote fetch for %s failed: %s", user_id, exc)
            return None

        if not response.is_success:
            logger.warning(
                "Remote fetch for %s rejected: HTTP %d %s", user_id, response.status_code, response.text
            )
            return None

        try:
            data = response.json()
        except ValueError:
            logger.warning("Remote fetch for %s returned a non-JSON body", user_id)
            return None
        if not isinstance(data, list):
            logger.warning("Remote fetch for %s returned %s instead of a list", user_id, type(data).__name__)
            return None
        return parse_task_list(data)

    async def push(self, user_id: str, tasks: Sequence[Task]) -> bool:
        """Replace the remote list for user_id. Return True on success."""
        payload = build_payload(user_id, tasks)
        try:
            response = await self._client.post(self.api_url, json=payload)
        except httpx.HTTPError as exc:
            logger.warning("Remote push for %s failed: %s", user_id, exc)
            return False
        if not response.is_success:
            logger.warning(
                "Remote push for %s rejected: HTTP %d %s", user_id, response.status_code, response.text
            )
            return False
        logger.info("Pushed %d tasks for %s", len(payload["todos"]), user_id)
        return True

    def send_beacon(self, user_id: str, tasks: Sequence[Task]) -> bool:
        """
        Queue a fire-and-forget push and return immediately.

        Returns False when the beacon queue is closed; the caller then has to use
        an ordinary push instead.
        """
        return self._beacon.submit(build_payload(user_id, tasks))

    async def aclose(self, beacon_timeout: float = 5.0) -> None:
        """
        Release the HTTP clients. Beacons already queued get up to beacon_timeout
        seconds to go out; the wait runs in a worker thread so the loop stays free.
        """
        self._beacon.close()
        drained = await asyncio.to_thread(self._beacon.join, beacon_timeout)
        if not drained:
            logger.warning("Beacon queue not drained within %.1fs", beacon_timeout)
        await self._client.aclose()
