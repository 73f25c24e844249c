from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, Optional, Set

logger = logging.getLogger(__name__)

AsyncCallback = Callable[[], Awaitable[None]]


# PUBLIC_INTERFACE
class DebounceTimer:
    """
    Trailing-edge debounce on the running asyncio loop.

    Every schedule() call cancels the pending timer and arms a new one, so only
    the last call within the window fires. Once fired, the callback runs as its
    own task: later schedule()/cancel() calls do not interrupt it.
    """

    def __init__(self, delay: float, callback: AsyncCallback) -> None:
        self.delay = delay
        self._callback = callback
        self._handle: Optional[asyncio.TimerHandle] = None
        self._inflight: Set["asyncio.Task[None]"] = set()

    @property
    def pending(self) -> bool:
        return self._handle is not None

    def schedule(self) -> bool:
        """(Re)arm the timer. Return False when there is no running loop."""
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.debug("No running event loop; debounce not armed")
            return False
        self.cancel()
        self._handle = loop.call_later(self.delay, self._fire)
        return True

    def cancel(self) -> None:
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None

    def _fire(self) -> None:
        self._handle = None
        task = asyncio.get_running_loop().create_task(self._callback())
        self._inflight.add(task)
        task.add_done_callback(self._inflight.discard)

    async def drain(self) -> None:
        """Wait for callbacks that already started."""
        if self._inflight:
            await asyncio.gather(*list(self._inflight), return_exceptions=True)


# PUBLIC_INTERFACE
class PeriodicTask:
    """
    Run a coroutine callback every `interval` seconds until stopped.

    A failing cycle is logged and the next one still runs.
    """

    def __init__(self, interval: float, callback: AsyncCallback, *, name: str = "periodic") -> None:
        self.interval = interval
        self._callback = callback
        self._name = name
        self._task: Optional["asyncio.Task[None]"] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.running:
            return
        self._task = asyncio.get_running_loop().create_task(self._run(), name=self._name)

    def stop(self) -> None:
        if self._task is not None:
            self._task.cancel()
            self._task = None

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self.interval)
            try:
                await self._callback()
            except Exception:
                logger.exception("%s cycle failed", self._name)
