# listings_app/coalesce.py
from __future__ import annotations

import asyncio
from functools import partial
from typing import Any, Awaitable, Callable, Dict, Optional, TypeVar

from listings_app.logs import get_logger
from listings_app.metrics import metrics

T = TypeVar("T")

logger = get_logger("listings.coalesce")


class RequestCoalescer:
    """
    Collapses concurrent identical reads into one in-flight task per key.
    - The first caller's operation runs once; later callers await the same task
    - Every waiter sees the same value or the same exception
    - The key is released when the task settles, whatever the outcome
    - Waiters are shielded: cancelling one does not cancel the shared task
    Nothing here retries; an optional timeout bounds each shared task.
    """

    def __init__(self, timeout: Optional[float] = None):
        self.timeout = timeout
        self._in_flight: Dict[str, "asyncio.Task[Any]"] = {}

    def __len__(self) -> int:
        return len(self._in_flight)

    def __contains__(self, key: str) -> bool:
        return key in self._in_flight

    async def dedupe(self, key: str, operation: Callable[[], Awaitable[T]]) -> T:
        task = self._in_flight.get(key)
        if task is None:
            task = asyncio.create_task(self._run(operation), name=f"coalesce:{key}")
            self._in_flight[key] = task
            task.add_done_callback(partial(self._settled, key))
            metrics.inc("coalesce.started")
        else:
            metrics.inc("coalesce.joined")
            logger.debug("Joined in-flight request", key=key)
        return await asyncio.shield(task)

    def forget(self) -> int:
        """
        Detach every in-flight task so the next caller for any key starts afresh.
        Detached tasks still run to completion for the callers already awaiting them.
        """
        n = len(self._in_flight)
        self._in_flight.clear()
        return n

    async def _run(self, operation: Callable[[], Awaitable[T]]) -> T:
        if self.timeout is None:
            return await operation()
        return await asyncio.wait_for(operation(), timeout=self.timeout)

    def _settled(self, key: str, task: "asyncio.Task[Any]") -> None:
        # a forget() may have let a newer task take the slot
        if self._in_flight.get(key) is task:
            del self._in_flight[key]
        if not task.cancelled():
            # mark retrieved; waiters get the exception through shield()
            task.exception()
