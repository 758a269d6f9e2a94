"""Fire-and-forget background work.

Request handlers hand coroutines to a TaskRunner instead of awaiting them,
so cache writes and revalidation never delay a response. Failures are
logged and dropped.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Coroutine

logger = logging.getLogger(__name__)


class TaskRunner:
    """Schedules coroutines on the running loop and keeps them referenced."""

    def __init__(self) -> None:
        self._tasks: set[asyncio.Task] = set()

    def submit(self, coro: Coroutine, name: str | None = None) -> asyncio.Task:
        task = asyncio.get_running_loop().create_task(coro, name=name)
        self._tasks.add(task)
        task.add_done_callback(self._finished)
        return task

    def _finished(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error(
                "Background task %s failed: %s", task.get_name(), exc,
                exc_info=(type(exc), exc, exc.__traceback__),
            )

    @property
    def pending(self) -> int:
        return len(self._tasks)

    async def drain(self) -> None:
        """Wait for everything submitted so far, including work it submits."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
