import asyncio
from typing import Awaitable, Set

from config.logging_config import log


class BackgroundTasks:
    """
    Fire-and-forget work spawned after a primary response is ready
    (cache writes, cache purges). A failing task is logged and never
    propagates to whoever spawned it.
    """

    def __init__(self):
        self._tasks: Set[asyncio.Task] = set()

    def spawn(self, coro: Awaitable, name: str = "background") -> asyncio.Task:
        task = asyncio.ensure_future(coro)
        self._tasks.add(task)
        task.add_done_callback(lambda t: self._finished(t, name))
        return task

    def _finished(self, task: asyncio.Task, name: str) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            log.warning(f"Background task {name} was cancelled")
            return
        exc = task.exception()
        if exc is not None:
            log.error(f"Background task {name} failed: {exc}")

    @property
    def pending(self) -> int:
        return len(self._tasks)

    async def drain(self) -> None:
        """Wait for outstanding tasks; used at shutdown so writes are not lost."""
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
