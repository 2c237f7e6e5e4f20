import asyncio
from typing import Awaitable, Callable, Set
from loguru import logger


class TaskHandle:
    """Reference to a detached background job. There is no cancel hook."""

    def __init__(self, name: str, task: "asyncio.Task[None]"):
        self.name = name
        self._task = task

    def done(self) -> bool:
        return self._task.done()


class BackgroundTaskRunner:
    """
    Executor for fire-and-forget work.
    Callers spawn and return immediately; tests call `drain()` to wait for
    every outstanding job deterministically.
    """

    def __init__(self):
        # Strong references so the loop does not garbage collect running jobs
        self._tasks: Set["asyncio.Task[None]"] = set()

    @property
    def pending(self) -> int:
        return len(self._tasks)

    def spawn(self, fn: Callable[[], Awaitable[None]], name: str) -> TaskHandle:
        loop = asyncio.get_running_loop()
        task = loop.create_task(self._run(fn, name), name=name)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        logger.debug(f"Spawned background task '{name}'")
        return TaskHandle(name, task)

    async def _run(self, fn: Callable[[], Awaitable[None]], name: str) -> None:
        try:
            await fn()
        except Exception:
            # Task bodies handle their own failures; this is the last line
            logger.exception(f"Background task '{name}' raised")

    async def drain(self) -> None:
        # Jobs may spawn follow-up jobs, so loop until the set stays empty
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
