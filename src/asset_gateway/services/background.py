"""Detached background work that must never hold up a response."""

import asyncio
import logging
from typing import Awaitable, Set

logger = logging.getLogger(__name__)


class BackgroundTasks:
    """Runs fire-and-forget coroutines on the event loop.

    Tasks are referenced until they finish so they are not garbage collected
    mid-flight. A failing task is logged and otherwise ignored.
    """

    def __init__(self):
        self._tasks: Set[asyncio.Task] = set()

    def __len__(self) -> int:
        return len(self._tasks)

    def spawn(self, coro: Awaitable[None], name: str) -> asyncio.Task:
        """Schedule ``coro`` without waiting for it.

        Args:
            coro: Coroutine to run
            name: Task name used in log messages

        Returns:
            The scheduled task
        """
        task = asyncio.ensure_future(coro)
        task.set_name(name)
        self._tasks.add(task)
        task.add_done_callback(self._on_done)
        return task

    def _on_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            logger.warning(f"Background task {task.get_name()} was cancelled")
            return
        error = task.exception()
        if error is not None:
            logger.error(
                f"Background task {task.get_name()} failed: {error}",
                exc_info=error,
            )

    async def drain(self, timeout: float = 10.0) -> None:
        """Wait for pending tasks, cancelling whatever outlives ``timeout``.

        Args:
            timeout: Seconds to wait before cancelling
        """
        if not self._tasks:
            return

        pending = list(self._tasks)
        logger.info(f"Waiting for {len(pending)} background task(s)")
        _, still_running = await asyncio.wait(pending, timeout=timeout)
        for task in still_running:
            task.cancel()
        if still_running:
            await asyncio.wait(still_running)
