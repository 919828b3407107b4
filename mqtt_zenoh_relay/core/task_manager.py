"""
Task lifecycle management for the relay loops.

Every supervised loop runs in its own asyncio task. The manager keeps a
reference to each one, logs tasks that end with an exception, and cancels
whatever is still running on shutdown so no task outlives the relay.
"""

import asyncio
from collections.abc import Coroutine
from typing import Any

from loguru import logger


class TaskManager:
    """Manages background tasks with proper lifecycle cleanup."""

    def __init__(self, name: str = "TaskManager") -> None:
        self.name = name
        self.tasks: set[asyncio.Task[Any]] = set()
        self._shutdown_requested = False

    def create_task(
        self, coro: Coroutine[Any, Any, Any], name: str | None = None
    ) -> asyncio.Task[Any]:
        """Create and track a background task."""
        if self._shutdown_requested:
            coro.close()
            raise RuntimeError("Cannot create tasks after shutdown requested")

        task = asyncio.create_task(coro, name=name)
        self.tasks.add(task)
        task.add_done_callback(self._task_completed)

        logger.debug(f"[{self.name}] Created task {task.get_name()}")
        return task

    def _task_completed(self, task: asyncio.Task[Any]) -> None:
        self.tasks.discard(task)

        if task.cancelled():
            logger.debug(f"[{self.name}] Task {task.get_name()} was cancelled")
        elif task.exception() is not None:
            logger.error(
                f"[{self.name}] Task {task.get_name()} failed: {task.exception()!r}"
            )
        else:
            logger.debug(f"[{self.name}] Task {task.get_name()} completed")

    async def shutdown(self, timeout: float = 5.0) -> None:
        """Cancel all managed tasks and wait for them to finish."""
        if self._shutdown_requested:
            return
        self._shutdown_requested = True

        pending = [task for task in self.tasks if not task.done()]
        if not pending:
            logger.debug(f"[{self.name}] No tasks to shutdown")
            return

        logger.info(f"[{self.name}] Shutting down {len(pending)} background tasks")
        for task in pending:
            task.cancel()

        _, still_pending = await asyncio.wait(pending, timeout=timeout)
        for task in still_pending:
            logger.warning(
                f"[{self.name}] Task {task.get_name()} did not stop within {timeout}s"
            )

        self.tasks.clear()
        logger.info(f"[{self.name}] Task shutdown complete")

    @property
    def shutdown_requested(self) -> bool:
        return self._shutdown_requested

    def __len__(self) -> int:
        return len(self.tasks)

    def __bool__(self) -> bool:
        return bool(self.tasks)
