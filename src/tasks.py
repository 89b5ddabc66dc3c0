from __future__ import annotations

import asyncio
import logging
from functools import partial
from typing import TYPE_CHECKING, Any

from observability import ErrorType, Metrics

if TYPE_CHECKING:
    from collections.abc import Coroutine


class TaskManager:
    def __init__(self, shutdown_event: asyncio.Event, metrics: Metrics) -> None:
        self.logger = logging.getLogger(self.__class__.__name__)
        self.metrics = metrics

        self.shutdown_event = shutdown_event

        # References to running tasks, prevents them from being garbage collected
        self._tasks: set[asyncio.Task[Any]] = set()

    @property
    def tasks(self) -> frozenset[asyncio.Task[Any]]:
        return frozenset(self._tasks)

    def task_done_callback(self, task: asyncio.Task[Any]) -> None:
        try:
            exc = task.exception()
        except asyncio.CancelledError:
            if not self.shutdown_event.is_set():
                # Cancellations are only expected while shutting down
                self.logger.error(f"Task {task.get_name()} was cancelled")
                self.metrics.errors_c.labels(error_type=ErrorType.OTHER.value).inc()
        else:
            if exc is not None:
                self.logger.error(
                    f"Task {task.get_name()} failed with exception {exc!r}",
                    exc_info=exc,
                )
                self.metrics.errors_c.labels(error_type=ErrorType.OTHER.value).inc()
        finally:
            self._tasks.discard(task)

    def create_task(
        self,
        coro: Coroutine[Any, Any, None],
        delay: float = 0.0,
        name: str | None = None,
    ) -> asyncio.Task[None] | None:
        """Create and track a task from the given coroutine.

        Returns None if the task was not started because
        a shutdown is in progress.
        """

        async def _delayed_coro() -> None:
            if delay > 0:
                await asyncio.sleep(delay)
            await coro

        if self.shutdown_event.is_set():
            self.logger.debug(f"Not starting task {name}, shutting down...")
            coro.close()
            return None

        task: asyncio.Task[None] = asyncio.create_task(_delayed_coro(), name=name)
        task.add_done_callback(partial(self.task_done_callback))
        self._tasks.add(task)
        return task

    def cancel_all(self) -> None:
        for task in self._tasks:
            task.cancel()

    async def wait_all(self) -> None:
        """Waits for all tracked tasks to finish, e.g. after cancelling them."""
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)
