"""Task tracking service.

Tracks reconciliation tasks so callers can wait for the controller to become
idle, and background tasks (such as delayed retries) so they can be cancelled
on shutdown.
"""

import asyncio
from abc import ABC, abstractmethod
from functools import partial
import logging
from typing import Any, Coroutine

_LOGGER = logging.getLogger(__name__)

__all__: list[str] = []


class TaskService(ABC):
    """Service for tracking asynchronous tasks."""

    @abstractmethod
    def create_task(
        self, coro: Coroutine[None, None, Any], name: str | None = None
    ) -> asyncio.Task[Any]:
        """Create and track a task that `block_till_done` waits for."""

    @abstractmethod
    def create_background_task(
        self, coro: Coroutine[None, None, Any], name: str | None = None
    ) -> asyncio.Task[Any]:
        """Create and track a task that `block_till_done` does not wait for."""

    @abstractmethod
    async def block_till_done(self) -> None:
        """Wait until no tracked non-background task is running.

        Tasks created while waiting are waited for as well.
        """

    @abstractmethod
    async def cancel_background_tasks(self) -> None:
        """Cancel all background tasks and wait for them to finish."""

    @abstractmethod
    def get_num_active_tasks(self) -> int:
        """Get the number of active non-background tasks."""


class TaskServiceImpl(TaskService):
    """TaskService backed by sets of asyncio tasks."""

    def __init__(self) -> None:
        """Initialize the task service."""
        self._active_tasks: set[asyncio.Task[Any]] = set()
        self._background_tasks: set[asyncio.Task[Any]] = set()

    def create_task(
        self, coro: Coroutine[None, None, Any], name: str | None = None
    ) -> asyncio.Task[Any]:
        task = asyncio.create_task(coro, name=name)
        self._active_tasks.add(task)
        task.add_done_callback(partial(self._task_done, self._active_tasks))
        return task

    def create_background_task(
        self, coro: Coroutine[None, None, Any], name: str | None = None
    ) -> asyncio.Task[Any]:
        task = asyncio.create_task(coro, name=name)
        self._background_tasks.add(task)
        task.add_done_callback(partial(self._task_done, self._background_tasks))
        return task

    def _task_done(
        self, task_set: set[asyncio.Task[Any]], task: asyncio.Task[Any]
    ) -> None:
        task_set.discard(task)
        if task.cancelled():
            return
        if (err := task.exception()) is not None:
            _LOGGER.error("Task %s failed: %s", task.get_name(), err)

    async def block_till_done(self) -> None:
        while active_tasks := list(self._active_tasks):
            _LOGGER.debug("Waiting for %d tasks to complete", len(active_tasks))
            await asyncio.gather(*active_tasks, return_exceptions=True)
        await asyncio.sleep(0)

    async def cancel_background_tasks(self) -> None:
        tasks = list(self._background_tasks)
        if not tasks:
            return
        _LOGGER.debug("Cancelling %d background tasks", len(tasks))
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)

    def get_num_active_tasks(self) -> int:
        return len(self._active_tasks)
