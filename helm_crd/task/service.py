"""Task tracking service for the controller.

The informer and each worker run as background tasks owned by the service so
they can be cancelled together when the controller stops.
"""

from abc import ABC, abstractmethod
import asyncio
from functools import partial
import logging
from typing import Any, Coroutine

_LOGGER = logging.getLogger(__name__)

__all__: list[str] = []


class TaskService(ABC):
    """Service for tracking and waiting for asynchronous tasks."""

    @abstractmethod
    def create_task(
        self, coro: Coroutine[None, None, Any], name: str | None = None
    ) -> asyncio.Task[Any]:
        """Create and track a new task that is expected to finish.

        Args:
            coro: The coroutine to run as a task
            name: Name of the task for debugging

        Returns:
            The created task
        """

    @abstractmethod
    def create_background_task(
        self, coro: Coroutine[None, None, Any], name: str | None = None
    ) -> asyncio.Task[Any]:
        """Create and track a long running task that runs until cancelled.

        Args:
            coro: The coroutine to run as a task
            name: Name of the task for debugging

        Returns:
            The created task
        """

    @abstractmethod
    async def block_till_done(self) -> None:
        """Wait for all active non-background tasks to complete."""

    @abstractmethod
    async def shutdown(self) -> None:
        """Cancel all background tasks and wait for them to finish."""

    @abstractmethod
    def get_num_active_tasks(self) -> int:
        """Get the number of active non-background tasks."""

    @abstractmethod
    def get_num_background_tasks(self) -> int:
        """Get the number of running background tasks."""


class TaskServiceImpl(TaskService):
    """Tracks tasks in sets, logging any task that fails."""

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
        """Callback when a task is done."""
        task_set.discard(task)
        if task.cancelled():
            return
        if (err := task.exception()) is not None:
            _LOGGER.error("Task %s failed: %s", task.get_name(), err)

    async def block_till_done(self) -> None:
        """Wait for all active tasks to complete.

        This waits on a copy of the current active tasks so it is safe to call
        even if new tasks are created while waiting.
        """
        active_tasks = list(self._active_tasks)
        if active_tasks:
            _LOGGER.debug("Waiting for %d tasks to complete", len(active_tasks))
            await asyncio.gather(*active_tasks)
        else:
            await asyncio.sleep(0)

    async def shutdown(self) -> None:
        """Cancel all background tasks and wait for them to finish."""
        background_tasks = list(self._background_tasks)
        if not background_tasks:
            return
        _LOGGER.debug("Cancelling %d background tasks", len(background_tasks))
        for task in background_tasks:
            task.cancel()
        await asyncio.gather(*background_tasks, return_exceptions=True)

    def get_num_active_tasks(self) -> int:
        return len(self._active_tasks)

    def get_num_background_tasks(self) -> int:
        return len(self._background_tasks)
