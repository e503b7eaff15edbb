"""Tests for the TaskServiceImpl."""

import asyncio
from typing import Any

import pytest

from helm_crd.task import get_task_service, task_service_context
from helm_crd.task.service import TaskServiceImpl


@pytest.fixture
def task_service() -> TaskServiceImpl:
    """Fixture for creating a TaskServiceImpl instance."""
    return TaskServiceImpl()


async def test_create_and_complete_task(task_service: TaskServiceImpl) -> None:
    """Test creating and completing a task."""

    async def test_task() -> Any:
        await asyncio.sleep(0.1)
        return "done"

    task = task_service.create_task(test_task())
    assert task_service.get_num_active_tasks() == 1

    result = await task
    assert result == "done"
    assert task_service.get_num_active_tasks() == 0


async def test_block_till_done(task_service: TaskServiceImpl) -> None:
    """Test blocking until all tasks are done."""

    async def test_task() -> Any:
        await asyncio.sleep(0.1)
        return "done"

    tasks = [task_service.create_task(test_task()) for _ in range(3)]
    assert task_service.get_num_active_tasks() == 3

    await task_service.block_till_done()

    assert task_service.get_num_active_tasks() == 0
    for task in tasks:
        assert task.done()
        assert task.result() == "done"


async def test_block_till_done_no_tasks(task_service: TaskServiceImpl) -> None:
    """Test blocking when there is nothing to wait for."""
    await task_service.block_till_done()


async def test_task_failure(task_service: TaskServiceImpl) -> None:
    """Test handling of task failures."""

    async def failing_task() -> Any:
        await asyncio.sleep(0.1)
        raise ValueError("Test error")

    task = task_service.create_task(failing_task())

    with pytest.raises(ValueError, match="Test error"):
        await task

    assert task_service.get_num_active_tasks() == 0


async def test_task_cancellation(task_service: TaskServiceImpl) -> None:
    """Test task cancellation."""

    async def cancellable_task() -> Any:
        await asyncio.sleep(10)
        return "should not get here"

    task = task_service.create_task(cancellable_task())
    task.cancel()

    # Give the event loop a chance to process the cancellation
    await asyncio.sleep(0.01)

    assert task_service.get_num_active_tasks() == 0
    assert task.cancelled()


async def test_background_task_not_waited_on(task_service: TaskServiceImpl) -> None:
    """Test background tasks are not waited on by block_till_done."""
    started = asyncio.Event()

    async def forever() -> None:
        started.set()
        await asyncio.sleep(100)

    task = task_service.create_background_task(forever(), name="informer")
    await started.wait()
    assert task_service.get_num_background_tasks() == 1
    assert task_service.get_num_active_tasks() == 0

    await asyncio.wait_for(task_service.block_till_done(), 1.0)
    assert not task.done()

    await task_service.shutdown()
    assert task.cancelled()
    assert task_service.get_num_background_tasks() == 0


async def test_shutdown_with_failed_background_task(
    task_service: TaskServiceImpl,
) -> None:
    """Test shutdown when a background task already failed."""

    async def failing_task() -> None:
        raise ValueError("Test error")

    async def forever() -> None:
        await asyncio.sleep(100)

    failed = task_service.create_background_task(failing_task())
    running = task_service.create_background_task(forever())
    await asyncio.sleep(0.01)
    assert failed.done()
    assert task_service.get_num_background_tasks() == 1

    await task_service.shutdown()
    assert running.cancelled()


async def test_shutdown_no_tasks(task_service: TaskServiceImpl) -> None:
    """Test shutdown with nothing running."""
    await task_service.shutdown()


def test_context() -> None:
    """Test the task service context."""
    with task_service_context() as task_service:
        service1 = get_task_service()
        assert isinstance(service1, TaskServiceImpl)
        assert service1 is task_service

        # Should get the same instance
        service2 = get_task_service()
        assert service1 is service2

    # Should get a different instance
    with task_service_context() as task_service:
        service3 = get_task_service()
        assert service1 is not service3
        assert task_service is service3


def test_context_existing_service() -> None:
    """Test the context can install an existing service."""
    existing = TaskServiceImpl()
    with task_service_context(existing) as task_service:
        assert task_service is existing
        assert get_task_service() is existing
