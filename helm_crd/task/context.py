"""Access to the TaskService of the running controller.

The command line tool installs one service for the lifetime of the
controller with `task_service_context`; the controller looks it up with
`get_task_service` when it starts the informer and the workers.
"""

from collections.abc import Iterator
import contextlib
import contextvars

from .service import TaskService, TaskServiceImpl

__all__: list[str] = []

_current: contextvars.ContextVar[TaskService | None] = contextvars.ContextVar(
    "helm_crd_task_service", default=None
)


def get_task_service() -> TaskService:
    """Return the TaskService of the current context.

    A service is created and installed on first use when none was set.
    """
    if (service := _current.get()) is None:
        service = TaskServiceImpl()
        _current.set(service)
    return service


@contextlib.contextmanager
def task_service_context(service: TaskService | None = None) -> Iterator[TaskService]:
    """Install a TaskService for the duration of the block.

    The previous service, if any, is restored on exit.
    """
    if service is None:
        service = TaskServiceImpl()
    token = _current.set(service)
    try:
        yield service
    finally:
        _current.reset(token)
