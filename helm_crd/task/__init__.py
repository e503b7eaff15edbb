"""Task tracking for the controller's long running tasks."""

from .context import get_task_service, task_service_context
from .service import TaskService

__all__ = ["get_task_service", "task_service_context", "TaskService"]
