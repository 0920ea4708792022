"""Task tracking for the controller.

Reconciliation passes run as tracked tasks so that callers can wait until all
outstanding work is done. Delayed retry passes run as background tasks that
are only cancelled, never awaited.
"""

from .context import task_service_context, get_task_service
from .service import TaskService

__all__ = ["get_task_service", "task_service_context", "TaskService"]
