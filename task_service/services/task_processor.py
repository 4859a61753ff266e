"""
Handlers for jobs consumed from the task queue.
"""
import logging
from typing import Any, Callable, Dict

from sqlalchemy.orm import Session

from ..core.exceptions import TaskNotFoundError
from ..repositories.task import TaskRepository
from .tasks import TaskService

logger = logging.getLogger(__name__)


class TaskProcessor:
    """Applies queued status-update jobs back onto stored tasks"""

    def __init__(self, session_factory: Callable[[], Session]):
        self.session_factory = session_factory

    def handle_status_update(self, message: Dict[str, Any]):
        """Handle task-status-update jobs"""
        data = message.get('data') or {}
        task_id = data.get('taskId')
        status = data.get('status')

        if not task_id or not status:
            logger.warning(f"Dropping malformed status update job: {message}")
            return

        logger.info(f"Processing status update for task {task_id}: {status}")

        db = self.session_factory()
        try:
            service = TaskService(TaskRepository(db))
            service.update_status(task_id, status)
        except TaskNotFoundError:
            # Deleted after the job was queued; retrying would never succeed
            logger.warning(f"Task {task_id} no longer exists, dropping status update")
        finally:
            db.close()
