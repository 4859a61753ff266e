"""
Task lifecycle service.

Orchestrates task writes against the repository and publishes a
``task-status-update`` job whenever a task gets a (new) status. Publishing is
best-effort and happens off the caller's thread: the store write is never
rolled back and the caller never waits on or sees a queue failure, so the
queue's view of a task can lag behind the database.
"""
import logging
from concurrent.futures import Executor, ThreadPoolExecutor
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Protocol

from ..core.config import get_settings
from ..core.exceptions import TaskNotFoundError, UserNotFoundError
from ..models.task import Task, TaskPriority, TaskStatus
from ..repositories.task import TaskRepository
from ..schemas.task import TaskCreate, TaskStatistics, TaskUpdate

logger = logging.getLogger(__name__)
settings = get_settings()

TASK_STATUS_UPDATE_JOB = "task-status-update"

UPDATABLE_FIELDS = ("title", "description", "status", "priority", "due_date")

# OFFSET = (page - 1) * limit must still fit a signed BIGINT
MAX_PAGINATION_VALUE = 2 ** 31 - 1

# One worker keeps jobs in submission order on the single broker connection
publish_executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="task-publisher")


class JobQueue(Protocol):
    def add(self, job_name: str, data: Dict[str, Any]) -> bool:
        ...


def convert_datetime_to_utc(dt: Optional[datetime]) -> Optional[datetime]:
    """Convert datetime to UTC timezone-aware datetime"""
    if dt is None:
        return None

    if dt.tzinfo is None:
        # Naive datetime, assume UTC
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def _to_positive_int(value: Any, default: int) -> int:
    """Parse a pagination value, falling back to ``default`` when unusable."""
    if value is None or isinstance(value, bool):
        return default
    try:
        number = int(value)
    except (TypeError, ValueError):
        return default
    return number if 0 < number <= MAX_PAGINATION_VALUE else default


class TaskService:
    """Task lifecycle manager"""

    def __init__(
        self,
        repository: TaskRepository,
        queue: Optional[JobQueue] = None,
        executor: Optional[Executor] = None,
    ):
        self.repository = repository
        self.queue = queue
        self.executor = executor or publish_executor

    def create(self, task_data: TaskCreate) -> Task:
        if not self.repository.user_exists(task_data.user_id):
            raise UserNotFoundError(task_data.user_id)

        task = self.repository.create(
            title=task_data.title,
            description=task_data.description,
            priority=task_data.priority or TaskPriority.MEDIUM,
            due_date=convert_datetime_to_utc(task_data.due_date),
            user_id=task_data.user_id,
            status=TaskStatus.PENDING,
        )
        logger.info(f"Created task {task.id}")

        self._schedule_status_update(task)
        return task

    def find_all(
        self,
        status: Optional[str] = None,
        priority: Optional[str] = None,
        page: Any = None,
        limit: Any = None,
    ) -> List[Task]:
        page_number = _to_positive_int(page, settings.default_page)
        limit_number = _to_positive_int(limit, settings.default_page_size)

        return self.repository.query(
            status=status,
            priority=priority,
            offset=(page_number - 1) * limit_number,
            limit=limit_number,
        )

    def find_statistics(self) -> TaskStatistics:
        return TaskStatistics(**self.repository.aggregate_counts())

    def find_one(self, task_id: str) -> Task:
        task = self.repository.find_by_id(task_id, with_user=True)
        if task is None:
            raise TaskNotFoundError(task_id)
        return task

    def update(self, task_id: str, task_update: TaskUpdate) -> Task:
        task = self.find_one(task_id)
        original_status = task.status

        # Empty values count as "not provided"
        for field in UPDATABLE_FIELDS:
            value = getattr(task_update, field)
            if not value:
                continue
            if field == "due_date":
                value = convert_datetime_to_utc(value)
            elif hasattr(value, "value"):
                value = value.value
            setattr(task, field, value)

        task = self.repository.save(task)
        logger.info(f"Updated task {task.id}")

        if task.status != original_status:
            self._schedule_status_update(task)
        return task

    def remove(self, task_id: str) -> None:
        task = self.find_one(task_id)
        self.repository.remove(task)
        logger.info(f"Deleted task {task_id}")

    def find_by_status(self, status: TaskStatus) -> List[Task]:
        return self.repository.raw_filtered_query(status)

    def update_status(self, task_id: str, status: str) -> Task:
        """
        Overwrite a task's status as reported by the queue worker.

        The value is stored as given, without checking it against TaskStatus.
        """
        task = self.repository.find_by_id(task_id)
        if task is None:
            raise TaskNotFoundError(task_id)

        status = getattr(status, "value", status)
        if status not in {member.value for member in TaskStatus}:
            logger.warning(f"Persisting unrecognized status {status!r} for task {task_id}")

        task.status = status
        return self.repository.save(task)

    def _schedule_status_update(self, task: Task) -> None:
        """Hand the status-update job to the publisher thread and return at once."""
        if self.queue is None:
            logger.warning(f"No job queue configured; status update for task {task.id} not queued")
            return

        # Snapshot now: the ORM instance belongs to the caller's session
        payload = {"taskId": task.id, "status": task.status}
        try:
            self.executor.submit(self._publish_status_update, payload)
        except RuntimeError as e:
            # Executor already shut down
            logger.error(
                f"Could not schedule {TASK_STATUS_UPDATE_JOB} for task {task.id}: {e}; "
                "queued status may be stale"
            )

    def _publish_status_update(self, payload: Dict[str, Any]) -> None:
        task_id = payload["taskId"]
        try:
            accepted = self.queue.add(TASK_STATUS_UPDATE_JOB, payload)
        except Exception as e:
            logger.error(
                f"Failed to enqueue {TASK_STATUS_UPDATE_JOB} for task {task_id}: {e}; "
                "queued status may be stale"
            )
            return

        if not accepted:
            logger.warning(
                f"Queue refused {TASK_STATUS_UPDATE_JOB} for task {task_id}; "
                "queued status may be stale"
            )
