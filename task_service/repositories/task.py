"""
Task repository: every database access the task service needs.
"""
import logging
from typing import Any, Dict, List, Optional
from sqlalchemy import case, func, select, text
from sqlalchemy.orm import Session, joinedload

from ..models.task import Task, TaskPriority, TaskStatus
from ..models.user import User

logger = logging.getLogger(__name__)


def _value(member: Any) -> Any:
    """Unwrap enum members to their stored string value."""
    return getattr(member, "value", member)


class TaskRepository:
    """Repository for Task entities bound to one database session."""

    def __init__(self, db: Session):
        self.db = db

    def create(self, **fields: Any) -> Task:
        """Insert a new task and return it with store-generated fields populated."""
        task = Task(**{name: _value(value) for name, value in fields.items()})
        return self.save(task)

    def user_exists(self, user_id: str) -> bool:
        return self.db.get(User, user_id) is not None

    def find_by_id(self, task_id: str, with_user: bool = False) -> Optional[Task]:
        stmt = select(Task).where(Task.id == task_id)
        if with_user:
            stmt = stmt.options(joinedload(Task.user))
        return self.db.execute(stmt).scalars().first()

    def query(
        self,
        status: Optional[str] = None,
        priority: Optional[str] = None,
        offset: int = 0,
        limit: Optional[int] = None,
    ) -> List[Task]:
        """Filtered, paginated scan in store order, owners loaded alongside."""
        stmt = select(Task).options(joinedload(Task.user))

        # Optional equality filters
        if status:
            stmt = stmt.where(Task.status == _value(status))
        if priority:
            stmt = stmt.where(Task.priority == _value(priority))

        stmt = stmt.offset(offset)
        if limit is not None:
            stmt = stmt.limit(limit)

        return list(self.db.execute(stmt).scalars().all())

    def aggregate_counts(self) -> Dict[str, int]:
        """Count all tasks, by status, and by high priority in one query."""
        def count_where(condition):
            return func.sum(case((condition, 1), else_=0))

        stmt = select(
            func.count(Task.id).label("total"),
            count_where(Task.status == TaskStatus.COMPLETED.value).label("completed"),
            count_where(Task.status == TaskStatus.IN_PROGRESS.value).label("in_progress"),
            count_where(Task.status == TaskStatus.PENDING.value).label("pending"),
            count_where(Task.priority == TaskPriority.HIGH.value).label("high_priority"),
        )
        row = self.db.execute(stmt).one()

        # SUM over an empty table is NULL
        return {key: int(value or 0) for key, value in row._mapping.items()}

    def save(self, task: Task) -> Task:
        try:
            self.db.add(task)
            self.db.commit()
            self.db.refresh(task)
        except Exception as e:
            logger.error(f"Error saving task {task.id}: {e}")
            self.db.rollback()
            raise
        return task

    def remove(self, task: Task) -> None:
        try:
            self.db.delete(task)
            self.db.commit()
        except Exception as e:
            logger.error(f"Error deleting task {task.id}: {e}")
            self.db.rollback()
            raise

    def raw_filtered_query(self, status: str) -> List[Task]:
        """Select tasks by status with a hand-written SQL statement."""
        stmt = select(Task).from_statement(
            text("SELECT * FROM tasks WHERE status = :status")
        )
        return list(self.db.execute(stmt, {"status": _value(status)}).scalars().all())
