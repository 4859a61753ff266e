"""
Domain errors raised by the task service layer.
"""


class TaskNotFoundError(Exception):
    """Raised when no task exists for the requested ID."""

    def __init__(self, task_id: str):
        self.task_id = task_id
        super().__init__(f"Task with ID {task_id} not found")


class UserNotFoundError(Exception):
    """Raised when a task names an owner that does not exist."""

    def __init__(self, user_id: str):
        self.user_id = user_id
        super().__init__(f"User with ID {user_id} not found")
