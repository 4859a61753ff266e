"""
Pydantic schemas for Task Service.
"""
from datetime import datetime
from typing import Optional, Union
from pydantic import BaseModel, ConfigDict, Field

from ..models.task import TaskStatus, TaskPriority
from .user import UserResponse


class TaskBase(BaseModel):
    """Base task schema"""
    title: str = Field(..., min_length=1, max_length=200, description="Task title")
    description: Optional[str] = Field(None, description="Task description")
    priority: Optional[TaskPriority] = Field(TaskPriority.MEDIUM, description="Task priority")
    due_date: Optional[datetime] = Field(None, description="Task due date")


class TaskCreate(TaskBase):
    """Schema for creating a task"""
    user_id: str = Field(..., description="ID of the user who owns the task")


class TaskUpdate(BaseModel):
    """
    Schema for updating a task.

    Every field is optional; empty values are treated as not provided.
    """
    title: Optional[str] = Field(None, max_length=200, description="Task title")
    description: Optional[str] = Field(None, description="Task description")
    status: Optional[TaskStatus] = Field(None, description="Task status")
    priority: Optional[TaskPriority] = Field(None, description="Task priority")
    due_date: Optional[datetime] = Field(None, description="Task due date")


class TaskResponse(TaskBase):
    """Schema for task response"""
    id: str = Field(..., description="Task ID")
    # Plain strings too: the queue worker may store values outside TaskStatus
    status: Union[TaskStatus, str] = Field(..., description="Task status")
    user_id: str = Field(..., description="User ID who owns the task")
    user: Optional[UserResponse] = Field(None, description="Owning user")
    created_at: Optional[datetime] = Field(None, description="Task creation timestamp")
    updated_at: Optional[datetime] = Field(None, description="Task update timestamp")

    model_config = ConfigDict(from_attributes=True)


class TaskStatistics(BaseModel):
    """Schema for task summary statistics"""
    total: int = Field(..., description="Total number of tasks")
    completed: int = Field(..., description="Number of completed tasks")
    in_progress: int = Field(..., alias="inProgress", description="Number of in-progress tasks")
    pending: int = Field(..., description="Number of pending tasks")
    high_priority: int = Field(..., alias="highPriority", description="Number of high priority tasks")

    model_config = ConfigDict(populate_by_name=True)
