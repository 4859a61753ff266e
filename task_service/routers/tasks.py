import logging
from typing import List, Optional
from fastapi import APIRouter, Depends, HTTPException, status, Query
from sqlalchemy.orm import Session

from ..core.database import get_db
from ..core.exceptions import TaskNotFoundError, UserNotFoundError
from ..core.rabbitmq import rabbitmq_publisher
from ..models.task import Task, TaskStatus, TaskPriority
from ..repositories.task import TaskRepository
from ..schemas.task import TaskCreate, TaskUpdate, TaskResponse, TaskStatistics
from ..services.tasks import TaskService

logger = logging.getLogger(__name__)

router = APIRouter()


def get_task_service(db: Session = Depends(get_db)) -> TaskService:
    """Task service bound to the request's database session"""
    return TaskService(TaskRepository(db), rabbitmq_publisher)


def _to_response(task: Task) -> TaskResponse:
    return TaskResponse.model_validate(task)


def _not_found(e: Exception) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_404_NOT_FOUND,
        detail=str(e)
    )


@router.post("/", response_model=TaskResponse, status_code=status.HTTP_201_CREATED)
def create_task(
    task_data: TaskCreate,
    service: TaskService = Depends(get_task_service)
):
    """Create a new task"""
    try:
        return _to_response(service.create(task_data))
    except UserNotFoundError as e:
        raise _not_found(e)


@router.get("/", response_model=List[TaskResponse])
def get_tasks(
    status_filter: Optional[TaskStatus] = Query(None, alias="status", description="Filter by status"),
    priority_filter: Optional[TaskPriority] = Query(None, alias="priority", description="Filter by priority"),
    # Raw strings: unusable values fall back to defaults instead of a 422
    page: Optional[str] = Query(None, description="1-based page number"),
    limit: Optional[str] = Query(None, description="Number of tasks per page"),
    service: TaskService = Depends(get_task_service)
):
    """Get tasks with optional filtering and pagination"""
    tasks = service.find_all(
        status=status_filter,
        priority=priority_filter,
        page=page,
        limit=limit,
    )
    return [_to_response(task) for task in tasks]


@router.get("/stats", response_model=TaskStatistics)
def get_task_statistics(service: TaskService = Depends(get_task_service)):
    """Get task counts by status and high priority"""
    return service.find_statistics()


@router.get("/status/{task_status}", response_model=List[TaskResponse])
def get_tasks_by_status(
    task_status: TaskStatus,
    service: TaskService = Depends(get_task_service)
):
    """Get all tasks with the given status"""
    return [_to_response(task) for task in service.find_by_status(task_status)]


@router.get("/{task_id}", response_model=TaskResponse)
def get_task(
    task_id: str,
    service: TaskService = Depends(get_task_service)
):
    """Get a specific task by ID"""
    try:
        return _to_response(service.find_one(task_id))
    except TaskNotFoundError as e:
        raise _not_found(e)


@router.patch("/{task_id}", response_model=TaskResponse)
def update_task(
    task_id: str,
    task_update: TaskUpdate,
    service: TaskService = Depends(get_task_service)
):
    """Update a task"""
    try:
        return _to_response(service.update(task_id, task_update))
    except TaskNotFoundError as e:
        raise _not_found(e)


@router.delete("/{task_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_task(
    task_id: str,
    service: TaskService = Depends(get_task_service)
):
    """Delete a task"""
    try:
        service.remove(task_id)
    except TaskNotFoundError as e:
        raise _not_found(e)
