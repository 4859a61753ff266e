# tests/conftest.py

from __future__ import annotations

from collections.abc import Callable, Iterator

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from task_service.core.database import Base
from task_service.main import app
from task_service.models import Task, TaskPriority, TaskStatus, User
from task_service.repositories import TaskRepository
from task_service.routers.tasks import get_task_service
from task_service.services.tasks import TaskService

from .fakes import FakeQueue, InlineExecutor


@pytest.fixture()
def engine() -> Iterator[Engine]:
    """
    One in-memory SQLite database per test.

    StaticPool keeps a single connection so every session (and the
    TestClient's worker threads) sees the same database.
    """
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture()
def session_factory(engine: Engine) -> sessionmaker:
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture()
def db(session_factory: sessionmaker) -> Iterator[Session]:
    session = session_factory()
    yield session
    session.close()


@pytest.fixture()
def queue() -> FakeQueue:
    return FakeQueue()


@pytest.fixture()
def repository(db: Session) -> TaskRepository:
    return TaskRepository(db)


@pytest.fixture()
def service(repository: TaskRepository, queue: FakeQueue) -> TaskService:
    return TaskService(repository, queue, executor=InlineExecutor())


@pytest.fixture()
def user(db: Session) -> User:
    owner = User(email="owner@example.com", name="Owner")
    db.add(owner)
    db.commit()
    db.refresh(owner)
    return owner


@pytest.fixture()
def make_task(repository: TaskRepository, user: User) -> Callable[..., Task]:
    """Insert a task directly through the repository (no queue involved)."""

    def _make(
        title: str = "Task",
        status: TaskStatus = TaskStatus.PENDING,
        priority: TaskPriority = TaskPriority.MEDIUM,
    ) -> Task:
        return repository.create(
            title=title,
            description=f"{title} description",
            status=status,
            priority=priority,
            user_id=user.id,
        )

    return _make


@pytest.fixture()
def client(service: TaskService) -> Iterator[TestClient]:
    app.dependency_overrides[get_task_service] = lambda: service
    yield TestClient(app)
    app.dependency_overrides.clear()
