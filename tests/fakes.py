# tests/fakes.py

from __future__ import annotations

import threading
from collections.abc import Callable
from concurrent.futures import Executor, Future
from typing import Any


class FakeQueue:
    """
    In-memory job queue used in place of RabbitMQ.

    - Records accepted jobs for assertions
    - Can be told to refuse jobs (returns False) or to raise
    """

    def __init__(self, accept: bool = True, error: Exception | None = None) -> None:
        self.accept = accept
        self.error = error
        self.jobs: list[tuple[str, dict[str, Any]]] = []

    def add(self, job_name: str, data: dict[str, Any]) -> bool:
        if self.error is not None:
            raise self.error
        if not self.accept:
            return False
        self.jobs.append((job_name, dict(data)))
        return True


class InlineExecutor(Executor):
    """Runs submitted callables immediately on the calling thread."""

    def submit(self, fn: Callable[..., Any], /, *args: Any, **kwargs: Any) -> Future:
        future: Future = Future()
        try:
            future.set_result(fn(*args, **kwargs))
        except Exception as e:
            future.set_exception(e)
        return future


class BlockingQueue(FakeQueue):
    """FakeQueue whose ``add`` waits until ``release`` is set."""

    def __init__(self) -> None:
        super().__init__()
        self.release = threading.Event()
        self.started = threading.Event()

    def add(self, job_name: str, data: dict[str, Any]) -> bool:
        self.started.set()
        self.release.wait(timeout=5)
        return super().add(job_name, data)
