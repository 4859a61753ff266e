"""Data access layer for Task Service."""
from .task import TaskRepository

__all__ = ["TaskRepository"]
