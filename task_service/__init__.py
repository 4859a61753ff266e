"""Task Service - task lifecycle management with queued status notifications."""

__version__ = "1.0.0"
__author__ = "Task Manager Team"
