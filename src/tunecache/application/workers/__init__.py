"""Worker system - bounded concurrent task execution."""

from tunecache.application.workers.task_scheduler import TaskFailure, TaskScheduler

__all__ = [
    "TaskFailure",
    "TaskScheduler",
]
