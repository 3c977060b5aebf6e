"""Task primitives."""

from .base import (
    InvalidTransitionError,
    Task,
    TaskCreate,
    TaskLogEntry,
    TaskOutcome,
    TaskStatus,
    TaskType,
)
from .runner import PeriodicScheduler
from .store import InMemoryTaskStore, TaskStats, TaskStore

__all__ = [
    "InMemoryTaskStore",
    "InvalidTransitionError",
    "PeriodicScheduler",
    "Task",
    "TaskCreate",
    "TaskLogEntry",
    "TaskOutcome",
    "TaskStats",
    "TaskStatus",
    "TaskStore",
    "TaskType",
]
