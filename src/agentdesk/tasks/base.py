"""Task dataclasses and the task status state machine."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, FrozenSet, Literal, Mapping, Optional


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class TaskStatus(str, Enum):
    """Task lifecycle states."""

    CREATED = "created"
    QUEUED = "queued"
    # Declared for completeness; no code path in this package enters it.
    ASSIGNED = "assigned"
    RUNNING = "running"
    REVIEW = "review"
    COMPLETED = "completed"
    FAILED = "failed"
    REJECTED = "rejected"


class TaskType(str, Enum):
    SCHEDULED = "scheduled"
    REACTIVE = "reactive"
    MANUAL = "manual"
    CHAINED = "chained"


TRANSITIONS: Dict[TaskStatus, FrozenSet[TaskStatus]] = {
    TaskStatus.CREATED: frozenset({TaskStatus.QUEUED, TaskStatus.RUNNING, TaskStatus.FAILED}),
    TaskStatus.QUEUED: frozenset({TaskStatus.QUEUED, TaskStatus.RUNNING, TaskStatus.FAILED}),
    TaskStatus.ASSIGNED: frozenset({TaskStatus.QUEUED, TaskStatus.RUNNING, TaskStatus.FAILED}),
    TaskStatus.RUNNING: frozenset({TaskStatus.REVIEW, TaskStatus.COMPLETED, TaskStatus.FAILED}),
    TaskStatus.REVIEW: frozenset({TaskStatus.COMPLETED, TaskStatus.REJECTED, TaskStatus.QUEUED}),
    TaskStatus.REJECTED: frozenset({TaskStatus.QUEUED}),
    TaskStatus.COMPLETED: frozenset(),
    TaskStatus.FAILED: frozenset(),
}


class InvalidTransitionError(ValueError):
    """Raised when a task status change is not allowed by the state machine."""


def check_transition(current: TaskStatus, target: TaskStatus) -> None:
    if target not in TRANSITIONS[current]:
        raise InvalidTransitionError(f"Task cannot move from {current.value} to {target.value}")


@dataclass
class TaskCreate:
    """Producer input for a new task."""

    title: str
    description: str = ""
    type: TaskType = TaskType.MANUAL
    priority: int = 3
    assigned_agent: Optional[str] = None
    parent_task_id: Optional[str] = None
    input: Dict[str, Any] = field(default_factory=dict)
    requires_approval: bool = True

    def __post_init__(self) -> None:
        self.type = TaskType(self.type)
        if not 1 <= int(self.priority) <= 5:
            raise ValueError(f"priority must be between 1 and 5, got {self.priority}")
        self.priority = int(self.priority)

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "TaskCreate":
        if "title" not in data:
            raise ValueError("Task requires a title")
        return cls(
            title=str(data["title"]),
            description=str(data.get("description", "")),
            type=TaskType(data.get("type", TaskType.MANUAL.value)),
            priority=int(data.get("priority", 3)),
            assigned_agent=data.get("assigned_agent"),
            parent_task_id=data.get("parent_task_id"),
            input=dict(data.get("input") or {}),
            requires_approval=bool(data.get("requires_approval", True)),
        )


@dataclass
class Task:
    """A single unit of work for an agent."""

    id: str
    title: str
    description: str
    type: TaskType
    status: TaskStatus
    priority: int
    created_at: datetime
    assigned_agent: Optional[str] = None
    parent_task_id: Optional[str] = None
    input: Dict[str, Any] = field(default_factory=dict)
    output: Optional[Dict[str, Any]] = None
    requires_approval: bool = True
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None

    @property
    def queue_key(self) -> tuple[int, datetime]:
        return (self.priority, self.created_at)


LogLevel = Literal["debug", "info", "warn", "error"]


@dataclass
class TaskLogEntry:
    """A log line attached to a task by the agent working on it."""

    id: str
    task_id: str
    agent_id: str
    level: LogLevel
    message: str
    timestamp: datetime
    data: Optional[Dict[str, Any]] = None


@dataclass
class TaskOutcome:
    """Result reported by an agent for one resolution."""

    success: bool
    output: Dict[str, Any]
