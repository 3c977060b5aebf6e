"""Task store interface and an in-process implementation."""

from __future__ import annotations

import copy
import itertools
import uuid
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Protocol

from .base import (
    LogLevel,
    Task,
    TaskCreate,
    TaskLogEntry,
    TaskStatus,
    check_transition,
    utcnow,
)


@dataclass
class TaskStats:
    total: int = 0
    completed: int = 0
    failed: int = 0
    running: int = 0
    queued: int = 0


class TaskStore(Protocol):
    """Operations the coordinator and agents need from task storage."""

    def create_task(self, data: TaskCreate) -> Task: ...

    def get_task(self, task_id: str) -> Optional[Task]: ...

    def update_task_status(
        self,
        task_id: str,
        status: TaskStatus,
        *,
        output: Optional[Dict[str, Any]] = None,
        assigned_agent: Optional[str] = None,
        expected_status: Optional[TaskStatus] = None,
    ) -> Optional[Task]: ...

    def list_tasks(
        self,
        *,
        status: Optional[TaskStatus] = None,
        assigned_agent: Optional[str] = None,
        limit: int = 100,
    ) -> List[Task]: ...

    def get_next_queued_task(self, agent_id: Optional[str] = None) -> Optional[Task]: ...

    def add_log(
        self,
        task_id: str,
        agent_id: str,
        level: LogLevel,
        message: str,
        data: Optional[Dict[str, Any]] = None,
    ) -> TaskLogEntry: ...


class InMemoryTaskStore:
    """Keeps tasks and task logs in process memory.

    Every method runs without suspending, so a read-check-write inside one
    call is atomic with respect to other coroutines on the same event loop.
    Tasks handed out are copies; mutate them through ``update_task_status``.
    """

    def __init__(self) -> None:
        self._tasks: Dict[str, Task] = {}
        self._order: Dict[str, int] = {}
        self._sequence = itertools.count()
        self._logs: List[TaskLogEntry] = []

    def create_task(self, data: TaskCreate) -> Task:
        task = Task(
            id=str(uuid.uuid4()),
            title=data.title,
            description=data.description,
            type=data.type,
            status=TaskStatus.CREATED,
            priority=data.priority,
            created_at=utcnow(),
            assigned_agent=data.assigned_agent,
            parent_task_id=data.parent_task_id,
            input=copy.deepcopy(data.input),
            requires_approval=data.requires_approval,
        )
        self._tasks[task.id] = task
        self._order[task.id] = next(self._sequence)
        return copy.deepcopy(task)

    def get_task(self, task_id: str) -> Optional[Task]:
        task = self._tasks.get(task_id)
        return copy.deepcopy(task) if task else None

    def update_task_status(
        self,
        task_id: str,
        status: TaskStatus,
        *,
        output: Optional[Dict[str, Any]] = None,
        assigned_agent: Optional[str] = None,
        expected_status: Optional[TaskStatus] = None,
    ) -> Optional[Task]:
        """Move a task to ``status``.

        Returns ``None`` when the task does not exist or, if
        ``expected_status`` is given, when the stored status differs from it.
        Raises ``InvalidTransitionError`` for changes the state machine forbids.
        """

        task = self._tasks.get(task_id)
        if task is None:
            return None
        if expected_status is not None and task.status != expected_status:
            return None
        check_transition(task.status, status)

        now = utcnow()
        if status == TaskStatus.RUNNING and task.started_at is None:
            task.started_at = now
        if status in (TaskStatus.COMPLETED, TaskStatus.FAILED):
            task.completed_at = now
        if assigned_agent is not None:
            task.assigned_agent = assigned_agent
        if output is not None:
            task.output = copy.deepcopy(output)
        task.status = status
        return copy.deepcopy(task)

    def _sort_key(self, task: Task) -> tuple:
        return (task.priority, task.created_at, self._order[task.id])

    def list_tasks(
        self,
        *,
        status: Optional[TaskStatus] = None,
        assigned_agent: Optional[str] = None,
        limit: int = 100,
    ) -> List[Task]:
        matches = [
            task
            for task in self._tasks.values()
            if (status is None or task.status == status)
            and (assigned_agent is None or task.assigned_agent == assigned_agent)
        ]
        matches.sort(key=self._sort_key)
        return [copy.deepcopy(task) for task in matches[:limit]]

    def get_next_queued_task(self, agent_id: Optional[str] = None) -> Optional[Task]:
        candidates = [
            task
            for task in self._tasks.values()
            if task.status == TaskStatus.QUEUED
            and (agent_id is None or task.assigned_agent in (None, agent_id))
        ]
        if not candidates:
            return None
        return copy.deepcopy(min(candidates, key=self._sort_key))

    def add_log(
        self,
        task_id: str,
        agent_id: str,
        level: LogLevel,
        message: str,
        data: Optional[Dict[str, Any]] = None,
    ) -> TaskLogEntry:
        entry = TaskLogEntry(
            id=str(uuid.uuid4()),
            task_id=task_id,
            agent_id=agent_id,
            level=level,
            message=message,
            timestamp=utcnow(),
            data=copy.deepcopy(data) if data else None,
        )
        self._logs.append(entry)
        return entry

    def get_logs(self, task_id: str, limit: int = 100) -> List[TaskLogEntry]:
        return [entry for entry in self._logs if entry.task_id == task_id][:limit]

    def recent_logs(self, limit: int = 50) -> List[TaskLogEntry]:
        if limit <= 0:
            return []
        return list(reversed(self._logs[-limit:]))

    def stats(self) -> TaskStats:
        stats = TaskStats(total=len(self._tasks))
        for task in self._tasks.values():
            if task.status == TaskStatus.COMPLETED:
                stats.completed += 1
            elif task.status == TaskStatus.FAILED:
                stats.failed += 1
            elif task.status == TaskStatus.RUNNING:
                stats.running += 1
            elif task.status == TaskStatus.QUEUED:
                stats.queued += 1
        return stats
