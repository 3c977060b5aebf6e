"""Agent events and the channel that fans them out to listeners."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Callable, List, Literal, Union

from ..tasks.base import Task, TaskLogEntry
from .state import AgentRuntimeState

logger = logging.getLogger(__name__)


@dataclass
class StatusChanged:
    state: AgentRuntimeState
    type: Literal["status_changed"] = field(default="status_changed", init=False)


@dataclass
class TaskLog:
    state: AgentRuntimeState
    entry: TaskLogEntry
    type: Literal["task_log"] = field(default="task_log", init=False)


@dataclass
class TaskCompleted:
    state: AgentRuntimeState
    task: Task
    type: Literal["task_completed"] = field(default="task_completed", init=False)


@dataclass
class TaskFailed:
    state: AgentRuntimeState
    task: Task
    error: str
    type: Literal["task_failed"] = field(default="task_failed", init=False)


@dataclass
class Thinking:
    state: AgentRuntimeState
    text: str
    type: Literal["thinking"] = field(default="thinking", init=False)


AgentEvent = Union[StatusChanged, TaskLog, TaskCompleted, TaskFailed, Thinking]
Listener = Callable[[AgentEvent], None]


class Subscription:
    """Handle returned by ``EventChannel.subscribe``."""

    def __init__(self, channel: "EventChannel", listener: Listener) -> None:
        self._channel = channel
        self._listener = listener
        self.active = True

    def unsubscribe(self) -> None:
        if self.active:
            self._channel._remove(self._listener)
            self.active = False


class EventChannel:
    """Delivers events synchronously, in emission order, to every listener.

    A listener that raises is logged and skipped; the remaining listeners
    still receive the event.
    """

    def __init__(self) -> None:
        self._listeners: List[Listener] = []

    def subscribe(self, listener: Listener) -> Subscription:
        self._listeners.append(listener)
        return Subscription(self, listener)

    def _remove(self, listener: Listener) -> None:
        try:
            self._listeners.remove(listener)
        except ValueError:
            pass

    def emit(self, event: AgentEvent) -> None:
        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception:
                logger.exception("Event listener failed on %s", event.type)

    def __len__(self) -> int:
        return len(self._listeners)
