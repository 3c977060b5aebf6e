"""Mutable runtime state tracked for each registered agent."""

from __future__ import annotations

import copy
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Optional

from ..tasks.base import utcnow


class AgentStatus(str, Enum):
    IDLE = "idle"
    BUSY = "busy"
    ERROR = "error"
    OFFLINE = "offline"


@dataclass
class TokenUsage:
    prompt: int = 0
    completion: int = 0
    total: int = 0

    def add(self, prompt: int, completion: int) -> None:
        self.prompt += prompt
        self.completion += completion
        self.total += prompt + completion


@dataclass
class AgentRuntimeState:
    """Live state of one agent. ``busy`` exactly when a task is current."""

    definition_id: str
    status: AgentStatus = AgentStatus.IDLE
    current_task_id: Optional[str] = None
    last_activity: datetime = field(default_factory=utcnow)
    token_usage: TokenUsage = field(default_factory=TokenUsage)
    error_count: int = 0
    id: str = field(default_factory=lambda: str(uuid.uuid4()))

    def snapshot(self) -> "AgentRuntimeState":
        return copy.deepcopy(self)
