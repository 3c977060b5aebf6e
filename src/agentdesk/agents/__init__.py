"""Agent package exports."""

from .base import Agent, ResolutionLoop
from .coordinator import AgentNotIdleError, Coordinator, UnknownAgentError, capability_score
from .events import (
    AgentEvent,
    EventChannel,
    StatusChanged,
    Subscription,
    TaskCompleted,
    TaskFailed,
    TaskLog,
    Thinking,
)
from .state import AgentRuntimeState, AgentStatus, TokenUsage

__all__ = [
    "Agent",
    "AgentEvent",
    "AgentNotIdleError",
    "AgentRuntimeState",
    "AgentStatus",
    "Coordinator",
    "EventChannel",
    "ResolutionLoop",
    "StatusChanged",
    "Subscription",
    "TaskCompleted",
    "TaskFailed",
    "TaskLog",
    "Thinking",
    "TokenUsage",
    "UnknownAgentError",
    "capability_score",
]
