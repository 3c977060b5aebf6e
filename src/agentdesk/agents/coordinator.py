"""Coordinator: owns the agents, assigns tasks and re-dispatches queued work."""

from __future__ import annotations

import asyncio
import logging
from typing import Dict, List, Optional

from ..config import AgentDefinition
from ..ledger import AuditLog, UsageLedger
from ..llm.provider import CompletionProvider
from ..memory.store import MemoryStore
from ..tasks.base import Task, TaskCreate, TaskStatus
from ..tasks.runner import PeriodicScheduler
from ..tasks.store import TaskStore
from ..tools.registry import ToolRegistry
from .base import DEFAULT_MAX_ITERATIONS, Agent
from .events import AgentEvent, EventChannel, Listener, Subscription
from .state import AgentRuntimeState

logger = logging.getLogger(__name__)

DEFAULT_POLL_INTERVAL = 5.0
DEFAULT_POLL_BATCH = 10


class UnknownAgentError(LookupError):
    """Raised when an operation addresses an agent id that is not registered."""


class AgentNotIdleError(RuntimeError):
    """Raised when an operation needs an agent that is currently busy."""


def capability_score(definition: AgentDefinition, task: Task) -> int:
    """Number of capability tags found in the lowercased title and description."""

    text = f"{task.title} {task.description}".lower()
    return sum(1 for tag in definition.capabilities if tag.lower() in text)


class Coordinator:
    """Registry of agents plus the assignment and polling strategy."""

    def __init__(
        self,
        task_store: TaskStore,
        memory_store: MemoryStore,
        *,
        audit: Optional[AuditLog] = None,
        usage: Optional[UsageLedger] = None,
        poll_batch: int = DEFAULT_POLL_BATCH,
        max_iterations: int = DEFAULT_MAX_ITERATIONS,
    ) -> None:
        self.task_store = task_store
        self.memory_store = memory_store
        self.audit = audit or AuditLog()
        self.usage = usage or UsageLedger()
        self.poll_batch = poll_batch
        self.max_iterations = max_iterations
        self.events = EventChannel()
        self._agents: Dict[str, Agent] = {}
        self._scheduler: Optional[PeriodicScheduler] = None
        self._last_tick: Optional[asyncio.Task] = None

    # agents

    def register_agent(
        self,
        definition: AgentDefinition,
        provider: Optional[CompletionProvider],
        *,
        tools: Optional[ToolRegistry] = None,
    ) -> Agent:
        """Create the agent for ``definition``; a missing provider registers it offline."""

        if definition.id in self._agents:
            raise ValueError(f"Agent {definition.id} already registered")
        agent = Agent(
            definition,
            provider,
            self.task_store,
            self.memory_store,
            tools=tools,
            audit=self.audit,
            usage=self.usage,
            max_iterations=self.max_iterations,
        )
        agent.subscribe(self._forward)
        self._agents[definition.id] = agent
        logger.info("Registered agent: %s (%s) [%s]", definition.name, definition.id, agent.status.value)
        return agent

    def _forward(self, event: AgentEvent) -> None:
        self.events.emit(event)

    def subscribe(self, listener: Listener) -> Subscription:
        return self.events.subscribe(listener)

    def get_agent(self, agent_id: str) -> Optional[Agent]:
        return self._agents.get(agent_id)

    def get_agent_or_raise(self, agent_id: str) -> Agent:
        agent = self._agents.get(agent_id)
        if agent is None:
            raise UnknownAgentError(f"Agent {agent_id} not found")
        return agent

    @property
    def agents(self) -> List[Agent]:
        return list(self._agents.values())

    def agent_states(self) -> List[AgentRuntimeState]:
        return [agent.state for agent in self._agents.values()]

    def reset_agent(self, agent_id: str) -> Agent:
        agent = self.get_agent_or_raise(agent_id)
        if agent.state.current_task_id is not None:
            raise AgentNotIdleError(f"Agent {agent_id} is busy")
        agent.reset()
        return agent

    # assignment

    def find_best_agent(self, task: Task) -> Optional[Agent]:
        """Idle agent with the highest capability score; ties keep registration order."""

        best: Optional[Agent] = None
        best_score = 0
        for agent in self._agents.values():
            if not agent.is_idle:
                continue
            score = capability_score(agent.definition, task)
            if best is None or score > best_score:
                best = agent
                best_score = score
        return best

    async def assign(self, task: Task) -> None:
        """Run ``task`` on a suitable idle agent now, or leave it queued."""

        if task.assigned_agent:
            agent = self._agents.get(task.assigned_agent)
            if agent is None:
                self.task_store.update_task_status(
                    task.id,
                    TaskStatus.FAILED,
                    output={"error": f"Agent {task.assigned_agent} not found"},
                    expected_status=task.status,
                )
                logger.warning("Task %s targets unknown agent %s", task.id, task.assigned_agent)
                return
            if not agent.is_idle:
                self._requeue(task)
                return
            await self.run(agent, task)
            return

        agent = self.find_best_agent(task)
        if agent is None:
            self._requeue(task)
            return
        await self.run(agent, task)

    def _requeue(self, task: Task) -> None:
        # A stale copy (the task moved on meanwhile) is left alone.
        self.task_store.update_task_status(task.id, TaskStatus.QUEUED, expected_status=task.status)

    async def run(self, agent: Agent, task: Task) -> None:
        """Resolve ``task`` on ``agent``, then keep draining the queue while it stays idle."""

        current: Optional[Task] = task
        while current is not None:
            if not await self._run_one(agent, current):
                return
            current = self._next_for(agent)

    def _next_for(self, agent: Agent) -> Optional[Task]:
        if not agent.is_idle:
            return None
        return self.task_store.get_next_queued_task(agent.id)

    async def _run_one(self, agent: Agent, task: Task) -> bool:
        # No suspension between the idle check and agent.begin().
        if not agent.is_idle:
            return False
        running = self.task_store.update_task_status(
            task.id,
            TaskStatus.RUNNING,
            assigned_agent=agent.id,
            expected_status=task.status,
        )
        if running is None:
            logger.debug("Task %s changed before it could start; skipping", task.id)
            return False
        agent.begin(running)
        self.audit.record(agent.id, "task:assigned", "task", running.id, {"agent": agent.id})

        outcome = await agent.resolve(running)

        if outcome.success:
            target = TaskStatus.REVIEW if running.requires_approval else TaskStatus.COMPLETED
        else:
            target = TaskStatus.FAILED
        self.task_store.update_task_status(running.id, target, output=outcome.output)
        return True

    # producer and operator surface

    async def submit(self, data: TaskCreate, *, dispatch: bool = True) -> Task:
        """Create a task, queue it and, with ``dispatch``, try to assign it right away."""

        task = self.task_store.create_task(data)
        queued = self.task_store.update_task_status(task.id, TaskStatus.QUEUED)
        if queued is None:
            raise RuntimeError(f"Task {task.id} disappeared before it could be queued")
        self.audit.record("operator", "task:created", "task", queued.id, {"title": queued.title})
        if dispatch:
            await self.assign(queued)
        return self.task_store.get_task(queued.id) or queued

    def approve(self, task_id: str) -> Optional[Task]:
        task = self.task_store.update_task_status(task_id, TaskStatus.COMPLETED, expected_status=TaskStatus.REVIEW)
        if task is not None:
            self.audit.record("operator", "task:approved", "task", task_id)
        return task

    def reject(self, task_id: str) -> Optional[Task]:
        """Send a task in review back to the queue."""

        task = self.task_store.update_task_status(task_id, TaskStatus.REJECTED, expected_status=TaskStatus.REVIEW)
        if task is None:
            return None
        self.audit.record("operator", "task:rejected", "task", task_id)
        return self.task_store.update_task_status(task_id, TaskStatus.QUEUED)

    # polling

    async def poll_once(self) -> int:
        """Try to assign a batch of queued tasks concurrently; returns how many were examined."""

        queued = self.task_store.list_tasks(status=TaskStatus.QUEUED, limit=self.poll_batch)
        if not queued:
            return 0
        results = await asyncio.gather(*(self.assign(task) for task in queued), return_exceptions=True)
        for task, result in zip(queued, results):
            if isinstance(result, Exception):
                logger.error("Assigning task %s failed: %s", task.id, result)
        return len(queued)

    def start_polling(self, interval: float = DEFAULT_POLL_INTERVAL, *, immediate: bool = False) -> PeriodicScheduler:
        """Start the poll loop. A tick left running by an earlier loop still blocks new ticks."""

        if self._scheduler is not None and self._scheduler.running:
            return self._scheduler
        self._scheduler = PeriodicScheduler(
            self.poll_once, interval, name="coordinator-poll", inflight=self._last_tick
        )
        self._scheduler.start(immediate=immediate)
        logger.info("Agent coordinator polling started (%.1fs interval)", interval)
        return self._scheduler

    def stop_polling(self) -> None:
        if self._scheduler is not None:
            self._last_tick = self._scheduler.stop()
            self._scheduler = None

    @property
    def polling(self) -> bool:
        return self._scheduler is not None and self._scheduler.running
