"""Core agent and resolution loop implementations."""

from __future__ import annotations

import json
import logging
from typing import Any, Dict, List, Optional, Sequence

from ..config import AgentDefinition
from ..ledger import AuditLog, UsageLedger
from ..llm.provider import ChatResponse, CompletionProvider
from ..memory.conversation import ConversationHistory
from ..memory.store import MemoryStore
from ..tasks.base import LogLevel, Task, TaskOutcome, utcnow
from ..tasks.store import TaskStore
from ..tools.base import Tool, ToolCall, ToolContext, ToolDefinition, ToolResult, UnknownToolError
from ..tools.registry import ToolRegistry
from .events import (
    EventChannel,
    Listener,
    StatusChanged,
    Subscription,
    TaskCompleted,
    TaskFailed,
    TaskLog,
    Thinking,
)
from .state import AgentRuntimeState, AgentStatus

logger = logging.getLogger(__name__)

DEFAULT_MAX_ITERATIONS = 10
MEMORY_CONTEXT_LIMIT = 10

_LOG_LEVELS = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warn": logging.WARNING,
    "error": logging.ERROR,
}


class Agent:
    """Worker that resolves one task at a time by calling a model and its tools."""

    def __init__(
        self,
        definition: AgentDefinition,
        provider: Optional[CompletionProvider],
        task_store: TaskStore,
        memory_store: MemoryStore,
        *,
        tools: Optional[ToolRegistry] = None,
        audit: Optional[AuditLog] = None,
        usage: Optional[UsageLedger] = None,
        max_iterations: int = DEFAULT_MAX_ITERATIONS,
    ) -> None:
        if max_iterations < 1:
            raise ValueError("max_iterations must be at least 1")
        self.definition = definition
        self.provider = provider
        self.task_store = task_store
        self.memory_store = memory_store
        self.tools = tools or ToolRegistry()
        self.audit = audit or AuditLog()
        self.usage = usage or UsageLedger()
        self.max_iterations = max_iterations
        self.history = ConversationHistory()
        self.events = EventChannel()
        initial = AgentStatus.IDLE if provider is not None else AgentStatus.OFFLINE
        self._state = AgentRuntimeState(definition_id=definition.id, status=initial)

    @property
    def id(self) -> str:
        return self.definition.id

    @property
    def status(self) -> AgentStatus:
        return self._state.status

    @property
    def state(self) -> AgentRuntimeState:
        """Copy of the current runtime state."""

        return self._state.snapshot()

    @property
    def is_idle(self) -> bool:
        return self._state.status == AgentStatus.IDLE

    def register_tool(self, tool: Tool) -> None:
        self.tools.register(tool, overwrite=True)

    def tool_definitions(self) -> List[ToolDefinition]:
        return self.tools.definitions()

    def subscribe(self, listener: Listener) -> Subscription:
        return self.events.subscribe(listener)

    def set_status(self, status: AgentStatus) -> None:
        self._state.status = status
        self._state.last_activity = utcnow()
        self.events.emit(StatusChanged(state=self.state))

    def reset(self) -> None:
        """Bring an agent in ``error`` or ``offline`` back to ``idle``."""

        if self._state.status == AgentStatus.BUSY:
            raise RuntimeError(f"Agent {self.id} is busy")
        if self.provider is None:
            raise RuntimeError(f"Agent {self.id} has no completion provider")
        if self._state.status != AgentStatus.IDLE:
            self.set_status(AgentStatus.IDLE)

    def mark_offline(self) -> None:
        if self._state.status == AgentStatus.BUSY:
            raise RuntimeError(f"Agent {self.id} is busy")
        if self._state.status != AgentStatus.OFFLINE:
            self.set_status(AgentStatus.OFFLINE)

    def begin(self, task: Task) -> None:
        """Claim the agent for ``task``. Must not suspend between check and claim."""

        self._state.current_task_id = task.id
        self.set_status(AgentStatus.BUSY)
        self.history.clear()

    async def resolve(self, task: Task) -> TaskOutcome:
        """Run the resolution loop for ``task``; callers ensure the agent is idle.

        Never raises for task-level failures: they are reported as an
        unsuccessful outcome and leave the agent in ``error``.
        """

        if self._state.current_task_id != task.id:
            self.begin(task)
        try:
            loop = ResolutionLoop(agent=self, task=task)
            content, iterations = await loop.execute()
            self.memory_store.create_episodic(
                self.id,
                f'Completed task "{task.title}": {content[:500]}',
                "success",
                task_id=task.id,
                context={"input": task.input},
                lessons="",
            )
            self._state.current_task_id = None
            self.set_status(AgentStatus.IDLE)
            self.log(task.id, "info", f"Task completed after {iterations} iterations")
            self.events.emit(TaskCompleted(state=self.state, task=task))
            return TaskOutcome(success=True, output={"content": content, "iterations": iterations})
        except Exception as exc:
            return self._fail(task, exc)

    def _fail(self, task: Task, exc: Exception) -> TaskOutcome:
        message = str(exc) or exc.__class__.__name__
        self._state.error_count += 1
        self._state.current_task_id = None
        self.set_status(AgentStatus.ERROR)
        self.log(task.id, "error", f"Task failed: {message}")
        self.memory_store.create_episodic(
            self.id,
            f'Failed task "{task.title}": {message}',
            "failed",
            task_id=task.id,
            context={"error": message},
            lessons=message,
        )
        self.events.emit(TaskFailed(state=self.state, task=task, error=message))
        return TaskOutcome(success=False, output={"error": message})

    def log(self, task_id: str, level: LogLevel, message: str, data: Optional[Dict[str, Any]] = None) -> None:
        entry = self.task_store.add_log(task_id, self.id, level, message, data)
        logger.log(_LOG_LEVELS[level], "[%s] %s", self.id, message)
        self.events.emit(TaskLog(state=self.state, entry=entry))

    def record_usage(self, response: ChatResponse) -> None:
        self._state.token_usage.add(response.prompt_tokens, response.completion_tokens)
        self.usage.record(self.id, response.model, response.prompt_tokens, response.completion_tokens)

    def emit_thinking(self, text: str) -> None:
        self.events.emit(Thinking(state=self.state, text=text))


class ResolutionLoop:
    """Tool-calling loop: ask the model, run requested tools, feed results back."""

    def __init__(self, agent: Agent, task: Task) -> None:
        self.agent = agent
        self.task = task

    async def execute(self) -> tuple[str, int]:
        agent = self.agent
        if agent.provider is None:
            raise RuntimeError(f"Agent {agent.id} has no completion provider")

        system_prompt = self.build_system_prompt()
        agent.history.add("user", self.build_task_message())
        agent.log(self.task.id, "info", f"Starting task: {self.task.title}")

        final_content = ""
        iteration = 0
        while iteration < agent.max_iterations:
            iteration += 1
            response = await agent.provider.chat(
                system_prompt,
                agent.history.dump(),
                agent.tool_definitions() or None,
            )
            agent.record_usage(response)

            if response.text:
                final_content = response.text
                agent.emit_thinking(response.text)
                agent.log(self.task.id, "debug", f"Agent thinking: {response.text[:200]}")

            if not response.tool_calls:
                break

            results = [await self._invoke_tool(call, iteration) for call in response.tool_calls]
            used = ", ".join(call.name for call in response.tool_calls)
            agent.history.add("assistant", response.text or f"[Used tools: {used}]")
            agent.history.add("user", self.format_results(results))
        return final_content, iteration

    def build_system_prompt(self) -> str:
        definition = self.agent.definition
        memories = self.agent.memory_store.search_semantic(self.task.title, limit=MEMORY_CONTEXT_LIMIT)
        memory_context = ""
        if memories:
            lines = "\n".join(f"- [{m.category.value}] {m.key}: {m.value}" for m in memories)
            memory_context = f"\n\nRelevant memories:\n{lines}"
        return (
            f"You are {definition.name}, a specialized AI agent.\n"
            f"Role: {definition.role}\n"
            f"Description: {definition.description}\n"
            f"Capabilities: {', '.join(definition.capabilities)}\n"
            "\n"
            "You are part of an agent coordination system. Execute tasks efficiently and accurately.\n"
            "When you need to perform actions, use the available tools.\n"
            "When your task is complete, provide a clear summary of what was done.\n"
            f"{memory_context}"
        )

    def build_task_message(self) -> str:
        task = self.task
        message = f"Task: {task.title}\n"
        if task.description:
            message += f"Description: {task.description}\n"
        if task.input:
            message += f"Input:\n{json.dumps(task.input, indent=2, default=str)}\n"
        message += f"\nPriority: {task.priority} (1=urgent, 5=background)\n"
        message += f"Type: {task.type.value}\n"
        return message

    async def _invoke_tool(self, call: ToolCall, iteration: int) -> ToolResult:
        agent = self.agent
        agent.log(self.task.id, "info", f"Calling tool: {call.name}", {"args": call.arguments})
        agent.audit.record(
            agent.id,
            "agent:tool_call",
            "task",
            self.task.id,
            {"tool": call.name, "args": call.arguments},
        )
        try:
            tool = agent.tools.get(call.name)
        except UnknownToolError as exc:
            return ToolResult(call_id=call.id, error=str(exc))

        context = ToolContext(
            agent_id=agent.id,
            task_id=self.task.id,
            iteration=iteration,
            metadata={"task_title": self.task.title},
        )
        try:
            result = await tool.run(dict(call.arguments), context)
        except Exception as exc:
            message = str(exc) or exc.__class__.__name__
            agent.log(self.task.id, "error", f"Tool {call.name} failed: {message}")
            return ToolResult(call_id=call.id, error=message)
        return ToolResult(call_id=call.id, result=result)

    @staticmethod
    def format_results(results: Sequence[ToolResult]) -> str:
        lines = [
            f"{r.call_id}: ERROR: {r.error}" if not r.ok else f"{r.call_id}: {json.dumps(r.result, default=str)}"
            for r in results
        ]
        return "Tool results:\n" + "\n".join(lines)
