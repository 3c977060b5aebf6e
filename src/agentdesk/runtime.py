"""Assemble stores, providers, tools and the coordinator from a project config."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Dict, List, Mapping, Optional

from .agents.coordinator import Coordinator
from .config import AgentSpec, ConfigError, ProjectConfig
from .ledger import AuditLog, UsageLedger
from .llm.provider import CompletionProvider, build_provider
from .memory.store import InMemoryMemoryStore
from .tasks.base import Task, TaskCreate, TaskStatus
from .tasks.store import InMemoryTaskStore
from .tools.builtin import BUILTIN_TOOLS, register_builtin_tools
from .tools.registry import ToolRegistry

logger = logging.getLogger(__name__)


@dataclass
class Runtime:
    """Everything needed to run a project in one process."""

    config: ProjectConfig
    task_store: InMemoryTaskStore
    memory_store: InMemoryMemoryStore
    audit: AuditLog
    usage: UsageLedger
    coordinator: Coordinator
    offline: Dict[str, str] = field(default_factory=dict)

    async def submit_seed_tasks(self) -> List[Task]:
        """Queue the ``tasks`` listed in the config without dispatching them."""

        submitted = []
        for item in self.config.tasks:
            data = TaskCreate.from_mapping(item)
            submitted.append(await self.coordinator.submit(data, dispatch=False))
        return submitted

    def approve_all(self) -> int:
        pending = self.task_store.list_tasks(status=TaskStatus.REVIEW)
        for task in pending:
            self.coordinator.approve(task.id)
        return len(pending)

    async def run_until_idle(self, timeout: float, *, auto_approve: bool = False, tick: float = 0.05) -> bool:
        """Poll until nothing is queued or running. Returns False on timeout."""

        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout
        scheduler = self.coordinator.start_polling(self.config.coordinator.poll_interval, immediate=True)
        try:
            while True:
                if auto_approve:
                    self.approve_all()
                stats = self.task_store.stats()
                if not scheduler.busy and stats.queued == 0 and stats.running == 0:
                    return True
                if loop.time() >= deadline:
                    logger.warning(
                        "Timed out with %d queued and %d running tasks", stats.queued, stats.running
                    )
                    return False
                await asyncio.sleep(tick)
        finally:
            self.coordinator.stop_polling()


def build_tools(
    spec: AgentSpec,
    config: ProjectConfig,
    task_store: InMemoryTaskStore,
    memory_store: InMemoryMemoryStore,
) -> ToolRegistry:
    """Custom tools from the config take precedence over built-ins of the same name."""

    registry = ToolRegistry()
    for name in spec.tools:
        if name in config.tool_specs:
            registry.register_from_spec(config.tool_specs[name])
        elif name in BUILTIN_TOOLS:
            register_builtin_tools(registry, task_store, memory_store, [name])
        else:
            raise ConfigError(f"Agent '{spec.definition.id}' references unknown tool '{name}'")
    return registry


def build_runtime(
    config: ProjectConfig,
    *,
    providers: Optional[Mapping[str, CompletionProvider]] = None,
) -> Runtime:
    """Build a runtime; ``providers`` overrides construction per model key.

    An agent whose model cannot be built because of a ``ConfigError`` (a
    missing API key, usually) is registered offline instead of failing the
    whole runtime.
    """

    task_store = InMemoryTaskStore()
    memory_store = InMemoryMemoryStore()
    audit = AuditLog()
    usage = UsageLedger(config.models.models)
    coordinator = Coordinator(
        task_store,
        memory_store,
        audit=audit,
        usage=usage,
        poll_batch=config.coordinator.poll_batch,
        max_iterations=config.coordinator.max_iterations,
    )
    runtime = Runtime(
        config=config,
        task_store=task_store,
        memory_store=memory_store,
        audit=audit,
        usage=usage,
        coordinator=coordinator,
    )

    built: Dict[str, Optional[CompletionProvider]] = dict(providers or {})
    failures: Dict[str, str] = {}
    for spec in config.agents:
        definition = spec.definition
        model_key = definition.model_preference or config.models.primary
        if model_key not in built:
            try:
                built[model_key] = build_provider(config.models.resolve(model_key))
            except ConfigError as exc:
                built[model_key] = None
                failures[model_key] = str(exc)
        provider = built[model_key]
        if provider is None:
            runtime.offline[definition.id] = failures.get(model_key, "no completion provider")
            logger.warning("Agent %s is offline: %s", definition.id, runtime.offline[definition.id])
        tools = build_tools(spec, config, task_store, memory_store)
        coordinator.register_agent(definition, provider, tools=tools)
    return runtime
