"""Built-in tools agents can opt into through their ``tools`` list."""

from __future__ import annotations

import datetime as _dt
from typing import Any, Callable, Dict, Iterable, Optional

from ..memory.store import MemoryCategory, MemoryStore
from ..tasks.base import TaskCreate, TaskStatus, TaskType
from ..tasks.store import TaskStore
from .base import Tool, ToolContext, ToolExecutionError
from .registry import ToolRegistry


def _require(arguments: Dict[str, Any], key: str) -> Any:
    value = arguments.get(key)
    if value is None or value == "":
        raise ToolExecutionError(f"Missing required argument: {key}")
    return value


class RecallMemoryTool(Tool):
    """Search long-term memory for facts matching a keyword."""

    parameters = {
        "type": "object",
        "properties": {
            "query": {"type": "string", "description": "Keyword to look for in memory keys and values"},
            "category": {
                "type": "string",
                "enum": [category.value for category in MemoryCategory],
            },
            "limit": {"type": "integer", "minimum": 1, "maximum": 50},
        },
        "required": ["query"],
    }

    def __init__(self, name: str, memory_store: MemoryStore, **kwargs: Any) -> None:
        super().__init__(name, **kwargs)
        self.memory_store = memory_store

    async def run(self, arguments: Dict[str, Any], context: ToolContext) -> Any:
        query = str(_require(arguments, "query"))
        category = arguments.get("category")
        try:
            parsed = MemoryCategory(category) if category else None
        except ValueError as exc:
            raise ToolExecutionError(f"Unknown memory category: {category}") from exc
        matches = self.memory_store.search_semantic(query, category=parsed, limit=int(arguments.get("limit", 10)))
        return [
            {"category": m.category.value, "key": m.key, "value": m.value, "confidence": m.confidence}
            for m in matches
        ]


class RememberFactTool(Tool):
    """Store a fact in long-term memory so later tasks can use it."""

    parameters = {
        "type": "object",
        "properties": {
            "key": {"type": "string"},
            "value": {"type": "string"},
            "category": {
                "type": "string",
                "enum": [category.value for category in MemoryCategory],
            },
            "confidence": {"type": "number", "minimum": 0, "maximum": 1},
        },
        "required": ["key", "value"],
    }

    def __init__(self, name: str, memory_store: MemoryStore, **kwargs: Any) -> None:
        super().__init__(name, **kwargs)
        self.memory_store = memory_store

    async def run(self, arguments: Dict[str, Any], context: ToolContext) -> Any:
        key = str(_require(arguments, "key"))
        value = str(_require(arguments, "value"))
        try:
            category = MemoryCategory(arguments.get("category", MemoryCategory.GENERAL.value))
            memory = self.memory_store.create_semantic(
                category,
                key,
                value,
                source=f"agent:{context.agent_id}",
                confidence=float(arguments.get("confidence", 1.0)),
            )
        except ValueError as exc:
            raise ToolExecutionError(str(exc)) from exc
        return {"id": memory.id, "stored": True}


class CreateSubtaskTool(Tool):
    """Queue a follow-up task chained to the task currently being worked on."""

    parameters = {
        "type": "object",
        "properties": {
            "title": {"type": "string"},
            "description": {"type": "string"},
            "priority": {"type": "integer", "minimum": 1, "maximum": 5},
            "assigned_agent": {"type": "string"},
            "input": {"type": "object"},
        },
        "required": ["title"],
    }

    def __init__(self, name: str, task_store: TaskStore, **kwargs: Any) -> None:
        super().__init__(name, **kwargs)
        self.task_store = task_store

    async def run(self, arguments: Dict[str, Any], context: ToolContext) -> Any:
        try:
            data = TaskCreate(
                title=str(_require(arguments, "title")),
                description=str(arguments.get("description", "")),
                type=TaskType.CHAINED,
                priority=int(arguments.get("priority", 3)),
                assigned_agent=arguments.get("assigned_agent"),
                parent_task_id=context.task_id,
                input=dict(arguments.get("input") or {}),
            )
        except (TypeError, ValueError) as exc:
            raise ToolExecutionError(str(exc)) from exc
        task = self.task_store.create_task(data)
        self.task_store.update_task_status(task.id, TaskStatus.QUEUED)
        return {"task_id": task.id, "status": TaskStatus.QUEUED.value}


class CurrentTimeTool(Tool):
    """Return the current UTC time in ISO 8601 format."""

    async def run(self, arguments: Dict[str, Any], context: ToolContext) -> Any:
        return {"utc": _dt.datetime.now(_dt.timezone.utc).isoformat()}


BuiltinFactory = Callable[[str, TaskStore, MemoryStore], Tool]

BUILTIN_TOOLS: Dict[str, BuiltinFactory] = {
    "recall_memory": lambda name, tasks, memory: RecallMemoryTool(name, memory),
    "remember_fact": lambda name, tasks, memory: RememberFactTool(name, memory),
    "create_subtask": lambda name, tasks, memory: CreateSubtaskTool(name, tasks),
    "current_time": lambda name, tasks, memory: CurrentTimeTool(name),
}


def register_builtin_tools(
    registry: ToolRegistry,
    task_store: TaskStore,
    memory_store: MemoryStore,
    names: Optional[Iterable[str]] = None,
) -> ToolRegistry:
    """Register the named built-in tools (all of them when ``names`` is None)."""

    for name in BUILTIN_TOOLS if names is None else names:
        try:
            factory = BUILTIN_TOOLS[name]
        except KeyError as exc:
            raise KeyError(f"Unknown built-in tool '{name}'") from exc
        registry.register(factory(name, task_store, memory_store), overwrite=True)
    return registry
