"""Base classes for tools."""

from __future__ import annotations

import inspect
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, Optional, Union


class UnknownToolError(LookupError):
    """Raised when a model requests a tool the agent does not have."""


class ToolExecutionError(RuntimeError):
    """Raised by tools that fail while handling a call."""


@dataclass(frozen=True)
class ToolDefinition:
    """Descriptor advertised to the model for one callable tool."""

    name: str
    description: str
    parameters: Dict[str, Any] = field(default_factory=lambda: {"type": "object", "properties": {}})


@dataclass
class ToolCall:
    """A tool invocation requested by the model."""

    id: str
    name: str
    arguments: Dict[str, Any] = field(default_factory=dict)


@dataclass
class ToolResult:
    """Outcome of one tool call: either ``result`` or ``error`` is meaningful."""

    call_id: str
    result: Any = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass
class ToolContext:
    """Metadata passed to tool invocations."""

    agent_id: str
    task_id: str
    iteration: int
    metadata: Dict[str, Any] = field(default_factory=dict)


class Tool:
    """Base tool class."""

    name: str
    description: str
    parameters: Dict[str, Any] = {"type": "object", "properties": {}}

    def __init__(
        self,
        name: str,
        description: str | None = None,
        parameters: Dict[str, Any] | None = None,
        **kwargs: object,
    ) -> None:
        self.name = name
        self.description = description or (self.__class__.__doc__ or "").strip()
        if parameters is not None:
            self.parameters = parameters
        self.config = kwargs

    @property
    def definition(self) -> ToolDefinition:
        return ToolDefinition(name=self.name, description=self.description, parameters=dict(self.parameters))

    async def run(self, arguments: Dict[str, Any], context: ToolContext) -> Any:  # pragma: no cover - abstract
        raise NotImplementedError


ToolHandler = Callable[..., Union[Any, Awaitable[Any]]]


class FunctionTool(Tool):
    """Wraps a plain or async callable taking the call arguments as keywords."""

    def __init__(
        self,
        name: str,
        handler: ToolHandler,
        description: str | None = None,
        parameters: Dict[str, Any] | None = None,
    ) -> None:
        super().__init__(name, description or (handler.__doc__ or "").strip(), parameters)
        self._handler = handler

    async def run(self, arguments: Dict[str, Any], context: ToolContext) -> Any:
        result = self._handler(**arguments)
        if inspect.isawaitable(result):
            result = await result
        return result
