"""Per-agent registry of callable tools."""

from __future__ import annotations

from typing import Dict, Iterator, List

from ..config import ToolSpec, instantiate_from_path
from .base import Tool, ToolDefinition, UnknownToolError


class ToolRegistry:
    """Maps tool names to executable handlers for a single agent."""

    def __init__(self) -> None:
        self._tools: Dict[str, Tool] = {}

    def register(self, tool: Tool, *, overwrite: bool = False) -> None:
        if tool.name in self._tools and not overwrite:
            raise ValueError(f"Tool {tool.name} already registered")
        self._tools[tool.name] = tool

    def register_from_spec(self, spec: ToolSpec) -> Tool:
        instance = instantiate_from_path(spec.type, name=spec.name, **spec.args)
        if not isinstance(instance, Tool):
            raise TypeError(f"Tool '{spec.name}' must inherit Tool")
        self.register(instance, overwrite=True)
        return instance

    def get(self, name: str) -> Tool:
        try:
            return self._tools[name]
        except KeyError as exc:
            raise UnknownToolError(f"Unknown tool: {name}") from exc

    def definitions(self) -> List[ToolDefinition]:
        return [tool.definition for tool in self._tools.values()]

    def names(self) -> List[str]:
        return list(self._tools)

    def __contains__(self, name: object) -> bool:
        return name in self._tools

    def __iter__(self) -> Iterator[Tool]:
        return iter(list(self._tools.values()))

    def __len__(self) -> int:
        return len(self._tools)
