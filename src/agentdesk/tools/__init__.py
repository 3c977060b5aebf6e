"""Tool abstractions and registries."""

from .base import (
    FunctionTool,
    Tool,
    ToolCall,
    ToolContext,
    ToolDefinition,
    ToolExecutionError,
    ToolResult,
    UnknownToolError,
)
from .registry import ToolRegistry

__all__ = [
    "FunctionTool",
    "Tool",
    "ToolCall",
    "ToolContext",
    "ToolDefinition",
    "ToolExecutionError",
    "ToolResult",
    "ToolRegistry",
    "UnknownToolError",
]
