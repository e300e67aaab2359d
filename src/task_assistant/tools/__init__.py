"""Tooling layer for schema-validated execution."""

from task_assistant.tools.gateway import ToolCall, ToolExecutor
from task_assistant.tools.registry import (
    ToolName,
    ToolSpec,
    build_registry,
    list_tools,
    resolve_tool_name,
    tool_definitions,
)
from task_assistant.tools.schemas import ToolResult

__all__ = [
    "ToolCall",
    "ToolExecutor",
    "ToolName",
    "ToolResult",
    "ToolSpec",
    "build_registry",
    "list_tools",
    "resolve_tool_name",
    "tool_definitions",
]
