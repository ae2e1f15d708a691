"""Tooling layer for schema-validated execution."""

from assistant_orchestrator.tools.catalogue import (
    DISPATCHER_TOOLS,
    HALTING_TOOLS,
    build_registry,
    continuation_registry,
    dispatcher_registry,
    list_tools,
)
from assistant_orchestrator.tools.gateway import ToolExecutor
from assistant_orchestrator.tools.registry import ToolContext, ToolRegistry, ToolSpec
from assistant_orchestrator.tools.schemas import ToolResult

__all__ = [
    "DISPATCHER_TOOLS",
    "HALTING_TOOLS",
    "ToolContext",
    "ToolExecutor",
    "ToolRegistry",
    "ToolResult",
    "ToolSpec",
    "build_registry",
    "continuation_registry",
    "dispatcher_registry",
    "list_tools",
]
