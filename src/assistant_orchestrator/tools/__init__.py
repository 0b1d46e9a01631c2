"""Tooling layer for schema-validated execution."""

from assistant_orchestrator.tools.ledger import SplitwiseClient
from assistant_orchestrator.tools.registry import (
    ToolDefinition,
    ToolInvoker,
    ToolRegistry,
    ToolSpec,
    build_registry,
)
from assistant_orchestrator.tools.schemas import ToolResult

__all__ = [
    "SplitwiseClient",
    "ToolDefinition",
    "ToolInvoker",
    "ToolRegistry",
    "ToolResult",
    "ToolSpec",
    "build_registry",
]
