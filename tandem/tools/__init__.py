"""
Tool declarations and the in-process tool engine.

This package provides the tool base classes, the data models exchanged with
the tool engine and the registry that executes tools.
"""

from tandem.tools.base import FunctionTool, Tool
from tandem.tools.models import (
    ExecutionContext,
    SecurityContext,
    ToolConfirmation,
    ToolParameter,
    ToolParameterType,
    ToolResult,
    ToolResultMetadata,
    UserContext,
)
from tandem.tools.registry import ToolRegistry

__all__ = [
    "ExecutionContext",
    "FunctionTool",
    "SecurityContext",
    "Tool",
    "ToolConfirmation",
    "ToolParameter",
    "ToolParameterType",
    "ToolRegistry",
    "ToolResult",
    "ToolResultMetadata",
    "UserContext",
]
