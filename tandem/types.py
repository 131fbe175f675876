"""
Type definitions and aliases for Tandem.

This module provides common type aliases used throughout the codebase to
keep signatures consistent.
"""

from typing import Any, Awaitable, Callable, Dict, List, Union

# Schema-less tool parameters: any JSON value keyed by name
JSONValue = Union[str, int, float, bool, None, List[Any], Dict[str, Any]]
ToolParameters = Dict[str, Any]

# Tool schemas handed to adapters for prompt rendering
ToolSchema = Dict[str, Any]
ToolSchemas = List[ToolSchema]

# Configuration types
ConfigDict = Dict[str, Any]

# Token counting
TokenCount = int

# Error context
ErrorDetails = Dict[str, Any]

# Streaming callback: receives a StreamChunk, may be sync or async
ChunkCallback = Callable[[Any], Union[None, Awaitable[None]]]
