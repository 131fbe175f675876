"""
Tool registry for managing and executing tools.

This module provides the default in-process tool engine: it registers
tools, renders their schemas for prompts and executes them with parameter
validation, security gating and an optional approval callback.
"""

import inspect
import logging
import time
from typing import Any, Awaitable, Callable

from tandem.exceptions import (
    SecurityViolationError,
    ToolNotFoundError,
    ToolValidationError,
    UserDeniedError,
)
from tandem.tools.base import Tool
from tandem.tools.models import ExecutionContext, ToolConfirmation, ToolResult

logger = logging.getLogger(__name__)

ApprovalCallback = Callable[[ToolConfirmation], bool | Awaitable[bool]]


class ToolRegistry:
    """
    Registry for managing and executing tools.

    Registration is rare and execution frequent; all access happens on the
    event loop, so the registry map needs no lock.

    Parameters
    ----------
    approval_callback : ApprovalCallback | None, optional
        Called with a ``ToolConfirmation`` before running a tool that
        requires approval. A falsy answer aborts the call.

    Examples
    --------
    >>> registry = ToolRegistry()
    >>> registry.register(ReadFile())
    >>> result = await registry.execute_tool("read_file", {"path": "a.txt"}, context)
    """

    def __init__(self, approval_callback: ApprovalCallback | None = None) -> None:
        self._tools: dict[str, Tool] = {}
        self.approval_callback: ApprovalCallback | None = approval_callback

    def register(self, tool: Tool) -> None:
        """
        Register a tool in the registry.

        Parameters
        ----------
        tool : Tool
            Tool instance to register.
        """
        if tool.name in self._tools:
            logger.warning(f"Overwriting existing tool: {tool.name}")

        self._tools[tool.name] = tool
        logger.debug(f"Registered tool: {tool.name}")

    def unregister(self, name: str) -> bool:
        """
        Unregister a tool from the registry.

        Returns
        -------
        bool
            True if tool was found and removed, False otherwise.
        """
        if name in self._tools:
            del self._tools[name]
            logger.debug(f"Unregistered tool: {name}")
            return True

        return False

    def get(self, name: str) -> Tool | None:
        return self._tools.get(name)

    def get_tools(self) -> list[Tool]:
        return list(self._tools.values())

    def get_schemas(self) -> list[dict[str, Any]]:
        """
        Get schemas for all registered tools.

        Returns
        -------
        list[dict[str, Any]]
            Tool definitions as produced by ``Tool.to_schema``.
        """
        return [tool.to_schema() for tool in self._tools.values()]

    def __contains__(self, name: str) -> bool:
        return name in self._tools

    def __len__(self) -> int:
        return len(self._tools)

    async def _request_approval(self, confirmation: ToolConfirmation) -> bool:
        if self.approval_callback is None:
            return True
        answer = self.approval_callback(confirmation)
        if inspect.isawaitable(answer):
            answer = await answer
        return bool(answer)

    async def execute_tool(
        self,
        name: str,
        parameters: dict[str, Any],
        context: ExecutionContext,
    ) -> ToolResult:
        """
        Execute a tool with validation, security gating and approval.

        Parameters
        ----------
        name : str
            Name of the tool to execute.
        parameters : dict[str, Any]
            Parameters for the tool.
        context : ExecutionContext
            Caller identity and security settings.

        Returns
        -------
        ToolResult
            Result of the tool, with execution metadata filled in.

        Raises
        ------
        ToolNotFoundError
            If no tool with this name is registered.
        ToolValidationError
            If the parameters do not match the declaration.
        SecurityViolationError
            If the tool is dangerous and the context does not allow it.
        UserDeniedError
            If the approval callback declines the call.
        """
        tool = self.get(name)
        if tool is None:
            raise ToolNotFoundError(name)

        errors = tool.validate_params(parameters)
        if errors:
            raise ToolValidationError(
                f"Invalid parameters for {name}: {'; '.join(errors)}",
                details={"tool_name": name, "validation_errors": errors},
            )

        if tool.dangerous and not context.security.allow_dangerous:
            raise SecurityViolationError(
                f"Tool '{name}' is dangerous and the current security context does not allow it",
                details={"tool_name": name, "security_level": context.security.level},
            )

        confirmation = tool.get_confirmation(parameters)
        if confirmation is not None and not await self._request_approval(confirmation):
            raise UserDeniedError(
                f"User declined to run tool '{name}'",
                details={"tool_name": name},
            )

        start = time.perf_counter()
        result = await tool.execute(parameters, context)
        elapsed_ms = (time.perf_counter() - start) * 1000

        result.metadata.tool_name = name
        result.metadata.parameters = dict(parameters)
        result.metadata.execution_time = elapsed_ms
        logger.debug(f"Tool {name} finished in {elapsed_ms:.1f}ms (success={result.success})")
        return result
