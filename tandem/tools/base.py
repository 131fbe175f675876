"""
Base tool class and abstract interface.

This module provides the abstract base class for tools, with parameter
validation against declared ``ToolParameter`` entries and schema
generation for prompt rendering.
"""

import abc
import asyncio
import inspect
import json
from typing import Any, Callable

from tandem.tools.models import (
    ExecutionContext,
    ToolConfirmation,
    ToolParameter,
    ToolParameterType,
    ToolResult,
)

__all__ = ["Tool", "FunctionTool"]

_TYPE_CHECKS: dict[ToolParameterType, Callable[[Any], bool]] = {
    ToolParameterType.STRING: lambda v: isinstance(v, str),
    ToolParameterType.NUMBER: lambda v: isinstance(v, (int, float)) and not isinstance(v, bool),
    ToolParameterType.BOOLEAN: lambda v: isinstance(v, bool),
    ToolParameterType.OBJECT: lambda v: isinstance(v, dict),
    ToolParameterType.ARRAY: lambda v: isinstance(v, list),
}


class Tool(abc.ABC):
    """
    Abstract base class for all tools.

    Subclasses set ``name``, ``description`` and ``parameters`` and
    implement ``execute``.

    Attributes
    ----------
    name : str
        Unique name of the tool.
    description : str
        Human-readable description.
    parameters : list[ToolParameter]
        Declared parameters.
    dangerous : bool
        Whether the tool needs ``allow_dangerous`` in the security context.
    requires_approval : bool
        Whether the registry asks the approval callback before running it.

    Examples
    --------
    >>> class ReadFile(Tool):
    ...     name = "read_file"
    ...     description = "Read a file"
    ...     parameters = [ToolParameter(name="path", type="string", required=True)]
    ...
    ...     async def execute(self, params, context):
    ...         return ToolResult.success_result(open(params["path"]).read())
    """

    name: str = ""
    description: str = ""
    parameters: list[ToolParameter] = []
    dangerous: bool = False
    requires_approval: bool = False

    @abc.abstractmethod
    async def execute(
        self,
        params: dict[str, Any],
        context: ExecutionContext,
    ) -> ToolResult:
        """
        Execute the tool.

        Parameters
        ----------
        params : dict[str, Any]
            Validated parameters.
        context : ExecutionContext
            Caller identity and security settings.

        Returns
        -------
        ToolResult
            Result of the tool execution.
        """

    @property
    def required_parameters(self) -> list[str]:
        return [p.name for p in self.parameters if p.required]

    def missing_parameters(self, params: dict[str, Any]) -> list[str]:
        """Names of required parameters absent from ``params``."""
        return [name for name in self.required_parameters if params.get(name) is None]

    def validate_params(self, params: dict[str, Any]) -> list[str]:
        """
        Validate parameters against the declared parameter list.

        Parameters
        ----------
        params : dict[str, Any]
            Parameters to validate.

        Returns
        -------
        list[str]
            Validation error messages. Empty list if valid.

        Examples
        --------
        >>> errors = tool.validate_params({"path": "a.txt"})
        """
        errors: list[str] = [
            f"Missing required parameter: {name}" for name in self.missing_parameters(params)
        ]

        for param in self.parameters:
            value = params.get(param.name)
            if value is None:
                continue
            if not _TYPE_CHECKS[param.type](value):
                errors.append(
                    f"Parameter '{param.name}' must be of type {param.type.value}",
                )
            elif param.enum is not None and value not in param.enum:
                allowed = ", ".join(str(v) for v in param.enum)
                errors.append(f"Parameter '{param.name}' must be one of: {allowed}")

        return errors

    def get_confirmation(self, params: dict[str, Any]) -> ToolConfirmation | None:
        """
        Build an approval request if this tool needs one.

        Returns
        -------
        ToolConfirmation | None
            Confirmation request, or None when no approval is needed.
        """
        if not (self.requires_approval or self.dangerous):
            return None
        return ToolConfirmation(
            tool_name=self.name,
            params=params,
            description=f"Execute {self.name}",
            is_dangerous=self.dangerous,
        )

    def to_schema(self) -> dict[str, Any]:
        """
        Convert the tool to a JSON-schema style definition.

        Returns
        -------
        dict[str, Any]
            ``{"name", "description", "parameters": {"type": "object",
            "properties", "required"}}``.
        """
        properties: dict[str, Any] = {}
        for param in self.parameters:
            prop: dict[str, Any] = {
                "type": param.type.value,
                "description": param.description,
            }
            if param.enum is not None:
                prop["enum"] = param.enum
            properties[param.name] = prop

        return {
            "name": self.name,
            "description": self.description,
            "parameters": {
                "type": "object",
                "properties": properties,
                "required": self.required_parameters,
            },
        }


class FunctionTool(Tool):
    """
    Tool backed by a plain function.

    The function receives the parameters as keyword arguments and may be
    sync or async. A returned ``ToolResult`` is passed through; any other
    return value becomes a successful result, with mappings and lists
    rendered as JSON.

    Parameters
    ----------
    name : str
        Tool name.
    func : Callable[..., Any]
        Implementation.
    description : str, default=""
        Description shown to the model.
    parameters : list[ToolParameter] | None, optional
        Declared parameters.
    dangerous : bool, default=False
        Whether the tool is dangerous.
    requires_approval : bool, default=False
        Whether the approval callback is consulted.

    Examples
    --------
    >>> def add(a: float, b: float) -> float:
    ...     return a + b
    >>> tool = FunctionTool(
    ...     "add",
    ...     add,
    ...     parameters=[
    ...         ToolParameter(name="a", type="number", required=True),
    ...         ToolParameter(name="b", type="number", required=True),
    ...     ],
    ... )
    """

    def __init__(
        self,
        name: str,
        func: Callable[..., Any],
        description: str = "",
        parameters: list[ToolParameter] | None = None,
        dangerous: bool = False,
        requires_approval: bool = False,
    ) -> None:
        self.name = name
        self.func = func
        self.description = description or (inspect.getdoc(func) or "")
        self.parameters = list(parameters or [])
        self.dangerous = dangerous
        self.requires_approval = requires_approval

    async def execute(
        self,
        params: dict[str, Any],
        context: ExecutionContext,
    ) -> ToolResult:
        if inspect.iscoroutinefunction(self.func):
            value = await self.func(**params)
        else:
            value = await asyncio.to_thread(self.func, **params)

        if isinstance(value, ToolResult):
            return value
        if isinstance(value, (dict, list)):
            return ToolResult.success_result(json.dumps(value, default=str))
        return ToolResult.success_result("" if value is None else str(value))
