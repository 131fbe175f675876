"""
Data models for the tools system.

This module defines Pydantic models for tool parameters, tool results,
approval requests and the execution context handed to the tool engine.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class ToolParameterType(str, Enum):
    """JSON types a tool parameter may declare."""

    STRING = "string"
    NUMBER = "number"
    BOOLEAN = "boolean"
    OBJECT = "object"
    ARRAY = "array"


class ToolParameter(BaseModel):
    """
    Declaration of a single tool parameter.

    Parameters
    ----------
    name : str
        Parameter name.
    type : ToolParameterType
        Expected JSON type.
    description : str, default=""
        Description shown to the model.
    required : bool, default=False
        Whether the parameter must be supplied.
    enum : list[Any] | None, optional
        Allowed values.

    Examples
    --------
    >>> ToolParameter(name="path", type="string", required=True)
    """

    name: str = Field(description="Parameter name")
    type: ToolParameterType = Field(description="Parameter type")
    description: str = Field(default="", description="Parameter description")
    required: bool = Field(default=False, description="Whether required")
    enum: list[Any] | None = Field(default=None, description="Allowed values")


class ToolResultMetadata(BaseModel):
    """
    Bookkeeping attached to every tool result.

    Unknown keys are kept so that tools can add their own fields.

    Parameters
    ----------
    execution_time : float, default=0.0
        Execution time in milliseconds.
    tool_name : str, default=""
        Name of the tool that produced the result.
    parameters : dict[str, Any], default={}
        Parameters echoed from the call.
    timestamp : datetime, optional
        When the result was produced. Drives retention priority.
    """

    model_config = ConfigDict(extra="allow")

    execution_time: float = Field(default=0.0, ge=0.0, description="Milliseconds")
    tool_name: str = Field(default="", description="Tool name")
    parameters: dict[str, Any] = Field(default_factory=dict, description="Parameters")
    timestamp: datetime = Field(default_factory=utc_now, description="Result time")

    @field_validator("timestamp")
    @classmethod
    def ensure_aware(cls, v: datetime) -> datetime:
        if v.tzinfo is None:
            return v.replace(tzinfo=timezone.utc)
        return v


class ToolResult(BaseModel):
    """
    Result of a tool execution.

    Parameters
    ----------
    success : bool
        Whether the tool execution was successful.
    output : str | None, optional
        Output from the tool execution.
    error : str | None, optional
        Error message if execution failed.
    metadata : ToolResultMetadata, optional
        Execution time, tool name, parameters and timestamp.

    Examples
    --------
    >>> result = ToolResult.success_result("File read successfully")
    >>> result = ToolResult.error_result("File not found")
    """

    success: bool = Field(description="Whether execution succeeded")
    output: str | None = Field(default=None, description="Tool output")
    error: str | None = Field(default=None, description="Error message")
    metadata: ToolResultMetadata = Field(
        default_factory=ToolResultMetadata,
        description="Execution metadata",
    )

    @classmethod
    def error_result(cls, error: str, output: str | None = None, **kwargs: Any) -> "ToolResult":
        """
        Create an error result.

        Parameters
        ----------
        error : str
            Error message.
        output : str | None, optional
            Optional output text.
        **kwargs : Any
            Additional fields for the result.

        Returns
        -------
        ToolResult
            Error result instance.
        """
        return cls(success=False, output=output, error=error, **kwargs)

    @classmethod
    def success_result(cls, output: str, **kwargs: Any) -> "ToolResult":
        """
        Create a success result.

        Parameters
        ----------
        output : str
            Output text.
        **kwargs : Any
            Additional fields for the result.

        Returns
        -------
        ToolResult
            Success result instance.
        """
        return cls(success=True, output=output, error=None, **kwargs)

    @property
    def text(self) -> str:
        """Output and error text, as counted against the token budget."""
        return f"{self.output or ''}{self.error or ''}"

    def to_model_output(self) -> str:
        """
        Render the result the way prompts show it.

        Returns
        -------
        str
            The output on success, ``"Error: <error>"`` otherwise.
        """
        if self.success:
            return self.output or ""
        return f"Error: {self.error}"


class ToolConfirmation(BaseModel):
    """
    Approval request for a tool call, handed to the approval callback.

    Parameters
    ----------
    tool_name : str
        Name of the tool requesting confirmation.
    params : dict[str, Any]
        Parameters for the tool call.
    description : str
        Human-readable description of the action.
    is_dangerous : bool, default=False
        Whether the tool is flagged as dangerous.
    """

    tool_name: str = Field(description="Tool name")
    params: dict[str, Any] = Field(description="Tool parameters")
    description: str = Field(description="Action description")
    is_dangerous: bool = Field(default=False, description="Is dangerous action")


class UserContext(BaseModel):
    """Identity of the user a tool runs on behalf of."""

    id: str = Field(description="User identifier")
    permissions: list[str] = Field(default_factory=list, description="Permissions")


class SecurityContext(BaseModel):
    """Security settings a tool runs under."""

    level: str = Field(default="standard", description="Security level")
    allow_dangerous: bool = Field(default=False, description="Allow dangerous tools")


class ExecutionContext(BaseModel):
    """
    Context passed to the tool engine with every execution.

    Examples
    --------
    >>> ExecutionContext(
    ...     agent_id="tandem",
    ...     session_id="s1",
    ...     user=UserContext(id="local"),
    ...     security=SecurityContext(level="standard"),
    ... )
    """

    agent_id: str = Field(description="Agent identifier")
    session_id: str = Field(description="Session identifier")
    user: UserContext = Field(description="User context")
    security: SecurityContext = Field(
        default_factory=SecurityContext,
        description="Security context",
    )
