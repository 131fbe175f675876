"""
Data models for model adapters.

This module defines Pydantic models for normalized tool calls, parsed
responses, streaming chunks and model capability descriptions.
"""

from __future__ import annotations

import json
import random
import string
import time
from typing import Any

from pydantic import BaseModel, Field, field_validator

from tandem.constants import DEFAULT_CONTEXT_LENGTH


def generate_tool_call_id() -> str:
    """
    Generate an identifier for a tool call.

    Identifiers combine the current time in milliseconds with a random
    suffix. They are unique enough to correlate calls and results within a
    session but carry no cryptographic guarantee.

    Returns
    -------
    str
        Identifier of the form ``tool_<millis>_<suffix>``.
    """
    suffix = "".join(random.choices(string.ascii_lowercase + string.digits, k=9))
    return f"tool_{int(time.time() * 1000)}_{suffix}"


class ToolCall(BaseModel):
    """
    A request from the model to invoke a tool.

    Parameters
    ----------
    id : str, optional
        Correlation identifier. Generated when omitted.
    name : str
        Tool name.
    parameters : dict[str, Any], default={}
        Schema-less parameters. A JSON string is decoded; anything that is
        not a mapping becomes an empty mapping.

    Examples
    --------
    >>> call = ToolCall(name="read_file", parameters={"path": "a.txt"})
    >>> call = ToolCall(name="read_file", parameters='{"path": "a.txt"}')
    """

    id: str = Field(default_factory=generate_tool_call_id, description="Call identifier")
    name: str = Field(description="Tool name")
    parameters: dict[str, Any] = Field(
        default_factory=dict,
        description="Tool parameters",
    )

    @field_validator("parameters", mode="before")
    @classmethod
    def parse_parameters(cls, v: Any) -> dict[str, Any]:
        if isinstance(v, str):
            try:
                v = json.loads(v)
            except json.JSONDecodeError:
                return {}
        if not isinstance(v, dict):
            return {}
        return v


class ResponseMetadata(BaseModel):
    """
    Metadata attached to a parsed model response.

    Extra fields supplied by individual backends (e.g. Ollama's
    ``eval_count``) are kept.
    """

    model_config = {"extra": "allow"}

    model: str = Field(default="", description="Model that produced the response")
    tokens_used: int = Field(default=0, ge=0, description="Estimated tokens")
    processing_time: float = Field(
        default=0.0,
        ge=0.0,
        description="Parsing time in milliseconds",
    )


class AIResponse(BaseModel):
    """
    A model response normalized into display content and tool calls.

    Parameters
    ----------
    content : str
        Text to show the user, with recognized tool-call encodings removed.
    tool_calls : list[ToolCall], default=[]
        Tool calls found in the raw response.
    metadata : ResponseMetadata, optional
        Model name, token estimate and processing time.
    """

    content: str = Field(default="", description="Display content")
    tool_calls: list[ToolCall] = Field(default_factory=list, description="Tool calls")
    metadata: ResponseMetadata = Field(
        default_factory=ResponseMetadata,
        description="Response metadata",
    )

    @property
    def has_tool_calls(self) -> bool:
        return bool(self.tool_calls)


class StreamChunk(BaseModel):
    """
    One element of a streaming response.

    Content chunks carry a text delta with ``is_complete=False``. Every
    stream ends with exactly one terminal chunk (``is_complete=True``)
    whose ``tool_calls`` and ``metadata`` describe the whole response.

    Examples
    --------
    >>> StreamChunk(content="Hel", is_complete=False)
    >>> StreamChunk(content="", is_complete=True, tool_calls=[])
    """

    content: str = Field(default="", description="Text delta")
    is_complete: bool = Field(default=False, description="Terminal chunk marker")
    tool_calls: list[ToolCall] | None = Field(default=None, description="Tool calls")
    metadata: ResponseMetadata | None = Field(default=None, description="Metadata")


class ModelCapabilities(BaseModel):
    """
    Descriptive capabilities of a model backend.

    These values are best-effort estimates, partly derived from the model
    name. They are never enforced; callers may override any field through
    ``ModelConfig.capability_overrides``.
    """

    supports_tool_calling: bool = Field(default=False)
    supports_streaming: bool = Field(default=False)
    supports_system_prompts: bool = Field(default=True)
    max_context_length: int = Field(default=DEFAULT_CONTEXT_LENGTH, ge=1)
    supported_formats: list[str] = Field(default_factory=lambda: ["text"])
    prefer_streaming: bool | None = Field(default=None)
