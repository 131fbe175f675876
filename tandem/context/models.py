"""
Data models for conversation context management.

This module defines the message type stored in a conversation, the
report produced by a truncation pass and the serialized form of a whole
context.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field, field_validator

from tandem.config.schema import ContextConfig, TruncationStrategy
from tandem.llm.models import ToolCall
from tandem.tools.models import ToolResult, utc_now


class MessageRole(str, Enum):
    """Speaker of a message."""

    USER = "user"
    ASSISTANT = "assistant"
    SYSTEM = "system"
    TOOL = "tool"


class Message(BaseModel):
    """
    One turn in a conversation.

    Parameters
    ----------
    role : MessageRole
        Speaker of the message.
    content : str, default=""
        Message text. May be empty while an assistant turn is streaming.
    timestamp : datetime, optional
        When the message was created. Naive values are taken as UTC.
    tool_calls : list[ToolCall] | None, optional
        Tool calls requested in this turn.
    tool_results : list[ToolResult] | None, optional
        Results of the tool calls, attached to the triggering message.
    is_streaming : bool, default=False
        Whether the message is still receiving content.
    is_complete : bool, default=True
        Whether the message is final.

    Examples
    --------
    >>> Message(role="user", content="What does main.py do?")
    >>> Message(role=MessageRole.SYSTEM, content="Be concise.")
    """

    role: MessageRole = Field(description="Message role")
    content: str = Field(default="", description="Message content")
    timestamp: datetime = Field(default_factory=utc_now, description="Creation time")
    tool_calls: list[ToolCall] | None = Field(default=None, description="Tool calls")
    tool_results: list[ToolResult] | None = Field(
        default=None,
        description="Attached tool results",
    )
    is_streaming: bool = Field(default=False, description="Streaming in progress")
    is_complete: bool = Field(default=True, description="Message is final")

    @field_validator("timestamp")
    @classmethod
    def ensure_aware(cls, v: datetime) -> datetime:
        if v.tzinfo is None:
            return v.replace(tzinfo=timezone.utc)
        return v

    @property
    def is_system(self) -> bool:
        return self.role == MessageRole.SYSTEM


class TruncationReport(BaseModel):
    """
    Outcome of one truncation pass.

    ``emergency`` is set when dropping whole items was not enough and
    individual contents had to be cut.
    """

    strategy: TruncationStrategy = Field(description="Strategy applied")
    tokens_before: int = Field(ge=0, description="Estimate before truncation")
    tokens_after: int = Field(ge=0, description="Estimate after truncation")
    messages_dropped: int = Field(default=0, ge=0)
    tool_results_dropped: int = Field(default=0, ge=0)
    emergency: bool = Field(default=False, description="Content was cut")
    timestamp: datetime = Field(default_factory=utc_now)


class ContextMetadata(BaseModel):
    created_at: datetime
    last_updated: datetime
    message_count: int = 0
    token_count: int = 0


class SerializedContext(BaseModel):
    """
    Persisted form of a conversation context.

    This is the shape produced by ``ConversationContextManager.serialize``
    and accepted back by ``deserialize``.
    """

    messages: list[Message] = Field(default_factory=list)
    tool_results: list[ToolResult] = Field(default_factory=list)
    system_prompt: str = Field(default="")
    config: ContextConfig = Field(default_factory=ContextConfig)
    metadata: ContextMetadata

    def to_dict(self) -> dict[str, Any]:
        return self.model_dump(mode="json")
