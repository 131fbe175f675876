"""
Conversation context management.

This package provides the message model, token-bounded conversation
contexts and the truncation strategies they use.
"""

from tandem.context.manager import (
    ConversationContextManager,
    create_coding_conversation_context,
    create_conversation_context,
)
from tandem.context.models import Message, MessageRole, SerializedContext, TruncationReport

__all__ = [
    "ConversationContextManager",
    "Message",
    "MessageRole",
    "SerializedContext",
    "TruncationReport",
    "create_coding_conversation_context",
    "create_conversation_context",
]
