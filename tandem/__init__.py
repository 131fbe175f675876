"""
Tandem: conversation context management for multi-backend LLM chat.

This package provides the pieces that sit between a chat UI and a set of
heterogeneous model backends: model adapters that normalize free-text
output into structured tool calls, a token-bounded conversation context
with pluggable truncation strategies, and an orchestration service that
maps sessions to contexts and dispatches tool calls.
"""

__version__ = "0.1.0"
