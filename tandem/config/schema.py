"""
Configuration schema definitions for Tandem.

This module defines the Pydantic models for model selection, conversation
context budgeting and the top-level application configuration.
"""

from __future__ import annotations

from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

from tandem.constants import (
    DEFAULT_CHARS_PER_TOKEN,
    DEFAULT_MAX_RETRIES,
    DEFAULT_REQUEST_TIMEOUT,
    DEFAULT_SYSTEM_PROMPT,
)


class ModelConfig(BaseModel):
    """
    Configuration for a model backend.

    Instances are frozen: once handed to an adapter's ``initialize`` they
    cannot be mutated. Use ``model_copy(update=...)`` to derive a variant.

    Parameters
    ----------
    name : str
        Model identifier understood by the backend (e.g. ``"llama3.1:8b"``).
    provider : str
        Backend key used by the adapter factory (``"ollama"``,
        ``"huggingface"``, ``"openai"``, ``"custom"``, ``"mock"``).
    endpoint : str | None, optional
        Base URL of the backend. Adapters fall back to their own default.
    api_key : str | None, optional
        Credential sent as a bearer token. Public models work without it.
    temperature : float | None, optional
        Sampling temperature between 0.0 and 2.0.
    max_tokens : int | None, optional
        Maximum number of tokens to generate.
    timeout : float, default=30.0
        Per-request timeout in seconds.
    max_retries : int, default=2
        Retry attempts for connection failures and rate limits.
    additional_params : dict[str, Any], default={}
        Backend-specific parameters passed through verbatim.
    capability_overrides : dict[str, Any], default={}
        Explicit ``ModelCapabilities`` field values that win over
        name-based detection.

    Examples
    --------
    >>> config = ModelConfig(name="llama3.1:8b", provider="ollama")
    >>> config = ModelConfig(
    ...     name="bigcode/starcoder",
    ...     provider="huggingface",
    ...     api_key="hf_...",
    ...     capability_overrides={"max_context_length": 16384},
    ... )
    """

    model_config = ConfigDict(frozen=True)

    name: str = Field(description="Model name")
    provider: str = Field(description="Backend provider key")
    endpoint: str | None = Field(default=None, description="Backend base URL")
    api_key: str | None = Field(default=None, description="API key", repr=False)
    temperature: float | None = Field(
        default=None,
        ge=0.0,
        le=2.0,
        description="Sampling temperature (0.0-2.0)",
    )
    max_tokens: int | None = Field(
        default=None,
        ge=1,
        description="Maximum tokens to generate",
    )
    timeout: float = Field(
        default=DEFAULT_REQUEST_TIMEOUT,
        gt=0.0,
        description="Request timeout in seconds",
    )
    max_retries: int = Field(
        default=DEFAULT_MAX_RETRIES,
        ge=0,
        description="Retry attempts for transient failures",
    )
    additional_params: dict[str, Any] = Field(
        default_factory=dict,
        description="Backend-specific parameters",
    )
    capability_overrides: dict[str, Any] = Field(
        default_factory=dict,
        description="Explicit capability values",
    )

    @field_validator("provider")
    @classmethod
    def normalize_provider(cls, v: str) -> str:
        return v.strip().lower()


class TruncationStrategy(str, Enum):
    """Policy used to bring a conversation back under its token budget."""

    RECENT = "recent"
    SLIDING_WINDOW = "sliding_window"
    PRIORITY_BASED = "priority_based"


class TokenEstimatorKind(str, Enum):
    """How token counts are estimated."""

    CHARS = "chars"
    TIKTOKEN = "tiktoken"


class ContextConfig(BaseModel):
    """
    Token budget and truncation policy for one conversation.

    Parameters
    ----------
    max_tokens : int, default=4000
        Hard token budget for the whole context.
    truncation_strategy : TruncationStrategy, default=TruncationStrategy.RECENT
        Strategy applied when the budget is exceeded.
    min_recent_messages : int, default=2
        Most recent non-system messages that are never dropped.
    truncation_buffer : float, default=0.2
        Headroom fraction; truncation targets ``max_tokens * (1 - buffer)``.
    preserve_tool_results : bool, default=True
        Whether tool results are retained preferentially.
    chars_per_token : int, default=4
        Divisor for the character-based token estimate.
    token_estimator : TokenEstimatorKind, default=TokenEstimatorKind.CHARS
        Estimation method.

    Examples
    --------
    >>> config = ContextConfig(max_tokens=8000, truncation_strategy="priority_based")
    """

    max_tokens: int = Field(default=4000, ge=1, description="Token budget")
    truncation_strategy: TruncationStrategy = Field(
        default=TruncationStrategy.RECENT,
        description="Truncation strategy",
    )
    min_recent_messages: int = Field(
        default=2,
        ge=0,
        description="Recent messages always kept",
    )
    truncation_buffer: float = Field(
        default=0.2,
        ge=0.0,
        lt=1.0,
        description="Headroom fraction kept free after truncation",
    )
    preserve_tool_results: bool = Field(
        default=True,
        description="Retain tool results preferentially",
    )
    chars_per_token: int = Field(
        default=DEFAULT_CHARS_PER_TOKEN,
        ge=1,
        description="Characters per estimated token",
    )
    token_estimator: TokenEstimatorKind = Field(
        default=TokenEstimatorKind.CHARS,
        description="Token estimation method",
    )

    @property
    def target_tokens(self) -> int:
        """Token count truncation aims for, leaving the configured headroom."""
        return int(self.max_tokens * (1 - self.truncation_buffer))


class Configuration(BaseModel):
    """
    Main configuration model for Tandem.

    Parameters
    ----------
    model : ModelConfig | None, optional
        Active model. ``None`` until a backend has been configured.
    context : ContextConfig, optional
        Defaults applied to every new conversation context.
    system_prompt : str, default="You are a helpful AI coding assistant."
        System prompt for new conversations.
    agent_id : str, default="tandem"
        Identifier passed to the tool engine.
    user_id : str, default="local"
        Identifier of the interactive user.
    user_permissions : list[str], default=[]
        Permissions forwarded in the tool execution context.
    security_level : str, default="standard"
        Security level forwarded in the tool execution context.
    allow_dangerous_tools : bool, default=False
        Whether dangerous tools may run.
    debug : bool, default=False
        Enable debug mode.
    """

    model: ModelConfig | None = Field(default=None, description="Model configuration")
    context: ContextConfig = Field(
        default_factory=ContextConfig,
        description="Context configuration",
    )
    system_prompt: str = Field(
        default=DEFAULT_SYSTEM_PROMPT,
        description="System prompt",
    )
    agent_id: str = Field(default="tandem", description="Agent identifier")
    user_id: str = Field(default="local", description="User identifier")
    user_permissions: list[str] = Field(
        default_factory=list,
        description="User permissions",
    )
    security_level: str = Field(default="standard", description="Security level")
    allow_dangerous_tools: bool = Field(
        default=False,
        description="Allow dangerous tools",
    )
    debug: bool = Field(default=False, description="Enable debug mode")

    def to_dict(self) -> dict[str, Any]:
        """
        Convert configuration to a dictionary.

        Returns
        -------
        dict[str, Any]
            Dictionary representation of the configuration.
        """
        return self.model_dump(mode="json")
