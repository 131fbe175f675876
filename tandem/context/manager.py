"""
Conversation context manager.

This module keeps the ordered message log and the tool-result log of one
conversation, estimates their token cost and truncates them when they
exceed the configured budget. It also converts a context to and from its
serialized form.
"""

import json
import logging
from datetime import datetime
from typing import TYPE_CHECKING, Any

from pydantic import ValidationError as PydanticValidationError

from tandem.config.schema import ContextConfig, TruncationStrategy
from tandem.constants import DEFAULT_SYSTEM_PROMPT
from tandem.context.models import (
    ContextMetadata,
    Message,
    MessageRole,
    SerializedContext,
    TruncationReport,
)
from tandem.context.truncation import get_strategy, retain_tool_results
from tandem.exceptions import ValidationError
from tandem.llm.models import ToolCall
from tandem.tools.models import ToolResult, utc_now
from tandem.utils.serialization import json_safe
from tandem.utils.text import TokenEstimator

if TYPE_CHECKING:
    from tandem.interfaces import TokenizerProtocol

logger = logging.getLogger(__name__)

CODING_SYSTEM_PROMPT: str = (
    "You are an expert software engineer working inside the user's editor. "
    "Read code carefully before changing it, explain your reasoning briefly, "
    "and use the available tools to inspect files and run commands when that "
    "is more reliable than guessing."
)


class ConversationContextManager:
    """
    Owns the message log and tool-result log of one conversation.

    Every mutation (``add_message``, ``add_tool_result``, ``update_config``,
    ``update_system_prompt``) re-estimates the token count and truncates
    the context when it exceeds ``config.max_tokens``. Truncation aims for
    ``max_tokens * (1 - truncation_buffer)`` and never raises: when
    dropping whole items is not enough, individual contents are cut and
    the pass is reported as an emergency.

    Parameters
    ----------
    config : ContextConfig | None, optional
        Budget and truncation policy. Uses defaults if not provided.
    system_prompt : str, default="You are a helpful AI coding assistant."
        Prompt treated as a permanent leading system message.
    estimator : TokenizerProtocol | None, optional
        Token counter. A ``TokenEstimator`` built from ``config`` if not
        provided.

    Examples
    --------
    >>> context = ConversationContextManager(ContextConfig(max_tokens=2000))
    >>> context.add_user_message("What does main.py do?")
    >>> context.add_assistant_message("It starts the CLI.")
    >>> context.get_stats()["message_count"]
    2
    """

    def __init__(
        self,
        config: ContextConfig | None = None,
        system_prompt: str = DEFAULT_SYSTEM_PROMPT,
        estimator: "TokenizerProtocol | None" = None,
    ) -> None:
        self._config: ContextConfig = config or ContextConfig()
        self._system_prompt: str = system_prompt
        self._estimator: "TokenizerProtocol" = estimator or self._build_estimator(self._config)
        self._messages: list[Message] = []
        self._tool_results: list[ToolResult] = []
        self._created_at: datetime = utc_now()
        self._last_updated: datetime = self._created_at
        self._last_truncation: TruncationReport | None = None

    @staticmethod
    def _build_estimator(config: ContextConfig) -> TokenEstimator:
        return TokenEstimator(
            chars_per_token=config.chars_per_token,
            method=config.token_estimator.value,
        )

    @property
    def config(self) -> ContextConfig:
        return self._config

    @property
    def system_prompt(self) -> str:
        return self._system_prompt

    @property
    def created_at(self) -> datetime:
        return self._created_at

    @property
    def last_updated(self) -> datetime:
        return self._last_updated

    @property
    def last_truncation(self) -> TruncationReport | None:
        """Report of the most recent truncation pass, if any."""
        return self._last_truncation

    @property
    def message_count(self) -> int:
        return len(self._messages)

    @property
    def token_count(self) -> int:
        return self.calculate_token_count()

    def _touch(self) -> None:
        self._last_updated = utc_now()

    # ------------------------------------------------------------------
    # Token accounting
    # ------------------------------------------------------------------

    def _measure_result(self, result: ToolResult) -> int:
        return self._estimator.count(result.output) + self._estimator.count(result.error)

    def _measure_message(self, message: Message) -> int:
        tokens = self._estimator.count(message.content)
        for result in message.tool_results or []:
            tokens += self._measure_result(result)
        return tokens

    def _tool_results_tokens(self) -> int:
        return sum(self._measure_result(r) for r in self._tool_results)

    def calculate_token_count(self) -> int:
        """
        Estimate the token cost of the whole context.

        The estimate covers the system prompt, every message's content and
        attached tool results, and the tool-result log. Tool-call
        parameters are not counted.

        Returns
        -------
        int
            Estimated token count.
        """
        return (
            self._estimator.count(self._system_prompt)
            + sum(self._measure_message(m) for m in self._messages)
            + self._tool_results_tokens()
        )

    # ------------------------------------------------------------------
    # Mutation
    # ------------------------------------------------------------------

    def add_message(self, message: Message) -> Message:
        """
        Append a message to the conversation.

        The message is copied. If its timestamp is earlier than the last
        stored message, the stored copy takes the last message's timestamp
        so the log stays in chronological order.

        Parameters
        ----------
        message : Message
            Message to append.

        Returns
        -------
        Message
            The stored copy.
        """
        stored = message.model_copy(deep=True)
        if self._messages and stored.timestamp < self._messages[-1].timestamp:
            logger.debug(
                f"Clamping out-of-order {stored.role.value} message timestamp "
                f"{stored.timestamp.isoformat()} to {self._messages[-1].timestamp.isoformat()}",
            )
            stored.timestamp = self._messages[-1].timestamp

        self._messages.append(stored)
        self._touch()
        logger.debug(
            f"Added {stored.role.value} message ({self._measure_message(stored)} tokens)",
        )
        self.truncate_if_needed()
        return stored

    def add_user_message(self, content: str) -> Message:
        return self.add_message(Message(role=MessageRole.USER, content=content))

    def add_assistant_message(
        self,
        content: str,
        tool_calls: list[ToolCall] | None = None,
        tool_results: list[ToolResult] | None = None,
    ) -> Message:
        """
        Append an assistant message.

        Parameters
        ----------
        content : str
            Assistant text.
        tool_calls : list[ToolCall] | None, optional
            Tool calls the assistant requested.
        tool_results : list[ToolResult] | None, optional
            Results of those tool calls.

        Returns
        -------
        Message
            The stored message.
        """
        return self.add_message(
            Message(
                role=MessageRole.ASSISTANT,
                content=content,
                tool_calls=tool_calls or None,
                tool_results=tool_results or None,
            ),
        )

    def add_system_message(self, content: str) -> Message:
        return self.add_message(Message(role=MessageRole.SYSTEM, content=content))

    def add_tool_result(self, result: ToolResult) -> ToolResult:
        """
        Append a result to the tool-result log.

        Parameters
        ----------
        result : ToolResult
            Result to append. It is copied.

        Returns
        -------
        ToolResult
            The stored copy.
        """
        stored = result.model_copy(deep=True)
        self._tool_results.append(stored)
        self._touch()
        logger.debug(
            f"Added tool result for {stored.metadata.tool_name or 'unknown tool'} "
            f"({self._measure_result(stored)} tokens)",
        )
        self.truncate_if_needed()
        return stored

    def update_config(self, config: ContextConfig | None = None, **changes: Any) -> ContextConfig:
        """
        Replace or patch the context configuration.

        Parameters
        ----------
        config : ContextConfig | None, optional
            Complete replacement configuration.
        **changes : Any
            Field updates applied to the current configuration.

        Returns
        -------
        ContextConfig
            The configuration now in effect.

        Raises
        ------
        ValidationError
            If the resulting configuration is invalid.

        Examples
        --------
        >>> context.update_config(max_tokens=1000, truncation_strategy="sliding_window")
        """
        if config is None:
            try:
                config = ContextConfig.model_validate({**self._config.model_dump(), **changes})
            except PydanticValidationError as e:
                raise ValidationError(f"Invalid context configuration: {e}", cause=e) from e

        if (
            config.chars_per_token != self._config.chars_per_token
            or config.token_estimator != self._config.token_estimator
        ):
            self._estimator = self._build_estimator(config)

        self._config = config
        self._touch()
        logger.debug(f"Context config updated: {config.model_dump(mode='json')}")
        self.truncate_if_needed()
        return self._config

    def update_system_prompt(self, prompt: str) -> None:
        self._system_prompt = prompt
        self._touch()
        self.truncate_if_needed()

    def clear(self) -> None:
        """
        Remove all messages and tool results.

        The system prompt and configuration are kept.
        """
        self._messages = []
        self._tool_results = []
        self._last_truncation = None
        self._touch()
        logger.debug("Context cleared")

    # ------------------------------------------------------------------
    # Truncation
    # ------------------------------------------------------------------

    def truncate_if_needed(self) -> TruncationReport | None:
        """
        Bring the context back under budget if it exceeds ``max_tokens``.

        The pass drops the tool-result log when results are not preserved,
        trims the tool-result log to what fits next to the system content
        and the protected recent messages when they are, lets the
        configured strategy choose surviving messages, and finally cuts
        contents if the result is still over budget.

        Returns
        -------
        TruncationReport | None
            Report of the pass, or None if no truncation was needed.
        """
        config = self._config
        tokens_before = self.calculate_token_count()
        if tokens_before <= config.max_tokens:
            return None

        target = config.target_tokens
        messages_before = len(self._messages)
        results_before = len(self._tool_results)

        if not config.preserve_tool_results:
            self._tool_results = []

        system_messages = [m for m in self._messages if m.is_system]
        conversation = [m for m in self._messages if not m.is_system]
        fixed_tokens = self._estimator.count(self._system_prompt) + sum(
            self._measure_message(m) for m in system_messages
        )

        if config.preserve_tool_results and self._tool_results:
            protected = conversation[-config.min_recent_messages:] if config.min_recent_messages else []
            results_budget = max(
                0,
                target - fixed_tokens - sum(self._measure_message(m) for m in protected),
            )
            if self._tool_results_tokens() > results_budget:
                self._tool_results = retain_tool_results(
                    self._tool_results,
                    results_budget,
                    self._measure_result,
                )

        budget = max(0, target - fixed_tokens - self._tool_results_tokens())
        strategy = get_strategy(config.truncation_strategy)
        kept = {id(m) for m in strategy.select(conversation, budget, config, self._measure_message)}
        survivors = [m for m in self._messages if m.is_system or id(m) in kept]
        self._messages = sorted(survivors, key=lambda m: m.timestamp)

        emergency = False
        if self.calculate_token_count() > config.max_tokens:
            emergency = True
            self._emergency_truncate()

        report = TruncationReport(
            strategy=config.truncation_strategy,
            tokens_before=tokens_before,
            tokens_after=self.calculate_token_count(),
            messages_dropped=messages_before - len(self._messages),
            tool_results_dropped=results_before - len(self._tool_results),
            emergency=emergency,
        )
        self._last_truncation = report
        self._touch()

        if emergency:
            logger.warning(
                f"Emergency truncation: content still exceeded {config.max_tokens} tokens "
                f"after {report.strategy.value} truncation; cut message contents "
                f"({report.tokens_before} -> {report.tokens_after} tokens)",
            )
        else:
            logger.info(
                f"Truncated context with {report.strategy.value}: "
                f"{report.tokens_before} -> {report.tokens_after} tokens, "
                f"dropped {report.messages_dropped} messages and "
                f"{report.tool_results_dropped} tool results",
            )
        return report

    def _emergency_truncate(self) -> None:
        """
        Cut contents until the context fits ``max_tokens``.

        Fields are cut in order: the tool-result log, non-system messages
        oldest first, system messages, and the system prompt. Each field
        keeps its tail behind a truncation marker.
        """
        targets: list[tuple[Any, str]] = []
        for result in self._tool_results:
            targets += [(result, "output"), (result, "error")]
        for message in self._messages:
            if message.is_system:
                continue
            targets.append((message, "content"))
            for result in message.tool_results or []:
                targets += [(result, "output"), (result, "error")]
        targets += [(m, "content") for m in self._messages if m.is_system]
        targets.append((self, "_system_prompt"))

        for owner, attr in targets:
            excess = self.calculate_token_count() - self._config.max_tokens
            if excess <= 0:
                break
            text = getattr(owner, attr)
            if not text:
                continue
            allowed = max(0, self._estimator.count(text) - excess)
            setattr(owner, attr, self._estimator.truncate(text, allowed, keep="tail"))

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_messages(self) -> list[Message]:
        return list(self._messages)

    def get_tool_results(self) -> list[ToolResult]:
        return list(self._tool_results)

    def get_prompt_messages(self) -> list[Message]:
        """
        Messages to render into a prompt.

        Returns
        -------
        list[Message]
            The system prompt as a leading system message (when set),
            followed by the message log.
        """
        messages: list[Message] = []
        if self._system_prompt:
            messages.append(
                Message(
                    role=MessageRole.SYSTEM,
                    content=self._system_prompt,
                    timestamp=self._created_at,
                ),
            )
        messages.extend(self._messages)
        return messages

    def get_stats(self) -> dict[str, Any]:
        """
        Summarize the context.

        Returns
        -------
        dict[str, Any]
            ``message_count``, ``tool_result_count``, ``token_count``,
            ``created_at``, ``last_updated`` and ``config``.
        """
        return {
            "message_count": len(self._messages),
            "tool_result_count": len(self._tool_results),
            "token_count": self.calculate_token_count(),
            "created_at": self._created_at,
            "last_updated": self._last_updated,
            "config": self._config.model_dump(mode="json"),
        }

    # ------------------------------------------------------------------
    # Serialization
    # ------------------------------------------------------------------

    @staticmethod
    def _dump_result(result: ToolResult) -> dict[str, Any]:
        data = result.model_dump(mode="json", exclude={"metadata"})
        data["metadata"] = json_safe(result.metadata, path="metadata")
        return data

    def _dump_message(self, message: Message) -> dict[str, Any]:
        data = message.model_dump(mode="json", exclude={"tool_calls", "tool_results"})
        data["tool_calls"] = (
            [
                {
                    "id": call.id,
                    "name": call.name,
                    "parameters": json_safe(call.parameters, path=f"{call.name}.parameters"),
                }
                for call in message.tool_calls
            ]
            if message.tool_calls is not None
            else None
        )
        data["tool_results"] = (
            [self._dump_result(r) for r in message.tool_results]
            if message.tool_results is not None
            else None
        )
        return data

    def serialize(self) -> dict[str, Any]:
        """
        Convert the context to plain JSON-compatible data.

        Tool-call parameters and tool-result metadata are sanitized first:
        circular references are dropped with a warning and unknown objects
        are rendered as strings.

        Returns
        -------
        dict[str, Any]
            ``{"messages", "tool_results", "system_prompt", "config",
            "metadata": {"created_at", "last_updated", "message_count",
            "token_count"}}``.
        """
        return {
            "messages": [self._dump_message(m) for m in self._messages],
            "tool_results": [self._dump_result(r) for r in self._tool_results],
            "system_prompt": self._system_prompt,
            "config": self._config.model_dump(mode="json"),
            "metadata": ContextMetadata(
                created_at=self._created_at,
                last_updated=self._last_updated,
                message_count=len(self._messages),
                token_count=self.calculate_token_count(),
            ).model_dump(mode="json"),
        }

    @classmethod
    def deserialize(cls, data: dict[str, Any]) -> "ConversationContextManager":
        """
        Rebuild a context from ``serialize`` output.

        The restored context is not truncated, even if its configuration
        would now require it.

        Parameters
        ----------
        data : dict[str, Any]
            Serialized context.

        Returns
        -------
        ConversationContextManager
            The restored context.

        Raises
        ------
        ValidationError
            If ``data`` does not have the serialized context shape.
        """
        try:
            state = SerializedContext.model_validate(data)
        except PydanticValidationError as e:
            raise ValidationError(f"Invalid serialized context: {e}", cause=e) from e

        context = cls(config=state.config, system_prompt=state.system_prompt)
        context._messages = list(state.messages)
        context._tool_results = list(state.tool_results)
        context._created_at = state.metadata.created_at
        context._last_updated = state.metadata.last_updated
        return context

    def to_json(self, indent: int | None = 2) -> str:
        return json.dumps(self.serialize(), indent=indent)

    @classmethod
    def from_json(cls, payload: str) -> "ConversationContextManager":
        try:
            data = json.loads(payload)
        except json.JSONDecodeError as e:
            raise ValidationError(f"Invalid context JSON: {e}", cause=e) from e
        return cls.deserialize(data)

    def clone(self) -> "ConversationContextManager":
        """
        Create an independent deep copy.

        Returns
        -------
        ConversationContextManager
            A context sharing no mutable state with this one.
        """
        copy = self.deserialize(self.serialize())
        copy._last_truncation = self._last_truncation
        return copy


def create_conversation_context(
    config: ContextConfig | None = None,
    system_prompt: str = DEFAULT_SYSTEM_PROMPT,
) -> ConversationContextManager:
    """
    Create a context with default settings.

    Parameters
    ----------
    config : ContextConfig | None, optional
        Budget and truncation policy.
    system_prompt : str, default="You are a helpful AI coding assistant."
        System prompt.

    Returns
    -------
    ConversationContextManager
        New empty context.
    """
    return ConversationContextManager(config=config, system_prompt=system_prompt)


def create_coding_conversation_context(
    system_prompt: str = CODING_SYSTEM_PROMPT,
) -> ConversationContextManager:
    """
    Create a context tuned for coding sessions.

    Coding sessions produce long tool outputs that stay relevant, so the
    profile uses a larger budget, priority-based truncation and keeps the
    last four messages.

    Returns
    -------
    ConversationContextManager
        New empty context.
    """
    config = ContextConfig(
        max_tokens=6000,
        truncation_strategy=TruncationStrategy.PRIORITY_BASED,
        min_recent_messages=4,
        preserve_tool_results=True,
    )
    return ConversationContextManager(config=config, system_prompt=system_prompt)
