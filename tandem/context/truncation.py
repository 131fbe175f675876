"""
Truncation strategies for conversation contexts.

A strategy decides which non-system messages survive when a context is
over budget. System messages are never handed to a strategy, so no
strategy can remove them. The manager merges the survivors back with the
system messages and restores chronological order.
"""

import abc
import logging
from typing import Callable

from tandem.config.schema import ContextConfig, TruncationStrategy
from tandem.context.models import Message, MessageRole
from tandem.tools.models import ToolResult

logger = logging.getLogger(__name__)

Measure = Callable[[Message], int]


class MessageTruncationStrategy(abc.ABC):
    """
    Base class for message truncation strategies.

    Subclasses implement ``select``, which receives the non-system
    messages in conversation order and returns the ones to keep, in the
    same order.
    """

    kind: TruncationStrategy

    @abc.abstractmethod
    def select(
        self,
        messages: list[Message],
        budget: int,
        config: ContextConfig,
        measure: Measure,
    ) -> list[Message]:
        """
        Choose the messages to keep.

        Parameters
        ----------
        messages : list[Message]
            Non-system messages, oldest first.
        budget : int
            Tokens available for these messages.
        config : ContextConfig
            Context configuration (``min_recent_messages`` and
            ``preserve_tool_results`` are honoured).
        measure : Callable[[Message], int]
            Token estimate for one message.

        Returns
        -------
        list[Message]
            Kept messages, oldest first.
        """


def keep_recent(
    messages: list[Message],
    budget: int,
    min_recent: int,
    measure: Measure,
) -> list[Message]:
    """
    Keep the longest run of most recent messages that fits the budget.

    The last ``min_recent`` messages are kept even if they alone exceed
    the budget.
    """
    kept: list[Message] = []
    used = 0
    for position, message in enumerate(reversed(messages)):
        tokens = measure(message)
        if position >= min_recent and used + tokens > budget:
            break
        kept.append(message)
        used += tokens
    kept.reverse()
    return kept


class RecentStrategy(MessageTruncationStrategy):
    """Drop the oldest messages first."""

    kind = TruncationStrategy.RECENT

    def select(self, messages, budget, config, measure):
        return keep_recent(messages, budget, config.min_recent_messages, measure)


class SlidingWindowStrategy(MessageTruncationStrategy):
    """
    Keep a trailing window whose size is derived from the budget.

    The window holds ``budget // average_message_tokens`` messages, never
    fewer than ``min_recent_messages``. Messages outside the window are
    dropped regardless of their size. If the window still exceeds the
    budget it is trimmed from its oldest end.
    """

    kind = TruncationStrategy.SLIDING_WINDOW

    def select(self, messages, budget, config, measure):
        if not messages:
            return []

        total = sum(measure(m) for m in messages)
        average = max(1.0, total / len(messages))
        window = max(config.min_recent_messages, int(budget // average))
        window = min(window, len(messages))
        selected = messages[len(messages) - window:] if window else []

        if sum(measure(m) for m in selected) > budget:
            selected = keep_recent(selected, budget, config.min_recent_messages, measure)

        logger.debug(f"Sliding window kept {len(selected)} of {len(messages)} messages")
        return selected


class PriorityBasedStrategy(MessageTruncationStrategy):
    """
    Drop the lowest-priority messages first.

    The most recent ``min_recent_messages`` messages are protected. Among
    the rest, old conversational turns go first. Messages with the
    ``tool`` role go last when tool results are preserved; otherwise they
    are dropped by age along with everything else.
    """

    kind = TruncationStrategy.PRIORITY_BASED

    def select(self, messages, budget, config, measure):
        protected_from = max(0, len(messages) - config.min_recent_messages)
        candidates = messages[:protected_from]

        if config.preserve_tool_results:
            conversational = [m for m in candidates if m.role != MessageRole.TOOL]
            tool_messages = [m for m in candidates if m.role == MessageRole.TOOL]
            drop_order = conversational + tool_messages
        else:
            drop_order = list(candidates)

        used = sum(measure(m) for m in messages)
        dropped: set[int] = set()
        for message in drop_order:
            if used <= budget:
                break
            dropped.add(id(message))
            used -= measure(message)

        kept = [m for m in messages if id(m) not in dropped]
        return sorted(kept, key=lambda m: m.timestamp)


STRATEGIES: dict[TruncationStrategy, type[MessageTruncationStrategy]] = {
    TruncationStrategy.RECENT: RecentStrategy,
    TruncationStrategy.SLIDING_WINDOW: SlidingWindowStrategy,
    TruncationStrategy.PRIORITY_BASED: PriorityBasedStrategy,
}


def get_strategy(kind: TruncationStrategy | str) -> MessageTruncationStrategy:
    """
    Instantiate the strategy for ``kind``.

    Raises
    ------
    ValueError
        If ``kind`` is not a known strategy.
    """
    return STRATEGIES[TruncationStrategy(kind)]()


def retain_tool_results(
    results: list[ToolResult],
    budget: int,
    measure: Callable[[ToolResult], int],
) -> list[ToolResult]:
    """
    Keep the most valuable tool results that fit within ``budget``.

    Successful results rank above failed ones and, within each group,
    newer results rank above older ones. Results are taken greedily in
    rank order, skipping any that no longer fit, so at least one result
    survives whenever the smallest one fits. Survivors keep their
    original order.

    Parameters
    ----------
    results : list[ToolResult]
        Tool-result log, oldest first.
    budget : int
        Tokens available for tool results.
    measure : Callable[[ToolResult], int]
        Token estimate for one result.

    Returns
    -------
    list[ToolResult]
        Retained results in log order.
    """
    ranked = sorted(
        range(len(results)),
        key=lambda i: (results[i].success, results[i].metadata.timestamp, i),
        reverse=True,
    )
    keep: set[int] = set()
    used = 0
    for index in ranked:
        tokens = measure(results[index])
        if used + tokens <= budget:
            keep.add(index)
            used += tokens
    return [result for i, result in enumerate(results) if i in keep]
