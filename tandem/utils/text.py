"""
Text processing utilities for token estimation and truncation.

This module provides a deterministic token estimator used to enforce
conversation budgets. The default method is a character-count heuristic;
a ``tiktoken`` based method is available when model-accurate counts
matter more than speed.
"""

import logging
import math
from typing import Callable, Literal

import tiktoken

from tandem.constants import DEFAULT_CHARS_PER_TOKEN, EMERGENCY_TRUNCATION_MARKER

logger = logging.getLogger(__name__)


class TokenEstimator:
    """
    Estimator for counting and trimming tokens in text.

    Estimates are monotonic in the text length and idempotent for a given
    input, which is all the context budget relies on.

    Parameters
    ----------
    chars_per_token : int, default=4
        Divisor for the character heuristic.
    method : {"chars", "tiktoken"}, default="chars"
        Estimation method.
    model : str, default="gpt-4o"
        Model name used to pick a ``tiktoken`` encoding.

    Examples
    --------
    >>> estimator = TokenEstimator()
    >>> estimator.count("Hello, world!")
    4
    >>> estimator.truncate("A" * 100, max_tokens=10)
    '[...truncated] AAAAAAAAAAAAAAAAAAAAAAAA'
    """

    def __init__(
        self,
        chars_per_token: int = DEFAULT_CHARS_PER_TOKEN,
        method: str = "chars",
        model: str = "gpt-4o",
    ) -> None:
        if chars_per_token < 1:
            raise ValueError("chars_per_token must be at least 1")
        self.chars_per_token: int = chars_per_token
        self.method: str = method
        self.model: str = model
        self._encoder: Callable[[str], list[int]] | None = None

    def _get_encoder(self) -> Callable[[str], list[int]]:
        """
        Get or create the ``tiktoken`` encoder function.

        Returns
        -------
        Callable[[str], list[int]]
            Encoder function that takes text and returns token IDs.
        """
        if self._encoder is None:
            try:
                encoding = tiktoken.encoding_for_model(self.model)
                logger.debug(f"Initialized tokenizer for model: {self.model}")
            except KeyError as e:
                logger.warning(
                    f"Failed to get encoding for model {self.model}, "
                    f"falling back to cl100k_base: {e}",
                )
                encoding = tiktoken.get_encoding("cl100k_base")
            self._encoder = encoding.encode

        return self._encoder

    def _estimate(self, text: str) -> int:
        return math.ceil(len(text) / self.chars_per_token)

    def count(self, text: str | None) -> int:
        """
        Estimate the number of tokens in ``text``.

        Parameters
        ----------
        text : str | None
            The text to estimate. ``None`` and ``""`` count as zero.

        Returns
        -------
        int
            Estimated token count.
        """
        if not text:
            return 0

        if self.method == "tiktoken":
            try:
                return len(self._get_encoder()(text))
            except Exception as e:
                logger.warning(f"Token counting failed, using estimation: {e}")

        return self._estimate(text)

    def truncate(
        self,
        text: str,
        max_tokens: int,
        keep: Literal["head", "tail"] = "tail",
        marker: str = EMERGENCY_TRUNCATION_MARKER,
    ) -> str:
        """
        Cut ``text`` so that its estimate fits within ``max_tokens``.

        The longest fitting slice is found by binary search. With
        ``keep="tail"`` the end of the text survives and the marker is
        prepended; with ``keep="head"`` the start survives and the marker
        is appended.

        Parameters
        ----------
        text : str
            The text to truncate.
        max_tokens : int
            Token limit for the result, marker included.
        keep : {"head", "tail"}, default="tail"
            Which end of the text to keep.
        marker : str, default="[...truncated] "
            Marker added where text was removed.

        Returns
        -------
        str
            The original text if it already fits, otherwise the truncated
            text. Empty if not even the marker fits.
        """
        if self.count(text) <= max_tokens:
            return text

        target: int = max_tokens - self.count(marker)
        if target < 0:
            return ""

        low: int = 0
        high: int = len(text)
        while low < high:
            mid: int = (low + high + 1) // 2
            piece = text[-mid:] if keep == "tail" else text[:mid]
            if self.count(piece) <= target:
                low = mid
            else:
                high = mid - 1

        if keep == "tail":
            return marker + (text[-low:] if low else "")
        return text[:low] + marker
