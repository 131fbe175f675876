"""
Retry strategy for model backend requests.

This module provides retry logic with exponential backoff for transient
failures: transport errors and rate limits. Every other error is raised
immediately.
"""

import asyncio
import logging
from typing import Any, Awaitable, Callable, TypeVar

from tandem.constants import (
    DEFAULT_MAX_RETRIES,
    DEFAULT_RETRY_BASE_DELAY,
    DEFAULT_RETRY_MAX_DELAY,
)
from tandem.exceptions import ConnectionError, RateLimitError

logger = logging.getLogger(__name__)

T = TypeVar("T")


class RetryStrategy:
    """
    Retries transient backend failures with exponential backoff.

    Parameters
    ----------
    max_retries : int, default=2
        Retries after the first attempt; 0 disables retrying.
    base_delay : float, default=1.0
        Delay in seconds before the first retry, doubled per attempt.
    max_delay : float, default=60.0
        Upper bound in seconds for any single wait.

    Examples
    --------
    >>> strategy = RetryStrategy(max_retries=3, base_delay=0.5)
    >>> result = await strategy.execute(lambda: adapter.send_request(prompt))
    """

    def __init__(
        self,
        max_retries: int = DEFAULT_MAX_RETRIES,
        base_delay: float = DEFAULT_RETRY_BASE_DELAY,
        max_delay: float = DEFAULT_RETRY_MAX_DELAY,
    ) -> None:
        self.max_retries: int = max_retries
        self.base_delay: float = base_delay
        self.max_delay: float = max_delay

    def _calculate_delay(self, attempt: int, error: Exception | None = None) -> float:
        """
        Calculate delay for a retry attempt.

        A rate limit that names a ``retry_after`` is honoured; otherwise the
        delay grows exponentially with the attempt number.

        Parameters
        ----------
        attempt : int
            Index of the failed attempt, starting at 0.
        error : Exception | None, optional
            The error that triggered the retry.

        Returns
        -------
        float
            Delay in seconds.
        """
        if isinstance(error, RateLimitError) and error.retry_after is not None:
            return min(max(error.retry_after, 0.0), self.max_delay)
        delay: float = self.base_delay * (2**attempt)
        return min(delay, self.max_delay)

    async def execute(
        self,
        func: Callable[[], Awaitable[T]],
        *,
        on_retry: Callable[[Exception, int], None] | None = None,
    ) -> T:
        """
        Await ``func``, retrying on transient failures.

        Parameters
        ----------
        func : Callable[[], Awaitable[T]]
            Zero-argument coroutine factory, called once per attempt.
        on_retry : Callable[[Exception, int], None] | None, optional
            Called with the error and the 0-indexed attempt before each wait.

        Returns
        -------
        T
            Whatever ``func`` returned on the successful attempt.

        Raises
        ------
        ConnectionError
            If the transport keeps failing after all retries.
        RateLimitError
            If the backend keeps rate limiting after all retries.
        Exception
            Any non-retryable error, unchanged.
        """
        for attempt in range(self.max_retries + 1):
            try:
                return await func()
            except (ConnectionError, RateLimitError) as e:
                if attempt >= self.max_retries:
                    logger.error(
                        f"{type(e).__name__} persisted after {self.max_retries} retries: {e.message}",
                    )
                    raise
                wait_time: float = self._calculate_delay(attempt, e)
                logger.warning(
                    f"{type(e).__name__} (attempt {attempt + 1}/{self.max_retries + 1}), "
                    f"retrying in {wait_time:.2f}s: {e.message}",
                )
                if on_retry:
                    on_retry(e, attempt)
                await asyncio.sleep(wait_time)

        raise RuntimeError("Retry strategy exhausted without result")


async def with_retries(
    func: Callable[[], Awaitable[Any]],
    max_retries: int = DEFAULT_MAX_RETRIES,
    base_delay: float = DEFAULT_RETRY_BASE_DELAY,
) -> Any:
    """Run ``func`` under a ``RetryStrategy`` built from the arguments."""
    return await RetryStrategy(max_retries=max_retries, base_delay=base_delay).execute(func)
