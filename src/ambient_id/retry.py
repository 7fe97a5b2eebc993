"""Retry policy for transient transport failures.

Retries apply inside the HTTP client only; the detection engine itself
never retries a strategy.
"""

from __future__ import annotations

import asyncio
import logging
import random
from dataclasses import dataclass
from typing import Awaitable, Callable, TypeVar

logger = logging.getLogger(__name__)

R = TypeVar("R")


class RetryableError(Exception):
    """Signals a failed attempt that may succeed if repeated."""

    pass


@dataclass(frozen=True)
class RetryConfig:
    """Backoff settings for transient HTTP failures.

    The delay before retry ``n`` (0-indexed) is ``base_delay * 2**n``,
    capped at ``max_delay``. With ``jitter`` each delay is spread over
    50-150% of that value.

    Attributes:
        max_attempts: Maximum number of attempts (1 = no retry).
        base_delay: Delay before the first retry, in seconds.
        max_delay: Upper bound for any single delay, in seconds.
        jitter: Whether to randomize delays.
    """

    max_attempts: int = 3
    base_delay: float = 0.1
    max_delay: float = 5.0
    jitter: bool = True

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        if not 0 <= self.base_delay <= self.max_delay:
            raise ValueError("delays must satisfy 0 <= base_delay <= max_delay")

    @classmethod
    def no_retry(cls) -> RetryConfig:
        return cls(max_attempts=1)

    def calculate_delay(self, attempt: int) -> float:
        delay = min(self.base_delay * 2 ** attempt, self.max_delay)
        if self.jitter:
            delay *= random.uniform(0.5, 1.5)
        return delay


class RetryPolicy:
    """Async retry policy with exponential backoff.

    The wrapped coroutine signals a retryable failure by raising
    :class:`RetryableError`; any other exception propagates immediately.
    Once attempts are exhausted the last :class:`RetryableError` is
    re-raised for the caller to translate.

    Example:
        >>> policy = RetryPolicy(RetryConfig(max_attempts=3))
        >>> response = await policy.execute_async(send_once)
    """

    def __init__(self, config: RetryConfig | None = None) -> None:
        self._config = config or RetryConfig()

    @property
    def config(self) -> RetryConfig:
        return self._config

    async def execute_async(self, func: Callable[[], Awaitable[R]]) -> R:
        """Run ``func`` until it succeeds or attempts are exhausted."""
        last_error: RetryableError | None = None

        for attempt in range(self._config.max_attempts):
            try:
                return await func()
            except RetryableError as e:
                last_error = e
                if attempt >= self._config.max_attempts - 1:
                    break

                delay = self._config.calculate_delay(attempt)
                logger.info(
                    f"Retry policy: attempt {attempt + 1} failed, "
                    f"retrying in {delay:.2f}s: {e}"
                )
                await asyncio.sleep(delay)

        assert last_error is not None
        raise last_error
