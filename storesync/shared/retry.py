"""
Retry-with-backoff helper shared by the paginated fetcher and the batch writer.
"""

import asyncio
import logging
import random
from dataclasses import dataclass
from enum import Enum
from typing import Awaitable, Callable, Mapping, Optional, Tuple, TypeVar

from storesync.shared.exceptions import RetriesExhaustedError

logger = logging.getLogger(__name__)

T = TypeVar("T")

SleepFunc = Callable[[float], Awaitable[None]]


class RetryStrategy(str, Enum):
    """Failure classes that each get their own backoff curve."""

    RATE_LIMIT = "rate_limit"
    GENERIC = "generic"
    CAPACITY = "capacity"
    UNPROCESSED = "unprocessed"


@dataclass(frozen=True)
class BackoffPolicy:
    """Exponential backoff: min(base * 2**attempt, max) plus bounded jitter."""

    base_delay: float
    max_delay: float
    jitter: float = 0.0

    def delay(self, attempt: int) -> float:
        delay = min(self.base_delay * (2**attempt), self.max_delay)
        if self.jitter:
            delay += random.uniform(0, self.jitter)
        return delay


# Classifies a failure: which strategy to use and an optional upstream hint.
Classifier = Callable[[Exception], Tuple[RetryStrategy, Optional[float]]]


class Retrier:
    """Bounded retry loop parameterized by per-strategy backoff policies."""

    def __init__(
        self,
        policies: Mapping[RetryStrategy, BackoffPolicy],
        max_attempts: int = 5,
        sleep: Optional[SleepFunc] = None,
        default_retry_after: float = 10.0,
    ):
        self.policies = dict(policies)
        self.max_attempts = max_attempts
        self.sleep: SleepFunc = sleep or asyncio.sleep
        self.default_retry_after = default_retry_after

    def delay_for(
        self,
        strategy: RetryStrategy,
        attempt: int,
        retry_after: Optional[float] = None,
    ) -> float:
        """
        Compute the wait before the next attempt.

        Args:
            strategy: Failure class of the previous attempt
            attempt: Number of attempts made so far (1 after the first failure)
            retry_after: Upstream-supplied delay in seconds, if any

        Returns:
            Delay in seconds
        """
        if strategy == RetryStrategy.RATE_LIMIT:
            return retry_after if retry_after is not None else self.default_retry_after

        policy = self.policies.get(strategy) or self.policies[RetryStrategy.GENERIC]
        return policy.delay(attempt)

    async def wait(
        self,
        strategy: RetryStrategy,
        attempt: int,
        retry_after: Optional[float] = None,
    ) -> float:
        delay = self.delay_for(strategy, attempt, retry_after)
        await self.sleep(delay)
        return delay

    async def call(
        self,
        operation: Callable[[], Awaitable[T]],
        classify: Classifier,
        describe: str = "operation",
    ) -> T:
        """
        Run an async operation until it succeeds or attempts run out.

        Args:
            operation: Zero-argument coroutine factory, called once per attempt
            classify: Maps a raised exception to its retry strategy
            describe: Label used in log messages

        Returns:
            The operation's result

        Raises:
            RetriesExhaustedError: After max_attempts failed attempts
        """
        last_error: Optional[Exception] = None

        for attempt in range(1, self.max_attempts + 1):
            try:
                return await operation()
            except Exception as e:
                last_error = e
                strategy, retry_after = classify(e)

                if attempt >= self.max_attempts:
                    logger.error(
                        f"{describe} failed on attempt {attempt}/{self.max_attempts}, "
                        f"giving up: {e}"
                    )
                    break

                delay = self.delay_for(strategy, attempt, retry_after)
                logger.warning(
                    f"{describe} failed on attempt {attempt}/{self.max_attempts} "
                    f"({strategy.value}): {e}. Retrying in {delay:.2f}s"
                )
                await self.sleep(delay)

        raise RetriesExhaustedError(self.max_attempts, last_error)
