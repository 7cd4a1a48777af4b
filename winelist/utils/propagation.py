"""
Waiting for Airtable writes to become readable.

Airtable is eventually consistent: a record or attachment written a moment ago
may not be visible to the next read. ``await_propagation`` re-reads a resource
according to a strategy and returns the last value read; the caller decides
whether that value is acceptable.
"""

import asyncio
from abc import ABC, abstractmethod
from typing import Awaitable, Callable, Optional, TypeVar

from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception_type,
    retry_if_result,
    stop_after_attempt,
    stop_after_delay,
    wait_exponential,
)

from winelist.config.settings import Settings
from winelist.utils.errors import AirtableNotFoundError
from winelist.utils.logger import get_logger

logger = get_logger(__name__)

T = TypeVar("T")
Fetch = Callable[[], Awaitable[T]]
Check = Callable[[T], bool]
Sleep = Callable[[float], Awaitable[None]]


class PropagationStrategy(ABC):
    """How to wait before trusting a read-after-write."""

    @abstractmethod
    async def wait_for(self, fetch: Fetch, check: Check) -> T:
        """Re-read with ``fetch`` until ``check`` passes or the strategy gives up."""


class FixedDelayPropagation(PropagationStrategy):
    """Sleep once, then read once."""

    def __init__(self, delay_seconds: float = 2.0, sleep: Optional[Sleep] = None):
        self.delay_seconds = delay_seconds
        self._sleep = sleep or asyncio.sleep

    async def wait_for(self, fetch: Fetch, check: Check) -> T:
        await self._sleep(self.delay_seconds)
        return await fetch()


class PollingPropagation(PropagationStrategy):
    """
    Poll with exponential backoff within a time budget.

    A not-found response counts as "not visible yet" and is retried. When the
    budget runs out the last value read is returned, or the last error raised.
    """

    def __init__(
        self,
        timeout_seconds: float = 15.0,
        initial_delay_seconds: float = 0.5,
        max_delay_seconds: float = 4.0,
        max_attempts: int = 8,
        sleep: Optional[Sleep] = None,
    ):
        self.timeout_seconds = timeout_seconds
        self.initial_delay_seconds = initial_delay_seconds
        self.max_delay_seconds = max_delay_seconds
        self.max_attempts = max_attempts
        self._sleep = sleep or asyncio.sleep

    async def wait_for(self, fetch: Fetch, check: Check) -> T:
        def give_up(state: RetryCallState):
            logger.warning("Propagation budget exhausted", attempts=state.attempt_number)
            return state.outcome.result()

        retrying = AsyncRetrying(
            stop=stop_after_delay(self.timeout_seconds) | stop_after_attempt(self.max_attempts),
            wait=wait_exponential(
                multiplier=self.initial_delay_seconds,
                min=self.initial_delay_seconds,
                max=self.max_delay_seconds,
            ),
            retry=retry_if_exception_type(AirtableNotFoundError) | retry_if_result(lambda value: not check(value)),
            retry_error_callback=give_up,
            sleep=self._sleep,
        )
        return await retrying(fetch)


def build_propagation_strategy(settings: Settings) -> PropagationStrategy:
    if settings.propagation_strategy == "poll":
        return PollingPropagation(
            timeout_seconds=settings.propagation_timeout_seconds,
            initial_delay_seconds=max(settings.propagation_delay_seconds / 4, 0.1),
        )
    return FixedDelayPropagation(settings.propagation_delay_seconds)


async def await_propagation(
    fetch: Fetch,
    check: Check = lambda value: value is not None,
    strategy: Optional[PropagationStrategy] = None,
) -> T:
    """Re-read a just-written resource using ``strategy`` (fixed 2 s delay by default)."""
    strategy = strategy or FixedDelayPropagation()
    return await strategy.wait_for(fetch, check)
