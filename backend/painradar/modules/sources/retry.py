"""Retry policy for document-source calls.

Exponential backoff for SourceUnavailable, a longer fixed window for
RateLimited (or the server's Retry-After, whichever is larger). The sleep
function is injected so tests can run the schedule without waiting.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import TypeVar

import structlog
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from painradar.core.config import settings
from painradar.core.errors import RateLimited, SourceUnavailable

logger = structlog.get_logger()

T = TypeVar("T")


@dataclass
class RetryPolicy:
    max_attempts: int = field(default_factory=lambda: settings.source_max_attempts)
    base_delay: float = field(default_factory=lambda: settings.source_backoff_seconds)
    rate_limit_delay: float = field(
        default_factory=lambda: settings.source_rate_limit_backoff_seconds
    )
    multiplier: float = 2.0
    max_delay: float = 60.0
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep

    def __post_init__(self) -> None:
        self._backoff = wait_exponential(
            multiplier=self.base_delay, exp_base=self.multiplier, max=self.max_delay
        )

    def _wait(self, retry_state: RetryCallState) -> float:
        error = retry_state.outcome.exception()
        if isinstance(error, RateLimited):
            return max(self.rate_limit_delay, error.retry_after or 0.0)
        return self._backoff(retry_state)

    @staticmethod
    def _log_retry(label: str) -> Callable[[RetryCallState], None]:
        def before_sleep(retry_state: RetryCallState) -> None:
            error = retry_state.outcome.exception()
            logger.info(
                "Retrying after source error",
                operation=label,
                attempt=retry_state.attempt_number,
                delay_seconds=retry_state.next_action.sleep,
                rate_limited=isinstance(error, RateLimited),
            )

        return before_sleep

    async def run(self, operation: Callable[[], Awaitable[T]], *, label: str = "") -> T:
        """Run ``operation`` until it succeeds or attempts run out.

        Only SourceUnavailable (and its RateLimited subclass) is retried; the
        last error is re-raised once the budget is spent.
        """
        retrying = AsyncRetrying(
            stop=stop_after_attempt(self.max_attempts),
            wait=self._wait,
            retry=retry_if_exception_type(SourceUnavailable),
            sleep=self.sleep,
            before_sleep=self._log_retry(label),
            reraise=True,
        )
        try:
            async for attempt in retrying:
                with attempt:
                    return await operation()
        except SourceUnavailable as e:
            logger.warning(
                "Retry budget exhausted",
                operation=label,
                attempts=retrying.statistics.get("attempt_number"),
                error=str(e),
            )
            raise
