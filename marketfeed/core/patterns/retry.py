"""Bounded retry with exponential backoff and cancellable waits."""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import TypeVar

from loguru import logger

from marketfeed.core.config import RetryConfig
from marketfeed.core.exceptions import CancellationError, RetryExhaustedError
from marketfeed.core.monitoring import MetricsCollector

T = TypeVar("T")

UNKNOWN_DATA_TYPE = "unknown"
BACKOFF_MULTIPLIER = 2.0


@dataclass(frozen=True, slots=True)
class RetryPolicy:
    """Retry budget for one operation.

    ``base_delay`` is in seconds. The wait after failed attempt ``n`` is
    ``base_delay * 2 ** (n - 1)``; there is no wait after the final attempt.
    """

    max_attempts: int = 3
    base_delay: float = 1.0

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        if self.base_delay < 0:
            raise ValueError("base_delay must not be negative")

    @classmethod
    def from_config(cls, config: RetryConfig) -> RetryPolicy:
        return cls(max_attempts=config.max_attempts, base_delay=config.base_delay_ms / 1000.0)

    def delay_for(self, attempt: int) -> float:
        """Return the wait following failed attempt number ``attempt`` (1-based)."""

        if attempt < 1:
            return 0.0
        return self.base_delay * (BACKOFF_MULTIPLIER ** (attempt - 1))


class RetryExecutor:
    """Runs an async operation under a :class:`RetryPolicy`.

    The executor holds no per-call state, so one instance can serve several
    pipelines concurrently.
    """

    def __init__(
        self,
        metrics: MetricsCollector | None = None,
        *,
        cancel_event: asyncio.Event | None = None,
        sleep: Callable[[float], Awaitable[None]] | None = None,
    ) -> None:
        self._metrics = metrics
        self._cancel_event = cancel_event
        self._sleep = sleep

    async def execute(self, operation: Callable[[], Awaitable[T]], policy: RetryPolicy) -> T:
        """Run ``operation`` until it succeeds or the policy is exhausted.

        Raises:
            RetryExhaustedError: every attempt failed; wraps the last failure.
            CancellationError: the cancel event fired during a backoff wait.
        """
        for attempt in range(1, policy.max_attempts):
            try:
                return await operation()
            except Exception as exc:
                data_type = self._record_failure(exc)
                delay = policy.delay_for(attempt)
                logger.warning(
                    "Attempt {} failed, retrying in {} ms: {}",
                    attempt,
                    int(delay * 1000),
                    exc,
                    data_type=data_type,
                )
                await self._wait(delay)

        try:
            return await operation()
        except Exception as exc:
            self._record_failure(exc)
            raise RetryExhaustedError(policy.max_attempts, exc) from exc

    def _record_failure(self, exc: Exception) -> str:
        data_type = getattr(exc, "data_type", None) or UNKNOWN_DATA_TYPE
        if self._metrics is not None:
            self._metrics.increment_retry(data_type)
        return data_type

    async def _wait(self, delay: float) -> None:
        if self._cancel_event is not None and self._cancel_event.is_set():
            raise CancellationError("Retry cancelled before backoff wait")

        if self._sleep is not None:
            await self._sleep(delay)
        elif self._cancel_event is None:
            await asyncio.sleep(delay)
        else:
            try:
                await asyncio.wait_for(self._cancel_event.wait(), timeout=delay)
            except TimeoutError:
                return
            raise CancellationError("Retry interrupted by shutdown", {"delay_seconds": delay})

        if self._cancel_event is not None and self._cancel_event.is_set():
            raise CancellationError("Retry interrupted by shutdown", {"delay_seconds": delay})
