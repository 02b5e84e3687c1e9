"""Bounded retry loop with linear backoff and an injectable sleep."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Generic, Optional, Tuple, Type, TypeVar

T = TypeVar("T")

logger = logging.getLogger(__name__)

Sleep = Callable[[float], Awaitable[Any]]


class RetryConfig:
    def __init__(self, *, attempts: int = 3, backoff_seconds: float = 2.0) -> None:
        if attempts < 1:
            raise ValueError("attempts must be at least 1")
        self.attempts = attempts
        self.backoff_seconds = backoff_seconds

    def delay_for(self, attempt: int) -> float:
        """Delay after the given 1-based failed attempt."""
        return self.backoff_seconds * attempt


@dataclass(slots=True)
class RetryOutcome(Generic[T]):
    succeeded: bool
    attempts: int
    result: Optional[T] = None
    error: Optional[BaseException] = None


async def run_with_retry(
    operation: Callable[[int], Awaitable[T]],
    *,
    retry_config: RetryConfig | None = None,
    retry_on: Tuple[Type[BaseException], ...] = (Exception,),
    sleep: Sleep = asyncio.sleep,
    label: str = "operation",
) -> RetryOutcome[T]:
    """Run ``operation(attempt)`` until it succeeds or attempts run out.

    Exhaustion is reported through the returned outcome, never raised.
    Cancellation is not caught, so a pending backoff is abandoned on shutdown.
    """
    config = retry_config or RetryConfig()
    last_exception: BaseException | None = None

    for attempt in range(1, config.attempts + 1):
        try:
            result = await operation(attempt)
            return RetryOutcome(succeeded=True, attempts=attempt, result=result)
        except retry_on as exc:
            last_exception = exc
            logger.warning(
                "%s failed (attempt %s/%s): %s", label, attempt, config.attempts, exc
            )
            if attempt >= config.attempts:
                break
            await sleep(config.delay_for(attempt))

    return RetryOutcome(succeeded=False, attempts=config.attempts, error=last_exception)


__all__ = ["RetryConfig", "RetryOutcome", "run_with_retry"]
