"""Bounded polling with exponential backoff."""

import logging
import time
from dataclasses import dataclass
from typing import Callable, Optional, Tuple, Type, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class RetryPolicy:
    attempts: int = 10
    initial_delay: float = 1.0
    backoff: float = 2.0
    max_delay: float = 8.0

    def __post_init__(self) -> None:
        if self.attempts < 1:
            raise ValueError("RetryPolicy needs at least one attempt.")
        if self.initial_delay < 0 or self.max_delay < 0:
            raise ValueError("RetryPolicy delays must be non-negative.")
        if self.backoff < 1:
            raise ValueError("RetryPolicy backoff must be at least 1.")

    def delay_after(self, attempt: int) -> float:
        """Delay to wait after the given 1-based failed attempt."""

        return min(self.initial_delay * (self.backoff ** (attempt - 1)), self.max_delay)


class PollExhaustedError(TimeoutError):
    """Raised when every attempt of a poll failed."""

    def __init__(self, description: str, attempts: int, last_error: Optional[BaseException]) -> None:
        super().__init__(f"{description}: gave up after {attempts} attempts ({last_error})")
        self.description = description
        self.attempts = attempts
        self.last_error = last_error


def poll(
    operation: Callable[[], T],
    retry_on: Tuple[Type[BaseException], ...],
    policy: RetryPolicy,
    description: str,
    sleep: Callable[[float], None] = time.sleep,
) -> T:
    """Call ``operation`` until it returns, retrying only on ``retry_on``."""

    last_error: Optional[BaseException] = None
    for attempt in range(1, policy.attempts + 1):
        try:
            return operation()
        except retry_on as exc:
            last_error = exc
            if attempt == policy.attempts:
                break
            delay = policy.delay_after(attempt)
            logger.debug(
                "%s not ready (attempt %d/%d), retrying in %.1fs: %s",
                description, attempt, policy.attempts, delay, exc,
            )
            sleep(delay)

    raise PollExhaustedError(description, policy.attempts, last_error)
