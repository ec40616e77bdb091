"""
Retry policy for optimistic-locking conflicts (tenacity, exponential backoff with jitter)
"""

import time
from dataclasses import dataclass, field
from typing import Callable, Tuple, Type, TypeVar

import structlog
from tenacity import (
    RetryCallState,
    RetryError,
    Retrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
    wait_random,
)

from app.services.errors import ConcurrencyConflict, StorageError

logger = structlog.get_logger(__name__)

T = TypeVar("T")


@dataclass
class RetryPolicy:
    """
    Runs a callable until it succeeds or max_attempts is reached.

    Only exceptions listed in retry_on are retried; once attempts are
    exhausted the last one is wrapped in StorageError. Anything else
    propagates unchanged on the first occurrence.
    """
    stage: str
    max_attempts: int = 3
    base_delay: float = 0.05
    max_delay: float = 1.0
    jitter: float = 0.01
    retry_on: Tuple[Type[BaseException], ...] = (ConcurrencyConflict,)
    sleep_fn: Callable[[float], None] = field(default=time.sleep)

    def _log_retry(self, retry_state: RetryCallState) -> None:
        logger.warning("retryable_conflict",
                      stage=self.stage,
                      attempt=retry_state.attempt_number,
                      max_attempts=self.max_attempts,
                      delay=round(retry_state.next_action.sleep, 3),
                      error=str(retry_state.outcome.exception()))

    def execute(self, func: Callable[..., T], *args, **kwargs) -> T:
        retrying = Retrying(
            stop=stop_after_attempt(self.max_attempts),
            wait=wait_exponential(multiplier=self.base_delay, max=self.max_delay) + wait_random(0, self.jitter),
            retry=retry_if_exception_type(self.retry_on),
            sleep=self.sleep_fn or (lambda _: None),
            before_sleep=self._log_retry,
        )
        try:
            return retrying(func, *args, **kwargs)
        except RetryError as e:
            last_error = e.last_attempt.exception()
            raise StorageError(
                f"{self.stage} failed after {self.max_attempts} attempts: {last_error}"
            ) from last_error
