"""core.retry

Retry policy for the transport boundary: exponential back-off with optional
jitter.

Only transport calls are retried. Cast, validation and response-shape errors
are integration errors and always propagate on the first failure.
"""

from __future__ import annotations

import functools
import logging
import secrets
import time
from typing import TYPE_CHECKING, ParamSpec, TypeVar

from pydantic import BaseModel, ConfigDict, Field

from llm_normalizer.core.exceptions import GenerationTimeoutError, RateLimitExceededError

if TYPE_CHECKING:
    from collections.abc import Callable

log = logging.getLogger(__name__)

P = ParamSpec('P')
T = TypeVar('T')

#: Exceptions that are worth another attempt.
RETRYABLE: tuple[type[Exception], ...] = (RateLimitExceededError, GenerationTimeoutError, ConnectionError)


class RetryStrategy(BaseModel):
    """Exponential back-off policy for transport calls."""

    max_attempts: int = Field(default=3, ge=1, description='Total attempts including the first call')
    base_backoff_sec: float = Field(default=1.0, ge=0.0, description='Delay before the first retry (seconds)')
    max_backoff_sec: float = Field(default=30.0, ge=0.0, description='Upper bound for any sleep interval')
    jitter: bool = Field(default=True, description='Add up to one second of random jitter per interval')

    model_config = ConfigDict(frozen=True)

    def compute_delay(self, attempt_number: int) -> float:
        """Sleep duration after the given (1-indexed) failed attempt."""
        delay = min(self.base_backoff_sec * (2 ** (attempt_number - 1)), self.max_backoff_sec)
        if self.jitter:
            delay += secrets.randbelow(101) / 100
        return delay

    @classmethod
    def disabled(cls) -> RetryStrategy:
        return cls(max_attempts=1, base_backoff_sec=0.0, jitter=False)


def with_retry(
    strategy: RetryStrategy | None = None,
    retry_on: tuple[type[Exception], ...] | None = None,
) -> Callable[[Callable[P, T]], Callable[P, T]]:
    """Retry the decorated call according to `strategy`.

    Parameters
    ----------
    strategy
        Retry policy. Defaults to `RetryStrategy()`.
    retry_on
        Exception types that trigger a retry. Defaults to `RETRYABLE`.

    Raises
    ------
    GenerationTimeoutError
        When the last attempt still fails with a retryable error.

    """
    policy = strategy or RetryStrategy()
    retryable = retry_on or RETRYABLE

    def decorator(func: Callable[P, T]) -> Callable[P, T]:
        @functools.wraps(func)
        def wrapper(*args: P.args, **kwargs: P.kwargs) -> T:
            for attempt_number in range(1, policy.max_attempts + 1):
                try:
                    return func(*args, **kwargs)
                except retryable as exc:
                    if attempt_number == policy.max_attempts:
                        raise GenerationTimeoutError(
                            f'Retry limit exceeded after {attempt_number} attempts: {exc}',
                        ) from exc
                    delay = policy.compute_delay(attempt_number)
                    log.warning(
                        '%s failed (attempt %d/%d): %s; retrying in %.2fs',
                        func.__qualname__,
                        attempt_number,
                        policy.max_attempts,
                        exc,
                        delay,
                    )
                    time.sleep(delay)
            raise GenerationTimeoutError('Retry limit exceeded')  # pragma: no cover - loop always returns or raises

        return wrapper

    return decorator
