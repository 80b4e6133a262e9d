"""Retries for state persistence.

Only the I/O around the engine retries; bucketing, scheduling and cutoff
folding never do. In practice that means the object-storage state store,
whose reads and writes can fail transiently.
"""

from __future__ import annotations

import functools
import logging
from dataclasses import dataclass
from typing import Any, Callable, Optional, Tuple, Type, TypeVar

import tenacity

__all__ = ["RetryPolicy", "with_retry"]

F = TypeVar("F", bound=Callable[..., Any])


@dataclass(frozen=True)
class RetryPolicy:
    """How often and how patiently to retry one call.

    ``backoff_seconds`` is the first wait. With ``exponential`` set, waits
    double from there up to ``max_backoff_seconds``.
    """

    max_attempts: int = 3
    backoff_seconds: float = 1.0
    exponential: bool = True
    max_backoff_seconds: Optional[float] = 10.0
    retry_exceptions: Tuple[Type[BaseException], ...] = (Exception,)

    def _wait(self) -> Any:
        if not self.exponential:
            return tenacity.wait_fixed(self.backoff_seconds)
        ceiling = self.max_backoff_seconds
        return tenacity.wait_exponential(
            multiplier=self.backoff_seconds,
            min=self.backoff_seconds,
            max=float("inf") if ceiling is None else ceiling,
        )

    def retrying(self, name: str, log: logging.Logger) -> tenacity.Retrying:
        def announce(state: tenacity.RetryCallState) -> None:
            error = state.outcome.exception() if state.outcome else None
            delay = state.next_action.sleep if state.next_action else 0.0
            log.warning(
                "%s attempt %d/%d failed: %s. Retrying in %.1fs...",
                name,
                state.attempt_number,
                self.max_attempts,
                error,
                delay,
            )

        return tenacity.Retrying(
            stop=tenacity.stop_after_attempt(self.max_attempts),
            wait=self._wait(),
            retry=tenacity.retry_if_exception_type(self.retry_exceptions),
            before_sleep=announce,
            reraise=True,
        )

    def __call__(self, fn: F) -> F:
        fn_logger = logging.getLogger(fn.__module__)

        @functools.wraps(fn)
        def wrapper(*args: Any, **kwargs: Any) -> Any:
            return self.retrying(fn.__name__, fn_logger)(fn, *args, **kwargs)

        return wrapper  # type: ignore[return-value]


def with_retry(
    max_attempts: int = 3,
    backoff_seconds: float = 1.0,
    exponential: bool = True,
    max_backoff_seconds: Optional[float] = 10.0,
    retry_exceptions: Optional[Tuple[Type[BaseException], ...]] = None,
) -> RetryPolicy:
    """Retry decorator for flaky persistence calls.

    Example:
        @with_retry(max_attempts=5, retry_exceptions=(ClientError,))
        def put_blob(key, body):
            client.put_object(Bucket=bucket, Key=key, Body=body)
    """
    return RetryPolicy(
        max_attempts=max_attempts,
        backoff_seconds=backoff_seconds,
        exponential=exponential,
        max_backoff_seconds=max_backoff_seconds,
        retry_exceptions=retry_exceptions or (Exception,),
    )
