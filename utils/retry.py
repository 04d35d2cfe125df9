"""Shared retry/backoff configuration and the retry policy wrapper."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional, TypeVar

from tenacity import (
    AsyncRetrying,
    RetryCallState,
    RetryError,
    retry_if_exception,
    stop_after_attempt,
)

from integration.platform_errors import PlatformAPIError, RetriesExhausted, is_retryable

logger = logging.getLogger(__name__)

DEFAULT_MAX_RETRIES: int = 3
DEFAULT_TIMEOUT_SECONDS: float = 60.0
# Delay before attempt k+1 is BACKOFF_MULTIPLIER_SECONDS * 2 ** (k - 1) == 2 ** (k + 1).
BACKOFF_MULTIPLIER_SECONDS: float = 4.0

RequestT = TypeVar("RequestT")
ResponseT = TypeVar("ResponseT")

Sleep = Callable[[float], Awaitable[None]]


@dataclass
class RetryState:
    """Per-call retry bookkeeping.

    ``attempt`` is the 1-based number of the attempt in flight (0 before the
    first one). ``has_retried`` is sticky: once set it is never cleared, and a
    state created with it already set allows exactly one attempt.
    """

    base_timeout: float
    attempt: int = 0
    timeout: float = 0.0
    has_retried: bool = False

    def __post_init__(self) -> None:
        if not self.timeout:
            self.timeout = self.base_timeout

    def advance(self, attempt_number: int) -> None:
        self.attempt = attempt_number
        self.timeout = attempt_timeout(self.base_timeout, attempt_number)
        if attempt_number > 1:
            self.has_retried = True


def attempt_timeout(base_timeout: float, attempt_number: int) -> float:
    """Timeout for a 1-based attempt; grows linearly from the base."""

    return base_timeout * max(1, attempt_number)


def backoff_delay(failed_attempt: int) -> float:
    """Seconds to wait after ``failed_attempt`` before issuing the next one."""

    return BACKOFF_MULTIPLIER_SECONDS * 2 ** (max(1, failed_attempt) - 1)


def _wait_backoff(retry_state: RetryCallState) -> float:
    return backoff_delay(retry_state.attempt_number)


def _log_retry(max_retries: int) -> Callable[[RetryCallState], None]:
    def _before_sleep(retry_state: RetryCallState) -> None:
        delay = retry_state.next_action.sleep if retry_state.next_action else 0.0
        error = retry_state.outcome.exception() if retry_state.outcome else None
        logger.warning(
            "Retrying (%d/%d) in %.0fs after %s",
            retry_state.attempt_number,
            max_retries,
            delay,
            type(error).__name__ if error else "failure",
            extra={
                "retry": retry_state.attempt_number,
                "max_retries": max_retries,
                "delay_seconds": delay,
            },
        )

    return _before_sleep


def with_retry(
    attempt: Callable[[RequestT, RetryState], Awaitable[ResponseT]],
    *,
    max_retries: int = DEFAULT_MAX_RETRIES,
    retryable: Callable[[BaseException], bool] = is_retryable,
    sleep: Sleep = asyncio.sleep,
) -> Callable[[RequestT, RetryState], Awaitable[ResponseT]]:
    """Wrap ``attempt`` so retryable failures are re-issued with backoff.

    The returned coroutine function runs ``attempt`` up to ``max_retries + 1``
    times, advancing ``state`` before every attempt. Failures rejected by
    ``retryable`` propagate as raised. When the budget is spent a
    :class:`RetriesExhausted` wrapping the last failure is raised.

    A state that arrives with ``has_retried`` set gets a single attempt and no
    retry budget, so its failure propagates as raised.
    """

    if max_retries < 0:
        raise ValueError("max_retries must be >= 0")

    async def run(request: RequestT, state: RetryState) -> ResponseT:
        pre_retried = state.has_retried
        max_attempts = 1 if pre_retried else max_retries + 1
        retrying = AsyncRetrying(
            stop=stop_after_attempt(max_attempts),
            wait=_wait_backoff,
            retry=retry_if_exception(retryable),
            before_sleep=_log_retry(max_retries),
            sleep=sleep,
        )
        try:
            async for attempt_context in retrying:
                with attempt_context:
                    state.advance(attempt_context.retry_state.attempt_number)
                    return await attempt(request, state)
        except RetryError as exc:
            last_error: Optional[BaseException] = exc.last_attempt.exception()
            if not isinstance(last_error, PlatformAPIError):
                raise
            if pre_retried:
                raise last_error
            raise RetriesExhausted(last_error, attempts=state.attempt) from last_error
        # AsyncRetrying either returns from inside the loop or raises.
        raise AssertionError("retry loop finished without an outcome")

    return run


__all__ = [
    "BACKOFF_MULTIPLIER_SECONDS",
    "DEFAULT_MAX_RETRIES",
    "DEFAULT_TIMEOUT_SECONDS",
    "RetryState",
    "attempt_timeout",
    "backoff_delay",
    "with_retry",
]
