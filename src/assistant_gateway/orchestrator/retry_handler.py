"""Retry handler with exponential backoff."""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import TypeVar

import httpx
from pydantic import BaseModel, ConfigDict, Field
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

RETRYABLE_TRANSPORT_ERRORS = (
    httpx.ConnectError,
    httpx.TimeoutException,
    httpx.NetworkError,
    httpx.RemoteProtocolError,
    asyncio.TimeoutError,
    ConnectionError,
)


class RetryPolicy(BaseModel):
    """Backoff parameters. Delay before retry k (from 0) is min(base * factor**k, max)."""

    model_config = ConfigDict(frozen=True)

    max_retries: int = Field(default=3, ge=0)
    base_delay: float = Field(default=1.0, ge=0)
    max_delay: float = Field(default=10.0, ge=0)
    backoff_factor: float = Field(default=2.0, ge=1.0)

    def delay_for(self, attempt: int) -> float:
        return min(self.base_delay * self.backoff_factor**attempt, self.max_delay)

    def wait_strategy(self) -> wait_exponential:
        return wait_exponential(
            multiplier=self.base_delay,
            exp_base=self.backoff_factor,
            min=0,
            max=self.max_delay,
        )


def is_retryable(error: BaseException) -> bool:
    """Transient network failures, 5xx and 429 are retryable; other 4xx are not."""
    status_code = getattr(error, "status_code", None)
    if isinstance(error, httpx.HTTPStatusError):
        status_code = error.response.status_code
    if status_code is not None:
        return status_code == 429 or 500 <= status_code < 600
    retryable = getattr(error, "retryable", None)
    if retryable is not None:
        return bool(retryable)
    return isinstance(error, RETRYABLE_TRANSPORT_ERRORS)


def _log_retry(retry_state: RetryCallState) -> None:
    error = retry_state.outcome.exception() if retry_state.outcome else None
    logger.warning(
        "Retrying after transient failure",
        extra={
            "attempt": retry_state.attempt_number,
            "delay": retry_state.next_action.sleep if retry_state.next_action else None,
            "error_type": type(error).__name__ if error else None,
        },
    )


async def run_with_retry(
    op: Callable[[], Awaitable[T]],
    retryable: Callable[[BaseException], bool] = is_retryable,
    policy: RetryPolicy | None = None,
    sleep: Callable[[float], Awaitable[None]] | None = None,
) -> T:
    """Run ``op`` until it succeeds, fails non-retryably, or retries run out.

    The error that escapes carries an ``attempts`` attribute with the number of
    calls made.
    """
    policy = policy or RetryPolicy()
    extra = {"sleep": sleep} if sleep is not None else {}
    attempts = 0

    try:
        async for attempt in AsyncRetrying(
            stop=stop_after_attempt(policy.max_retries + 1),
            wait=policy.wait_strategy(),
            retry=retry_if_exception(retryable),
            before_sleep=_log_retry,
            reraise=True,
            **extra,
        ):
            with attempt:
                attempts = attempt.retry_state.attempt_number
                return await op()
    except Exception as e:
        e.attempts = attempts
        raise

    # This should never be reached
    raise RuntimeError("Retry loop completed without returning")


class RetryHandler:
    """Reusable retry executor bound to one policy."""

    def __init__(
        self,
        policy: RetryPolicy | None = None,
        retryable: Callable[[BaseException], bool] = is_retryable,
        sleep: Callable[[float], Awaitable[None]] | None = None,
    ):
        self.policy = policy or RetryPolicy()
        self.retryable = retryable
        self.sleep = sleep

    async def execute(self, func: Callable[..., Awaitable[T]], *args, **kwargs) -> T:
        """Execute coroutine function with retry logic."""
        return await run_with_retry(
            lambda: func(*args, **kwargs),
            retryable=self.retryable,
            policy=self.policy,
            sleep=self.sleep,
        )
