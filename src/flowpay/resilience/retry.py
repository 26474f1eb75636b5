"""
Retry Strategies using Tenacity.

Only storage reads are retried. Resolution failures are user-visible
outcomes and are never retried automatically.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from typing import Any, TypeVar

from tenacity import (
    AsyncRetrying,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

from flowpay.core.exceptions import FlowPayError
from flowpay.core.logging import get_logger

logger = get_logger("retry")

T = TypeVar("T")


def is_transient_error(exception: BaseException) -> bool:
    """Check if exception looks like a transient network/infrastructure error."""
    if isinstance(exception, (ConnectionError, TimeoutError)):
        return True
    if isinstance(exception, FlowPayError):
        # Domain errors are deterministic
        return False
    msg = str(exception).lower()
    return any(
        x in msg
        for x in [
            "timeout",
            "timed out",
            "connection refused",
            "connection reset",
            "network error",
        ]
    )


def _log_retry(retry_state: Any) -> None:
    logger.warning(
        f"Retrying storage read... (Attempt {retry_state.attempt_number}): "
        f"{retry_state.outcome.exception()}"
    )


async def execute_with_retry(
    func: Callable[..., Awaitable[T]],
    *args: Any,
    attempts: int = 3,
    wait_min: float = 0.1,
    wait_max: float = 2.0,
    **kwargs: Any,
) -> T:
    """Execute an async function, retrying transient errors with exponential backoff."""
    async for attempt in AsyncRetrying(
        retry=retry_if_exception(is_transient_error),
        wait=wait_exponential(multiplier=wait_min, min=wait_min, max=wait_max),
        stop=stop_after_attempt(attempts),
        before_sleep=_log_retry,
        reraise=True,
    ):
        with attempt:
            return await func(*args, **kwargs)
    raise AssertionError("unreachable")  # pragma: no cover
