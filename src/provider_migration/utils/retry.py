"""Retry decorators for resource registry calls, built on tenacity.

Only transient failures are retried: network errors, 5xx responses and
rate limiting. A conflict or a not-found answer is a real outcome the
executor has to act on, so it is raised immediately.
"""

import asyncio
from collections.abc import Callable
from functools import wraps
from typing import Any, TypeVar

from tenacity import (
    AsyncRetrying,
    RetryCallState,
    Retrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_random_exponential,
)

from provider_migration.client.exceptions import NetworkError, RateLimitError, ServerError
from provider_migration.utils.logging import get_logger

logger = get_logger(__name__)

F = TypeVar("F", bound=Callable[..., Any])

TRANSIENT_ERRORS: tuple[type[Exception], ...] = (NetworkError, ServerError, RateLimitError)


class wait_for_registry:
    """Exponential backoff with jitter that honours a 429 ``Retry-After``."""

    def __init__(self, min_wait: float, max_wait: float):
        self.max_wait = max_wait
        self.backoff = wait_random_exponential(multiplier=1, min=min_wait, max=max_wait)

    def __call__(self, retry_state: RetryCallState) -> float:
        error = retry_state.outcome.exception() if retry_state.outcome else None
        if isinstance(error, RateLimitError) and error.retry_after is not None:
            return float(min(error.retry_after, self.max_wait))
        return self.backoff(retry_state)


def _log_retry(func_name: str, max_attempts: int) -> Callable[[RetryCallState], None]:
    def before_sleep(retry_state: RetryCallState) -> None:
        error = retry_state.outcome.exception() if retry_state.outcome else None
        logger.info(
            "registry_call_retry",
            function=func_name,
            attempt=retry_state.attempt_number,
            max_attempts=max_attempts,
            error_type=type(error).__name__ if error else None,
            sleep_seconds=round(retry_state.next_action.sleep, 2)
            if retry_state.next_action
            else None,
        )

    return before_sleep


def retry_with_backoff(
    max_attempts: int = 5,
    min_wait: float = 2,
    max_wait: float = 60,
    retry_on_exceptions: tuple[type[Exception], ...] = TRANSIENT_ERRORS,
) -> Callable[[F], F]:
    """Retry a coroutine function or plain function on transient errors.

    Args:
        max_attempts: Maximum number of attempts, the first call included
        min_wait: Minimum wait between attempts in seconds
        max_wait: Maximum wait between attempts in seconds
        retry_on_exceptions: Exception types that trigger a retry

    Returns:
        Decorator; the last error is re-raised once attempts run out
    """

    def decorator(func: F) -> F:
        def policy() -> dict[str, Any]:
            return {
                "stop": stop_after_attempt(max_attempts),
                "wait": wait_for_registry(min_wait, max_wait),
                "retry": retry_if_exception_type(retry_on_exceptions),
                "before_sleep": _log_retry(func.__name__, max_attempts),
                "reraise": True,
            }

        if asyncio.iscoroutinefunction(func):

            @wraps(func)
            async def async_wrapper(*args: Any, **kwargs: Any) -> Any:
                async for attempt in AsyncRetrying(**policy()):
                    with attempt:
                        return await func(*args, **kwargs)

            return async_wrapper  # type: ignore[return-value]

        @wraps(func)
        def sync_wrapper(*args: Any, **kwargs: Any) -> Any:
            return Retrying(**policy())(func, *args, **kwargs)

        return sync_wrapper  # type: ignore[return-value]

    return decorator


retry_api_call = retry_with_backoff(max_attempts=5, min_wait=2, max_wait=60)
