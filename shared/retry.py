"""
Backoff for single transient remote calls made by the adapters.

Pipeline stages are never retried; a failed stage ends the run.
"""

import asyncio
import functools
from typing import Callable, Type, Tuple, Any, TypeVar

from shared.errors import RetryableError, RateLimitError
from shared.logging import get_logger

T = TypeVar("T")
logger = get_logger("retry")


def retry_with_backoff(
    max_attempts: int = 3,
    base_delay: float = 2,
    retryable_exceptions: Tuple[Type[Exception], ...] = (RetryableError, RateLimitError)
):
    """
    Retry an async callable on transient errors, doubling the delay each time.

    A RateLimitError carrying retry_after waits that long instead. Errors
    outside retryable_exceptions propagate on the first attempt.

    Example:
        @retry_with_backoff(max_attempts=3, base_delay=2)
        async def fetch(url):
            ...
    """
    def decorator(func: Callable[..., T]) -> Callable[..., T]:
        if not asyncio.iscoroutinefunction(func):
            raise TypeError(f"retry_with_backoff requires an async function, got {func.__name__}")

        @functools.wraps(func)
        async def async_wrapper(*args: Any, **kwargs: Any) -> T:
            last_exception = None

            for attempt in range(max_attempts):
                try:
                    return await func(*args, **kwargs)
                except retryable_exceptions as e:
                    last_exception = e
                    if attempt < max_attempts - 1:
                        retry_after = getattr(e, "retry_after", None)
                        delay = retry_after if retry_after else base_delay * (2 ** attempt)
                        logger.warning(
                            f"Retry attempt {attempt + 1}/{max_attempts} for {func.__name__} "
                            f"after {delay}s delay",
                            extra={"error": str(e), "attempt": attempt + 1}
                        )
                        await asyncio.sleep(delay)
                    else:
                        logger.error(
                            f"All {max_attempts} retry attempts failed for {func.__name__}",
                            extra={"error": str(e)}
                        )

            if last_exception:
                raise last_exception
            raise RuntimeError(f"Function {func.__name__} failed after {max_attempts} attempts")

        return async_wrapper

    return decorator
