"""Retry logic wrapper with linear backoff for coroutines."""

import asyncio
from functools import wraps
from typing import Any, Awaitable, Callable, TypeVar, cast

from market_moves.core.errors import FetchExhausted
from market_moves.core.logger import logger

F = TypeVar('F', bound=Callable[..., Awaitable[Any]])

# Module-level so tests can swap in a no-op sleeper
_sleep = asyncio.sleep


def with_retries(max_attempts: int = 3, backoff_step: float = 2.0) -> Callable[[F], F]:
    """
    A decorator that retries a coroutine function upon failure using linear backoff.

    The n-th failed attempt is followed by a pause of ``n * backoff_step``
    seconds. Once every attempt has failed, :class:`FetchExhausted` is raised
    with the last error attached.

    Args:
        max_attempts (int): Total number of attempts, including the first one.
        backoff_step (float): Seconds added to the pause after each failed attempt.

    Returns:
        Callable: The decorated coroutine function.
    """
    def decorator(func: F) -> F:
        @wraps(func)
        async def wrapper(*args: Any, **kwargs: Any) -> Any:
            last_error: Exception | None = None
            for attempt in range(1, max_attempts + 1):
                try:
                    return await func(*args, **kwargs)
                except Exception as e:
                    last_error = e
                    if attempt == max_attempts:
                        break
                    delay = attempt * backoff_step
                    logger.warning(
                        f"'{func.__name__}' failed (attempt {attempt}/{max_attempts}): {e}. "
                        f"Retrying in {delay:g} seconds..."
                    )
                    await _sleep(delay)

            logger.error(f"'{func.__name__}' failed after {max_attempts} attempts: {last_error}")
            raise FetchExhausted(
                f"Data fetch failed after {max_attempts} attempts",
                last_error=last_error,
            ) from last_error
        return cast(F, wrapper)
    return decorator
