"""Retry logic with exponential backoff and jitter

Re-runs whole database transactions that lost a concurrency conflict:
1. Only retries serialization failures and deadlocks (the transaction was
   rolled back, so running it again is safe)
2. Uses exponential backoff with jitter so competing requests spread out
3. Gives up after max retries to avoid infinite loops
"""

import asyncio
import random
import logging
from typing import Callable, Any, TypeVar
from functools import wraps
from psycopg import errors as pg_errors

logger = logging.getLogger(__name__)

T = TypeVar('T')

# Retry configuration
MAX_RETRIES = 3
BASE_DELAY = 0.05  # seconds
MAX_DELAY = 1.0  # seconds
JITTER = 0.1  # 10% random jitter


def is_retryable_error(exc: Exception) -> bool:
    """
    Determine if a failed transaction should be re-run.

    Retryable errors:
    - SerializationFailure (40001)
    - DeadlockDetected (40P01)

    Everything else (constraint violations, lost connections, programming
    errors) propagates to the caller.
    """
    return isinstance(exc, (pg_errors.SerializationFailure, pg_errors.DeadlockDetected))


def calculate_backoff(attempt: int) -> float:
    """
    Calculate exponential backoff delay with jitter.

    Formula: delay = min(BASE_DELAY * (2 ** attempt), MAX_DELAY) + jitter
    Jitter is random value between -10% and +10% of delay

    Args:
        attempt: The retry attempt number (0-indexed)

    Returns:
        Delay in seconds

    Example:
        Attempt 0: ~0.05s
        Attempt 1: ~0.1s
        Attempt 2: ~0.2s
    """
    delay = min(BASE_DELAY * (2 ** attempt), MAX_DELAY)

    jitter_amount = random.uniform(-JITTER * delay, JITTER * delay)
    final_delay = delay + jitter_amount

    return max(final_delay, 0.0)


async def retry_on_transient(
    func: Callable[..., T],
    *args: Any,
    max_retries: int = MAX_RETRIES,
    **kwargs: Any
) -> T:
    """
    Retry an async transaction function with exponential backoff.

    `func` must open and commit its own transaction so each attempt starts
    from a clean state.

    Returns:
        Result from func

    Raises:
        Last exception if all retries exhausted or non-retryable error

    Example:
        reward = await retry_on_transient(self._complete_once, user_id, habit_id, now)
    """
    for attempt in range(max_retries + 1):
        try:
            return await func(*args, **kwargs)

        except Exception as e:
            if not is_retryable_error(e):
                raise

            if attempt == max_retries:
                logger.error(
                    f"[RETRY] All {max_retries} retries exhausted for {func.__name__}"
                )
                raise

            backoff = calculate_backoff(attempt)

            from habitrpg.observability.metrics import transaction_retries_total
            transaction_retries_total.labels(operation=func.__name__).inc()

            logger.info(
                f"[RETRY] Attempt {attempt + 1}/{max_retries} for {func.__name__} "
                f"after {backoff:.2f}s (error: {type(e).__name__})"
            )

            await asyncio.sleep(backoff)

    raise RuntimeError("Retry logic failed unexpectedly")


def with_retry(max_retries: int = MAX_RETRIES) -> Callable:
    """
    Decorator to add transaction retry logic to async functions.

    Example:
        @with_retry(max_retries=3)
        async def rename_user(...):
            async with db.transaction() as conn:
                ...
    """
    def decorator(func: Callable[..., T]) -> Callable[..., T]:
        @wraps(func)
        async def wrapper(*args: Any, **kwargs: Any) -> T:
            return await retry_on_transient(func, *args, max_retries=max_retries, **kwargs)
        return wrapper
    return decorator
