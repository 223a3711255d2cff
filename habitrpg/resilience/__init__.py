"""Resilience patterns for database transactions

Retry logic for transactions that lose a concurrency conflict.
"""

from habitrpg.resilience.retry import retry_on_transient, with_retry, is_retryable_error

__all__ = [
    "retry_on_transient",
    "with_retry",
    "is_retryable_error",
]
