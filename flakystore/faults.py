"""
Factory functions for injected storage exceptions.

These exceptions report ObjectStoreError.is_retryable as true, so callers
with their own retry logic react to them just like a real store pushing
back.
"""

from __future__ import annotations

from flakystore.exceptions import ThrottledError


def throttled_503(count: int) -> ThrottledError:
    """
    Create a generic 503 throttle error.

    Args:
        count: Running injected-failure count, this failure included.
    """
    return ThrottledError(f"throttled count = {count}", failure_count=count)


def slow_down(count: int) -> ThrottledError:
    """
    Create a 503 error shaped like an object store's "SlowDown" reply.

    Useful when the code under test branches on the error code.
    """
    return ThrottledError(
        f"Please reduce your request rate. count = {count}",
        failure_count=count,
        code="SlowDown",
    )
