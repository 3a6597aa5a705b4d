"""
Throttle injection with a bounded failure budget.

Call maybe_fail() first thing in every storage operation. It either
returns quietly or raises a retryable ThrottledError.
"""

from __future__ import annotations

import logging
import random
import threading
from typing import Callable, Optional

from flakystore import faults
from flakystore.config import valid_probability
from flakystore.exceptions import FlakyStoreConfigError

logger = logging.getLogger(__name__)


class FailureInjector:
    """
    Injects throttle failures with a given probability, up to a limit.

    The draw, the limit check and the counter increment happen under one
    lock so concurrent callers cannot overshoot the limit.

    Example:
        injector = FailureInjector(throttle_probability=1.0, failure_limit=2)
        injector.maybe_fail()  # raises, count 1
        injector.maybe_fail()  # raises, count 2
        injector.maybe_fail()  # passes from now on
    """

    def __init__(
        self,
        throttle_probability: float = 0.0,
        failure_limit: int = 0,
        *,
        rng: Optional[random.Random] = None,
        seed: Optional[int] = None,
        exc_factory: Callable[[int], Exception] = faults.throttled_503,
    ) -> None:
        self._throttle_probability = valid_probability(throttle_probability)
        self._failure_limit = _valid_limit(failure_limit)
        self._rng = rng if rng is not None else random.Random(seed)
        self._exc_factory = exc_factory
        self._lock = threading.Lock()
        self._failure_count = 0
        self._call_count = 0

    def maybe_fail(self) -> None:
        """
        Conditionally fail the operation.

        Raises:
            Exception: built by exc_factory (ThrottledError by default)
                when the draw hits and the budget allows it.
        """
        with self._lock:
            self._call_count += 1
            hit = self._rng.random() < self._throttle_probability
            if not hit or self._budget_exhausted():
                return
            self._failure_count += 1
            count = self._failure_count
        logger.debug("injecting throttle failure, count=%d", count)
        raise self._exc_factory(count)

    def _budget_exhausted(self) -> bool:
        return self._failure_limit > 0 and self._failure_count >= self._failure_limit

    def set_failure_limit(self, limit: int) -> None:
        """
        Set the limit on failures before all operations pass through.

        This resets the failure count. 0 means "no limit".
        """
        limit = _valid_limit(limit)
        with self._lock:
            self._failure_limit = limit
            self._failure_count = 0

    def set_throttle_probability(self, p: float) -> None:
        p = valid_probability(p)
        with self._lock:
            self._throttle_probability = p

    @property
    def throttle_probability(self) -> float:
        return self._throttle_probability

    @property
    def failure_limit(self) -> int:
        return self._failure_limit

    @property
    def failure_count(self) -> int:
        """Failures actually injected since the last reset."""
        with self._lock:
            return self._failure_count

    @property
    def call_count(self) -> int:
        """Number of maybe_fail() calls made so far."""
        with self._lock:
            return self._call_count


def _valid_limit(limit: int) -> int:
    if limit < 0:
        raise FlakyStoreConfigError(
            f"Failure limit must be >= 0, got {limit}",
            code="invalid_failure_limit",
            details={"value": limit},
        )
    return limit
