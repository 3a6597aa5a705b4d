"""
Time-windowed state for simulated listing inconsistency.

Two maps, both keyed by object key:
- delayed puts: key -> time of the put. The key stays out of listings
  until the delay window has passed.
- delayed deletes: key -> time of the delete plus the object's last
  summary (None for prefix-only deletes). The key keeps showing up in
  listings until the delay window has passed.
"""

from __future__ import annotations

import logging
import random
import threading
import time
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional

from flakystore.config import valid_probability
from flakystore.models import ObjectSummary

logger = logging.getLogger(__name__)


def monotonic_ms() -> int:
    """Monotonic clock in whole milliseconds."""
    return time.monotonic_ns() // 1_000_000


@dataclass(frozen=True)
class DelayedDelete:
    """
    A recently deleted key that listings should still report.

    Attributes:
        key: Deleted key.
        time: Clock reading (milliseconds) when the delete was registered.
        summary: Last known summary, or None for a prefix-only delete.
    """

    key: str
    time: int
    summary: Optional[ObjectSummary] = None


class ConsistencyState:
    """
    Thread-safe store of pending delayed puts and deletes.

    A single lock guards both maps. It is held only for map reads and
    writes, never while talking to an object store.
    """

    def __init__(
        self,
        delay_key_substring: str = "",
        delay_probability: float = 1.0,
        delay_window_ms: int = 5000,
        *,
        rng: Optional[random.Random] = None,
        clock: Callable[[], int] = monotonic_ms,
    ) -> None:
        self._delay_key_substring = delay_key_substring
        self._delay_probability = valid_probability(delay_probability)
        self._delay_window_ms = delay_window_ms
        self._rng = rng if rng is not None else random.Random()
        self._clock = clock
        self._lock = threading.Lock()
        self._delayed_puts: Dict[str, int] = {}
        self._delayed_deletes: Dict[str, DelayedDelete] = {}

    @property
    def delay_key_substring(self) -> str:
        return self._delay_key_substring

    @property
    def delay_probability(self) -> float:
        return self._delay_probability

    @property
    def delay_window_ms(self) -> int:
        return self._delay_window_ms

    def should_delay(self, key: str) -> bool:
        """
        Should we delay listing visibility for this key?

        The key must contain the delay substring and win a draw against
        the delay probability.
        """
        delay = self._delay_key_substring in key
        if delay:
            with self._lock:
                delay = self._rng.random() < self._delay_probability
        logger.debug("%s -> %s", key, delay)
        return delay

    def register_put(self, key: str) -> bool:
        """Delay visibility of a new key if it qualifies. Returns True if delayed."""
        if not self.should_delay(key):
            return False
        self.record_put(key)
        return True

    def register_delete(self, key: str, summary: Optional[ObjectSummary]) -> bool:
        """Keep a deleted key visible if it qualifies. Returns True if delayed."""
        if not self.should_delay(key):
            return False
        self.record_delete(key, summary)
        return True

    def record_put(self, key: str) -> None:
        logger.debug("delaying put of %s", key)
        now = self._clock()
        with self._lock:
            self._delayed_puts[key] = now

    def record_delete(self, key: str, summary: Optional[ObjectSummary]) -> None:
        logger.debug("delaying delete of %s", key)
        entry = DelayedDelete(key=key, time=self._clock(), summary=summary)
        with self._lock:
            self._delayed_deletes[key] = entry

    def _expired(self, enqueue_time: int, now: int) -> bool:
        return now - enqueue_time >= self._delay_window_ms

    def is_hidden_by_put(self, key: str) -> bool:
        """
        True while a delayed put of this key is inside its window.

        Expired put entries are left in place; only delete entries are
        purged (see active_deletes()).
        """
        with self._lock:
            enqueue_time = self._delayed_puts.get(key)
        if enqueue_time is None:
            return False
        if self._expired(enqueue_time, self._clock()):
            logger.debug("no longer delaying %s", key)
            return False
        logger.info("delaying %s", key)
        return True

    def active_deletes(self) -> List[DelayedDelete]:
        """
        Snapshot of delete entries still inside their window.

        Expired entries are removed as they are found.
        """
        now = self._clock()
        active: List[DelayedDelete] = []
        with self._lock:
            for key in list(self._delayed_deletes):
                entry = self._delayed_deletes[key]
                if self._expired(entry.time, now):
                    del self._delayed_deletes[key]
                    logger.debug("no longer delaying %s", key)
                else:
                    active.append(entry)
        return active

    def clear(self) -> None:
        """Drop all pending delayed puts and deletes."""
        with self._lock:
            self._delayed_puts.clear()
            self._delayed_deletes.clear()

    @property
    def pending_puts(self) -> int:
        with self._lock:
            return len(self._delayed_puts)

    @property
    def pending_deletes(self) -> int:
        with self._lock:
            return len(self._delayed_deletes)
