"""Pytest configuration and shared fixtures."""

import random
import sys
from pathlib import Path

import pytest

# Ensure the project root is in sys.path for proper imports with pytest-xdist
project_root = Path(__file__).parent.parent
if str(project_root) not in sys.path:
    sys.path.insert(0, str(project_root))

from flakystore import (  # noqa: E402
    InconsistencyConfig,
    InconsistentObjectStore,
    InMemoryObjectStore,
    reset_config,
)


class FakeClock:
    """Manually advanced millisecond clock."""

    def __init__(self, start_ms: int = 1_000_000) -> None:
        self._ms = start_ms

    def __call__(self) -> int:
        return self._ms

    def advance_ms(self, ms: int) -> None:
        self._ms += ms


@pytest.fixture(autouse=True)
def _clean_config_cache(monkeypatch):
    # Keep a locally installed logfire from exporting test spans.
    monkeypatch.setenv("FLAKYSTORE_LOGFIRE", "0")
    reset_config()
    yield
    reset_config()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def backing_store() -> InMemoryObjectStore:
    return InMemoryObjectStore()


@pytest.fixture
def make_store(backing_store, clock):
    """Build an InconsistentObjectStore over the in-memory store."""

    def _make(**overrides) -> InconsistentObjectStore:
        values = {
            "delay_key_substring": "*",
            "delay_probability": 1.0,
            "delay_window_ms": 5000,
            "throttle_probability": 0.0,
            "failure_limit": 0,
        }
        values.update(overrides)
        return InconsistentObjectStore(
            backing_store,
            InconsistencyConfig(**values),
            rng=random.Random(1234),
            clock=clock,
        )

    return _make
