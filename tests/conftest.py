"""Pytest configuration shared across the suite."""

import pytest


class FakeClock:
    """Monotonic clock that only moves when a test advances it."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def anyio_backend() -> str:
    """Force AnyIO-powered tests to run against asyncio backend only."""
    return "asyncio"


@pytest.fixture
def fake_clock() -> FakeClock:
    """Virtual clock for caches, probes and dispatchers."""
    return FakeClock()
