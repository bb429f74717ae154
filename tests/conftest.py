"""Shared fixtures: a controllable clock and test-time environment defaults.

Environment defaults are set before anything imports
``route_guard.core.config``, since settings are resolved at import time.
"""

import os

import pytest

os.environ["APP_ENV"] = "testing"
os.environ.setdefault("LIMITER_ENABLED", "true")
os.environ.setdefault("LIMITER_STORE_BACKEND", "memory")
os.environ.setdefault("LIMITER_FAIL_OPEN", "true")
os.environ.setdefault("LOG_LEVEL", "WARNING")


class FakeClock:
    """Deterministic clock shared by the engine and the in-memory store."""

    def __init__(self, start: float = 1_000.0) -> None:
        self.current = start

    def __call__(self) -> float:
        return self.current

    def advance(self, seconds: float) -> None:
        self.current += seconds


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()
