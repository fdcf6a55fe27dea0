"""Common test fixtures for the prompt engine."""

import pytest

from prompt_engine.settings import EngineSettings


class FakeClock:
    """Manually advanced clock for TTL tests."""

    def __init__(self, start: float = 1_700_000_000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def engine_settings() -> EngineSettings:
    """Settings with retry backoff disabled so retry tests never sleep for real."""
    return EngineSettings(retry_backoff_seconds=0.0, resolver_timeout_ms=1000, resolver_retry_count=0)
