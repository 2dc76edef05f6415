"""Shared fixtures for error recovery tests."""

from datetime import datetime, timedelta, timezone

import pytest

from error_recovery.classifier import ErrorClassifier
from error_recovery.config import ErrorHandlingConfig


class FakeClock:
    """Controllable wall clock for circuit breaker timing."""

    def __init__(self):
        self.now = datetime(2025, 3, 26, 12, 0, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)


class FakeMonotonic:
    """Controllable monotonic clock for retry counter ages."""

    def __init__(self):
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class RecordingSleep:
    """Sleep replacement that records requested delays without waiting."""

    def __init__(self):
        self.delays = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


@pytest.fixture
def fake_clock():
    return FakeClock()


@pytest.fixture
def fake_monotonic():
    return FakeMonotonic()


@pytest.fixture
def recording_sleep():
    return RecordingSleep()


@pytest.fixture
def classifier():
    return ErrorClassifier()


@pytest.fixture
def make_record(classifier):
    """Factory for classified records."""

    def _make(message: str = "connection refused", client_id: str = "client-a", **context):
        return classifier.classify(RuntimeError(message), client_id=client_id, context=context)

    return _make


@pytest.fixture
def quiet_config():
    """Config factory with the periodic sweep disabled."""

    def _make(**overrides):
        overrides.setdefault("enable_auto_recovery", False)
        return ErrorHandlingConfig(**overrides)

    return _make
