"""
Shared fixtures for linkguard-core tests.
"""

from datetime import datetime, timedelta, timezone

import pytest


class FrozenClock:
    """Manually advanced UTC clock."""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def timestamp(self) -> float:
        return self.now.timestamp()

    def advance(self, **kwargs) -> None:
        self.now = self.now + timedelta(**kwargs)


class RecordingSleep:
    """Sleep stand-in that records requested delays and returns immediately."""

    def __init__(self):
        self.delays = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


@pytest.fixture
def clock():
    return FrozenClock(datetime(2024, 3, 14, 10, 30, 0, tzinfo=timezone.utc))


@pytest.fixture
def store(clock):
    from linkguard_core.store import InMemoryCounterStore

    return InMemoryCounterStore(clock=clock.timestamp)


@pytest.fixture
def sleeper():
    return RecordingSleep()


@pytest.fixture
def guard(store, clock, sleeper):
    from linkguard_core.service import ComplianceGuard

    return ComplianceGuard(store, clock=clock, sleep=sleeper)
