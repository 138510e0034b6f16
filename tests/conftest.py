"""
Shared fixtures: a controllable clock and services wired to a fresh in-memory store.
"""
from datetime import datetime, timedelta, timezone

import pytest

from pulsetime.models import ProjectCreate
from pulsetime.services.container import build_services
from pulsetime.storage.memory import MemoryStore

T0 = datetime(2024, 3, 13, 9, 0, tzinfo=timezone.utc)  # a Wednesday


class FakeClock:
    """Callable clock that only moves when told to."""

    def __init__(self, start: datetime = T0):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, minutes: float = 0, seconds: float = 0) -> datetime:
        self.now = self.now + timedelta(minutes=minutes, seconds=seconds)
        return self.now

    def set(self, instant: datetime) -> datetime:
        self.now = instant
        return self.now


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def store():
    return MemoryStore()


@pytest.fixture
def services(store, clock):
    return build_services(store, clock=clock, timezone="UTC")


@pytest.fixture
def make_project(services):
    """Async factory: await make_project(user_id, name=..., hourly_rate=...)."""

    async def _make(user_id: str = "alice", **fields):
        body = ProjectCreate(name=fields.pop("name", "Project A"), **fields)
        return await services.projects.create(user_id, body)

    return _make
