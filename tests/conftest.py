from datetime import datetime, timedelta, timezone

import pytest
import pytest_asyncio

import sample_workflows
from tempolite import WorkflowEngine
from tempolite.persistence import InMemoryHistoryStore


class FakeClock:
    """Manually advanced UTC clock."""

    def __init__(self) -> None:
        self.now = datetime(2025, 1, 1, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, ms: int) -> None:
        self.now += timedelta(milliseconds=ms)


@pytest.fixture
def calls():
    sample_workflows.CALLS.clear()
    yield sample_workflows.CALLS
    sample_workflows.CALLS.clear()


@pytest.fixture
def registry(calls):
    return sample_workflows.registry


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def store():
    return InMemoryHistoryStore()


@pytest_asyncio.fixture
async def make_engine(registry, store, clock):
    """Build engines sharing one store, as successive processes would."""
    engines = []

    def factory(**kwargs):
        kwargs.setdefault("registry", registry)
        kwargs.setdefault("store", store)
        kwargs.setdefault("clock", clock)
        engine = WorkflowEngine(**kwargs)
        engines.append(engine)
        return engine

    yield factory
    for engine in engines:
        await engine.shutdown()
