import pytest

from busload.broker.memory import MemoryBroker
from busload.config import RunConfig
from busload.events import EventLog


@pytest.fixture
def events() -> EventLog:
    return EventLog()


@pytest.fixture
def memory_broker() -> MemoryBroker:
    return MemoryBroker()


@pytest.fixture
def make_config():
    """Config factory with fast timings for in-process runs."""

    def factory(**overrides) -> RunConfig:
        values = {
            "duration_s": 5,
            "delay_ms": 0,
            "drain_poll_ms": 10,
        }
        values.update(overrides)
        return RunConfig(**values)

    return factory
