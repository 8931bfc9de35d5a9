from typing import Optional

from ..broker.base import BrokerClient
from ..config import RunConfig, RunMode
from ..events import EventLog
from .base import LoadRun, RunPhase
from .ping import PingRun
from .publisher import PublisherRun
from .subscriber import SubscriberRun

_RUNS = {
    RunMode.PUBLISH: PublisherRun,
    RunMode.SUBSCRIBE: SubscriberRun,
    RunMode.PING: PingRun,
}


def create_run(
    config: RunConfig,
    broker: BrokerClient,
    events: Optional[EventLog] = None,
) -> LoadRun:
    return _RUNS[config.mode](config, broker, events=events)


__all__ = [
    "LoadRun",
    "PingRun",
    "PublisherRun",
    "RunPhase",
    "SubscriberRun",
    "create_run",
]
