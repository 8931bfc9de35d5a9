"""Load generation and measurement harness for publish/subscribe message buses."""

from .config import RunConfig, RunMode, Transport
from .events import DiagnosticEvent, EventKind, EventLog
from .exceptions import BrokerError, BusloadError, CounterUnderflowError, RunAborted
from .metrics.statistics import summarize
from .models.results import RunResult
from .topics.expander import expand

__version__ = "1.0.0"

__all__ = [
    "BrokerError",
    "BusloadError",
    "CounterUnderflowError",
    "DiagnosticEvent",
    "EventKind",
    "EventLog",
    "RunAborted",
    "RunConfig",
    "RunMode",
    "RunResult",
    "Transport",
    "expand",
    "summarize",
]
