import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

from .utils.ring_buffer import RingBuffer
from .utils.time_utils import get_current_timestamp

logger = logging.getLogger(__name__)


class EventKind(str, Enum):
    CONNECTED = "connected"
    CONNECT_FAILED = "connect_failed"
    SESSION_NOTIFICATION = "session_notification"
    RESOURCE_CREATED = "resource_created"
    RESOURCE_FAILED = "resource_failed"
    RESOURCE_STOPPED = "resource_stopped"
    TEST_STARTED = "test_started"
    TEST_COMPLETE = "test_complete"
    SEND_FAILED = "send_failed"
    ACK_FAILED = "ack_failed"
    SESSION_CLOSE_FAILED = "session_close_failed"
    SHUTDOWN_COMPLETE = "shutdown_complete"


_WARNING_KINDS = {
    EventKind.RESOURCE_FAILED,
    EventKind.SESSION_CLOSE_FAILED,
    EventKind.ACK_FAILED,
}

# Per-message failures are tallied by the recorder, logged only at debug.
_DEBUG_KINDS = {EventKind.SEND_FAILED}


@dataclass
class DiagnosticEvent:
    kind: EventKind
    message: str
    timestamp: float
    topic: Optional[str] = None
    error: Optional[str] = None
    details: Dict[str, Any] = field(default_factory=dict)


EventListener = Callable[[DiagnosticEvent], None]


class EventLog:
    """
    Per-run diagnostic event channel.

    Every event is logged, kept in a bounded history for the status API,
    and handed to registered listeners (the report printer, tests).
    A failing listener is logged and skipped so it cannot break the run.
    """

    def __init__(self, history_size: int = 1000):
        self._history = RingBuffer[DiagnosticEvent](history_size)
        self._listeners: List[EventListener] = []

    def add_listener(self, listener: EventListener) -> None:
        self._listeners.append(listener)

    def emit(
        self,
        kind: EventKind,
        message: str,
        topic: Optional[str] = None,
        error: Optional[BaseException] = None,
        **details: Any
    ) -> DiagnosticEvent:
        event = DiagnosticEvent(
            kind=kind,
            message=message,
            timestamp=get_current_timestamp(),
            topic=topic,
            error=str(error) if error is not None else None,
            details=details,
        )

        text = f"{message}: {error}" if error is not None else message
        if kind == EventKind.CONNECT_FAILED:
            logger.error(text)
        elif kind in _WARNING_KINDS:
            logger.warning(text)
        elif kind in _DEBUG_KINDS:
            logger.debug(text)
        else:
            logger.info(text)

        self._history.append(event)
        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception as e:
                logger.error(f"Event listener failed on {kind.value}: {e}")

        return event

    def recent(self, last_n: int) -> List[DiagnosticEvent]:
        return self._history.get_last_n(last_n)

    def of_kind(self, kind: EventKind) -> List[DiagnosticEvent]:
        return [e for e in self._history.get_last_n(len(self._history)) if e.kind == kind]

    def total(self) -> int:
        return self._history.total_appended()
