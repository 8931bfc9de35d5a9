from threading import Lock
from typing import List, Optional

from ..utils.time_utils import now_ms


class RunRecorder:
    """
    Metrics collected during one run.

    Owns the latency samples and the send/receive tallies. The shutdown
    coordinator reads it once at the end of the run to build the result.
    """

    def __init__(self):
        self._lock = Lock()
        self._samples: List[float] = []
        self.messages_sent = 0
        self.send_failures = 0
        self.messages_received = 0
        self.ack_failures = 0
        self.first_receive_ms: Optional[float] = None
        self.last_receive_ms: Optional[float] = None
        self.started_ms: Optional[float] = None
        self.stopped_ms: Optional[float] = None

    def mark_started(self) -> None:
        self.started_ms = now_ms()
        self.stopped_ms = None

    def mark_stopped(self) -> None:
        if self.stopped_ms is None:
            self.stopped_ms = now_ms()

    def record_send(self, ok: bool) -> None:
        with self._lock:
            if ok:
                self.messages_sent += 1
            else:
                self.send_failures += 1

    def record_ack_failure(self) -> None:
        with self._lock:
            self.ack_failures += 1

    def record_receive(
        self,
        send_time_ms: Optional[float] = None,
        received_ms: Optional[float] = None
    ) -> None:
        received = now_ms() if received_ms is None else received_ms
        with self._lock:
            self.messages_received += 1
            if self.first_receive_ms is None:
                self.first_receive_ms = received
            self.last_receive_ms = received
            if send_time_ms is not None:
                self._samples.append(received - send_time_ms)

    def add_latency(self, latency_ms: float) -> None:
        with self._lock:
            self._samples.append(latency_ms)

    def samples(self) -> List[float]:
        with self._lock:
            return list(self._samples)

    def sample_count(self) -> int:
        with self._lock:
            return len(self._samples)

    @property
    def duration_ms(self) -> float:
        """Time from run start to stop (or to now while running)."""
        if self.started_ms is None:
            return 0.0
        end = self.stopped_ms if self.stopped_ms is not None else now_ms()
        return max(0.0, end - self.started_ms)

    @property
    def receive_window_ms(self) -> float:
        """Time between the first and last received message."""
        if self.first_receive_ms is None or self.last_receive_ms is None:
            return 0.0
        return self.last_receive_ms - self.first_receive_ms
