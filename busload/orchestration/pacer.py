import asyncio
import itertools
import logging
from enum import Enum
from functools import partial
from typing import Any, Dict, Iterator, Optional, Set

from ..broker.base import Publication
from ..events import EventKind, EventLog
from ..metrics.recorder import RunRecorder
from ..models.messages import LoadMessage
from ..topics.expander import RoundRobinTopics
from ..utils.time_utils import now_ms
from .counters import OutstandingCounter

logger = logging.getLogger(__name__)


class PacerState(str, Enum):
    IDLE = "idle"
    RUNNING = "running"
    STOPPING = "stopping"
    DRAINING = "draining"
    DONE = "done"


class BurstPacer:
    """
    Rate-paced send loop for one publication.

    LIFECYCLE:
    1. RUNNING: issue ``burst_size`` sends back-to-back, pause ``delay_ms``,
       repeat
    2. STOPPING: ``stop()`` was called (or ``max_cycles`` reached); the
       current burst has already been issued in full, no new burst starts
    3. DRAINING: wait for the shared outstanding counter to reach zero
    4. DONE: release the live-pacer count and return

    BACKPRESSURE:
    - The outstanding counter is incremented before each send is dispatched
      and decremented in the send's completion callback
    - A failed send is tallied and reported, it never stops the pacer
    """

    def __init__(
        self,
        publication: Publication,
        base_topic: str,
        outstanding: OutstandingCounter,
        burst_size: int = 10,
        delay_ms: float = 10,
        wc_topic_count: int = 0,
        wc_topic_start: int = 0,
        live_pacers: Optional[OutstandingCounter] = None,
        recorder: Optional[RunRecorder] = None,
        events: Optional[EventLog] = None,
        sequence: Optional[Iterator[int]] = None,
        max_cycles: Optional[int] = None,
        drain_poll_ms: float = 100,
    ):
        self.publication = publication
        self.base_topic = base_topic
        self._outstanding = outstanding
        self._burst_size = burst_size
        self._delay = delay_ms / 1000.0
        self._topics = RoundRobinTopics(base_topic, wc_topic_count, wc_topic_start)
        self._live = live_pacers
        self._recorder = recorder
        self._events = events
        self._sequence = sequence if sequence is not None else itertools.count(1)
        self._max_cycles = max_cycles
        self._drain_poll = drain_poll_ms / 1000.0

        self._state = PacerState.IDLE
        self._stop_requested = asyncio.Event()
        self._done = asyncio.Event()
        self._registered = False
        self._inflight: Set[asyncio.Future] = set()
        self._task: Optional[asyncio.Task] = None
        self._cycles = 0
        self._issued = 0

    @property
    def state(self) -> PacerState:
        return self._state

    @property
    def cycles(self) -> int:
        return self._cycles

    @property
    def messages_issued(self) -> int:
        return self._issued

    def start(self) -> asyncio.Task:
        """Register with the live-pacer count and run in a background task."""
        self._register()
        self._task = asyncio.create_task(self.run())
        return self._task

    def stop(self) -> None:
        """Let the current burst finish, then drain and finish."""
        self._stop_requested.set()

    async def wait_done(self) -> None:
        await self._done.wait()

    def _register(self) -> None:
        if not self._registered:
            self._registered = True
            if self._live is not None:
                self._live.increment()

    async def run(self) -> None:
        if self._state is not PacerState.IDLE:
            raise RuntimeError(f"Pacer for {self.base_topic} already started")
        self._register()
        self._state = PacerState.RUNNING

        try:
            while not self._stop_requested.is_set():
                self._issue_burst()
                self._cycles += 1
                if self._max_cycles and self._cycles >= self._max_cycles:
                    break
                await self._pause()

            self._state = PacerState.STOPPING
            logger.debug(
                f"Pacer for {self.base_topic} stopping after {self._cycles} cycles, "
                f"{self._issued} messages"
            )

            self._state = PacerState.DRAINING
            await self._outstanding.wait_for_zero(self._drain_poll)
        finally:
            self._state = PacerState.DONE
            if self._live is not None:
                self._live.decrement()
            self._done.set()

    async def _pause(self) -> None:
        if self._delay <= 0:
            await asyncio.sleep(0)
            return
        try:
            await asyncio.wait_for(self._stop_requested.wait(), timeout=self._delay)
        except asyncio.TimeoutError:
            pass

    def _issue_burst(self) -> None:
        self._topics.reset()
        for _ in range(self._burst_size):
            topic = next(self._topics)
            message = LoadMessage(
                publication_topic=self.base_topic,
                message_count=next(self._sequence),
                send_time_ms=now_ms(),
            )

            self._outstanding.increment()
            future = asyncio.ensure_future(self._send(topic, message.model_dump()))
            self._inflight.add(future)
            future.add_done_callback(partial(self._on_sent, topic))
            self._issued += 1

    async def _send(self, topic: str, payload: Dict[str, Any]) -> None:
        await self.publication.send(topic, payload)

    def _on_sent(self, topic: str, future: asyncio.Future) -> None:
        self._inflight.discard(future)

        if future.cancelled():
            error: Optional[BaseException] = asyncio.CancelledError("send cancelled")
        else:
            error = future.exception()

        if self._recorder is not None:
            self._recorder.record_send(error is None)

        if error is not None:
            if self._events is not None:
                self._events.emit(
                    EventKind.SEND_FAILED,
                    f"Error sending on {topic}",
                    topic=topic,
                    error=error,
                )
            else:
                logger.debug(f"Error sending on {topic}: {error}")

        self._outstanding.decrement()
