import asyncio
import logging
from enum import Enum
from typing import Awaitable, List, Optional

from ..broker.base import BrokerClient, BrokerSession, SessionNotification
from ..config import RunConfig, RunMode
from ..events import EventKind, EventLog
from ..exceptions import RunAborted
from ..metrics.recorder import RunRecorder
from ..models.results import RunResult
from ..orchestration.counters import OutstandingCounter
from ..orchestration.fanout import FanoutJob

logger = logging.getLogger(__name__)


class RunPhase(str, Enum):
    IDLE = "idle"
    CONNECTING = "connecting"
    CREATING = "creating"
    RUNNING = "running"
    SHUTTING_DOWN = "shutting_down"
    COMPLETE = "complete"
    ABORTED = "aborted"


_NOTIFICATION_TEXT = {
    SessionNotification.CONNECTION_INFO: "Session connected to active endpoint {detail}",
    SessionNotification.CONNECTION_LOST: "Lost session connection, all operations affected",
    SessionNotification.CONNECTION_RESTORED: "Session connection restored, all operations will continue",
    SessionNotification.GDS_LOST: "Lost communications with the GDS, GD operations affected",
    SessionNotification.GDS_RESTORED: "Communications with the GDS have been restored, GD operations will continue",
}


class LoadRun:
    """
    Shared state and stages of a single run.

    Each run owns its recorder, event log and counters; nothing is shared
    between runs. ``request_stop()`` moves the soft deadline to now.
    """

    mode: RunMode = RunMode.PUBLISH

    def __init__(
        self,
        config: RunConfig,
        broker: BrokerClient,
        events: Optional[EventLog] = None,
    ):
        self.config = config
        self.broker = broker
        self.events = events if events is not None else EventLog()
        self.recorder = RunRecorder()
        self.outstanding = OutstandingCounter("outstanding messages")
        self.live_pacers = OutstandingCounter("message threads")
        self.phase = RunPhase.IDLE
        self.resources_created = 0
        self.resources_failed = 0
        self.result: Optional[RunResult] = None
        self._stop_requested = asyncio.Event()

    async def run(self) -> RunResult:
        raise NotImplementedError

    def request_stop(self) -> None:
        if not self._stop_requested.is_set():
            logger.info("Stop requested, ending test early")
            self._stop_requested.set()

    async def _connect(self) -> BrokerSession:
        self.phase = RunPhase.CONNECTING
        endpoints = self.config.primary_endpoint
        if self.config.secondary_endpoint:
            endpoints += f", {self.config.secondary_endpoint}"
        logger.info(f"Connecting to {endpoints}...")

        try:
            session = await self.broker.connect(self.config, on_notify=self._on_notify)
        except Exception as e:
            self.phase = RunPhase.ABORTED
            self.events.emit(EventKind.CONNECT_FAILED, "Connect failed", error=e)
            raise RunAborted(f"Connect failed: {e}") from e

        self.events.emit(EventKind.CONNECTED, "Connected", endpoint=self.config.primary_endpoint)
        return session

    def _on_notify(self, kind: SessionNotification, detail: str) -> None:
        template = _NOTIFICATION_TEXT.get(kind, "Session notification {detail}")
        self.events.emit(
            EventKind.SESSION_NOTIFICATION,
            template.format(detail=detail),
            notification=kind.value,
            detail=detail,
        )

    def _tally(self, job: FanoutJob) -> None:
        for slot in job.slots:
            if slot.ok:
                self.resources_created += 1
            else:
                self.resources_failed += 1

    async def _wait_for_deadline(self, finished_early: Optional[Awaitable] = None) -> None:
        """
        Wait for the test duration to elapse.

        Returns sooner on ``request_stop()`` or when ``finished_early``
        completes.
        """
        waiters: List[asyncio.Future] = [asyncio.ensure_future(self._stop_requested.wait())]
        if finished_early is not None:
            waiters.append(asyncio.ensure_future(finished_early))

        try:
            await asyncio.wait(
                waiters,
                timeout=self.config.duration_s,
                return_when=asyncio.FIRST_COMPLETED,
            )
        finally:
            for waiter in waiters:
                if not waiter.done():
                    waiter.cancel()
            await asyncio.gather(*waiters, return_exceptions=True)
