import logging
from typing import Any, List, Optional, Sequence, Tuple

from ..broker.base import BrokerSession
from ..events import EventKind, EventLog
from ..metrics.recorder import RunRecorder
from ..metrics.statistics import summarize
from ..models.results import RunResult
from .counters import OutstandingCounter
from .fanout import FanoutJob, ResourceSlot

logger = logging.getLogger(__name__)


class ShutdownCoordinator:
    """
    Orderly end of a run.

    SHUTDOWN ORDER:
    1. Wait for every live burst pacer to reach DONE (sends drained)
    2. Stop all created publications/subscriptions concurrently
    3. Close the session once every stop attempt has completed
    4. Summarize the recorder into the run result

    Stop and close failures are reported as diagnostic events and never
    change the computed result.
    """

    def __init__(
        self,
        events: Optional[EventLog] = None,
        live_pacers: Optional[OutstandingCounter] = None,
        poll_interval_ms: float = 100,
    ):
        self._events = events
        self._live_pacers = live_pacers
        self._poll_interval = poll_interval_ms / 1000.0

    async def wait_for_pacers(self) -> None:
        if self._live_pacers is None:
            return
        if not self._live_pacers.is_zero():
            logger.info(f"Waiting for {self._live_pacers.value} message thread(s) to drain")
        await self._live_pacers.wait_for_zero(self._poll_interval)

    async def teardown(
        self,
        resources: Sequence[Optional[Any]],
        labels: Optional[Sequence[str]] = None,
        resource: str = "resource",
    ) -> List[ResourceSlot]:
        """
        Stop every present handle concurrently.

        Absent handles are skipped; they count as already complete.
        Returns one slot per stop attempt.
        """
        present: List[Tuple[int, Any]] = [
            (index, handle) for index, handle in enumerate(resources) if handle is not None
        ]
        skipped = len(resources) - len(present)
        if skipped:
            logger.debug(f"Skipping {skipped} {resource}(s) that were never created")

        def describe(entry: Tuple[int, Any]) -> str:
            index, handle = entry
            if labels is not None and index < len(labels):
                return labels[index]
            return getattr(handle, "topic", f"#{index}")

        async def stop(entry: Tuple[int, Any]) -> None:
            await entry[1].stop()

        job: FanoutJob = FanoutJob(
            present,
            stop,
            events=self._events,
            describe=describe,
            resource=resource,
            action="stop",
        )
        await job.run()
        return job.slots

    async def close_session(self, session: BrokerSession) -> bool:
        try:
            await session.close()
        except Exception as e:
            if self._events is not None:
                self._events.emit(EventKind.SESSION_CLOSE_FAILED, "Session close failed", error=e)
            else:
                logger.error(f"Session close failed: {e}")
            return False
        logger.info("Logout complete")
        return True

    async def shutdown(
        self,
        resources: Sequence[Optional[Any]],
        session: BrokerSession,
        recorder: RunRecorder,
        labels: Optional[Sequence[str]] = None,
        resource: str = "resource",
        run_duration_ms: Optional[float] = None,
        messages_processed: Optional[int] = None,
        failures: Optional[int] = None,
    ) -> RunResult:
        await self.wait_for_pacers()
        await self.teardown(resources, labels=labels, resource=resource)
        await self.close_session(session)

        result = summarize(
            recorder.samples(),
            recorder.duration_ms if run_duration_ms is None else run_duration_ms,
            messages_processed=(
                recorder.messages_sent if messages_processed is None else messages_processed
            ),
            failures=recorder.send_failures if failures is None else failures,
        )

        if self._events is not None:
            self._events.emit(
                EventKind.SHUTDOWN_COMPLETE,
                "Shutdown complete",
                messages=result.messages_processed,
                failures=result.failures,
            )
        return result
