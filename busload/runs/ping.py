import asyncio
import logging
from typing import Optional

from ..broker.base import ReceivedMessage
from ..config import RunMode
from ..events import EventKind
from ..metrics.statistics import summarize
from ..models.results import RunResult
from ..orchestration.fanout import FanoutJob
from ..orchestration.pacer import BurstPacer
from ..orchestration.shutdown import ShutdownCoordinator
from .base import LoadRun, RunPhase
from .subscriber import embedded_send_time

logger = logging.getLogger(__name__)


class PingRun(LoadRun):
    """
    Round-trip latency on a single topic.

    Subscribes first, then publishes ``ping_count`` messages ``delay_ms``
    apart and measures each one's time back to the subscription. Ends when
    every message came back or the duration elapses; the publication is
    stopped before the subscription.
    """

    mode = RunMode.PING

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.topic = self.config.topic_list()[0]
        self.pacer: Optional[BurstPacer] = None
        self._all_received = asyncio.Event()

    async def run(self) -> RunResult:
        session = await self._connect()
        coordinator = ShutdownCoordinator(
            events=self.events,
            live_pacers=self.live_pacers,
            poll_interval_ms=self.config.drain_poll_ms,
        )

        self.phase = RunPhase.CREATING
        sub_job = FanoutJob(
            [self.topic],
            lambda topic: session.create_subscription(
                topic, self.config.qos, self.config.ack_mode, self.config.sub_name, self._on_message
            ),
            events=self.events,
            resource="subscription",
        )
        subscription = (await sub_job.run())[0]
        self._tally(sub_job)

        publication = None
        if subscription is not None:
            pub_job = FanoutJob(
                [self.topic],
                session.create_publication,
                events=self.events,
                resource="publication",
            )
            publication = (await pub_job.run())[0]
            self._tally(pub_job)

        if publication is not None:
            self.pacer = BurstPacer(
                publication,
                self.topic,
                self.outstanding,
                burst_size=1,
                delay_ms=self.config.delay_ms,
                live_pacers=self.live_pacers,
                recorder=self.recorder,
                events=self.events,
                max_cycles=self.config.ping_count,
                drain_poll_ms=self.config.drain_poll_ms,
            )

            self.phase = RunPhase.RUNNING
            self.events.emit(
                EventKind.TEST_STARTED,
                f"Sending {self.config.ping_count} messages on {self.topic}",
            )
            self.recorder.mark_started()
            self.pacer.start()
            await self._wait_for_deadline(self._all_received.wait())
            self.recorder.mark_stopped()
            self.events.emit(EventKind.TEST_COMPLETE, "Test completed, shutting down...")
            self.pacer.stop()

        self.phase = RunPhase.SHUTTING_DOWN
        await coordinator.wait_for_pacers()
        await coordinator.teardown([publication], labels=[self.topic], resource="publication")
        await coordinator.teardown([subscription], labels=[self.topic], resource="subscription")
        await coordinator.close_session(session)

        self.result = summarize(
            self.recorder.samples(),
            self.recorder.duration_ms,
            messages_processed=self.recorder.messages_received,
            failures=self.recorder.send_failures,
        )
        self.events.emit(
            EventKind.SHUTDOWN_COMPLETE,
            "Shutdown complete",
            messages=self.result.messages_processed,
            failures=self.result.failures,
        )
        self.phase = RunPhase.COMPLETE

        logger.info(
            f"Latency results (ms): count:{self.result.count} min:{self.result.min_ms:.3f} "
            f"max:{self.result.max_ms:.3f} mean:{self.result.mean_ms:.3f} "
            f"runtime:{self.result.total_duration_ms:.0f}"
        )
        return self.result

    def _on_message(self, message: ReceivedMessage) -> None:
        self.recorder.record_receive(
            send_time_ms=embedded_send_time(message.payload),
            received_ms=message.received_ms,
        )
        if self.config.verbose:
            logger.debug(f"RX: {self.recorder.messages_received} on {message.topic}")
        if self.recorder.messages_received >= self.config.ping_count:
            self._all_received.set()
