import itertools
import logging
from typing import List

from ..config import RunMode
from ..events import EventKind
from ..models.results import RunResult
from ..orchestration.fanout import FanoutJob
from ..orchestration.pacer import BurstPacer
from ..orchestration.shutdown import ShutdownCoordinator
from ..utils.time_utils import format_clock, get_current_timestamp
from .base import LoadRun, RunPhase

logger = logging.getLogger(__name__)


class PublisherRun(LoadRun):
    """
    Burst publishing against one publication per configured topic.

    FLOW:
    1. Connect and create all publications concurrently
    2. Start one burst pacer per created publication
    3. After the test duration, stop the pacers and let sends drain
    4. Stop publications, close the session, summarize
    """

    mode = RunMode.PUBLISH

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.pacers: List[BurstPacer] = []

    async def run(self) -> RunResult:
        topics = self.config.topic_list()
        session = await self._connect()

        self.phase = RunPhase.CREATING
        job = FanoutJob(
            topics,
            session.create_publication,
            events=self.events,
            resource="publication",
        )
        publications = await job.run()
        self._tally(job)

        sequence = itertools.count(1)
        self.pacers = [
            BurstPacer(
                publication,
                topic,
                self.outstanding,
                burst_size=self.config.burst,
                delay_ms=self.config.delay_ms,
                wc_topic_count=self.config.wc_topic_count,
                wc_topic_start=self.config.wc_topic_start,
                live_pacers=self.live_pacers,
                recorder=self.recorder,
                events=self.events,
                sequence=sequence,
                max_cycles=self.config.max_cycles,
                drain_poll_ms=self.config.drain_poll_ms,
            )
            for publication, topic in zip(publications, topics)
            if publication is not None
        ]

        self.phase = RunPhase.RUNNING
        end = format_clock(get_current_timestamp() + self.config.duration_s)
        self.events.emit(
            EventKind.TEST_STARTED,
            f"Starting test run for {self.config.duration_s:g} seconds, "
            f"will end at {end}",
            publications=len(self.pacers),
        )
        self.recorder.mark_started()
        for pacer in self.pacers:
            pacer.start()

        await self._wait_for_deadline(self.live_pacers.wait_for_zero())
        self.recorder.mark_stopped()
        self.events.emit(EventKind.TEST_COMPLETE, "Test completed, shutting down...")

        for pacer in self.pacers:
            pacer.stop()

        self.phase = RunPhase.SHUTTING_DOWN
        coordinator = ShutdownCoordinator(
            events=self.events,
            live_pacers=self.live_pacers,
            poll_interval_ms=self.config.drain_poll_ms,
        )
        self.result = await coordinator.shutdown(
            publications,
            session,
            self.recorder,
            labels=topics,
            resource="publication",
        )
        self.phase = RunPhase.COMPLETE

        logger.info(
            f"Done. Sent a total of {self.recorder.messages_sent} messages, "
            f"{self.recorder.send_failures} errors "
            f"({self.result.messages_per_second:.3f} MPS)"
        )
        return self.result
