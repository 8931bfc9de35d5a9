import asyncio
import logging
from functools import partial
from typing import Any, Dict, List, Optional, Set

from ..broker.base import AckMode, BrokerSession, ReceivedMessage, Subscription
from ..config import RunMode
from ..events import EventKind
from ..models.results import RunResult
from ..orchestration.fanout import FanoutJob
from ..orchestration.shutdown import ShutdownCoordinator
from ..topics.expander import expand_all
from .base import LoadRun, RunPhase

logger = logging.getLogger(__name__)


def embedded_send_time(payload: Dict[str, Any]) -> Optional[float]:
    value = payload.get("send_time_ms") if isinstance(payload, dict) else None
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return float(value)
    return None


class SubscriberRun(LoadRun):
    """
    Receive-side run over every expanded topic.

    Each wildcard pattern expands to ``wc_topic_count`` discrete topics
    (``TEST.BULK.*`` with start 10 and count 20 subscribes to
    ``TEST.BULK.T10`` through ``TEST.BULK.T29``); a count of 0 subscribes
    to the wildcard topic itself. Throughput is measured over the window
    between the first and last received message.
    """

    mode = RunMode.SUBSCRIBE

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.topics: List[str] = []
        self._ack_tasks: Set[asyncio.Future] = set()

    async def run(self) -> RunResult:
        self.topics = expand_all(
            self.config.topic_list(),
            self.config.wc_topic_count,
            self.config.wc_topic_start,
        )
        session = await self._connect()

        self.phase = RunPhase.CREATING
        job = FanoutJob(
            self.topics,
            partial(self._create_subscription, session),
            events=self.events,
            resource=f"{self.config.qos.value} subscription",
        )
        subscriptions = await job.run()
        self._tally(job)

        self.phase = RunPhase.RUNNING
        self.events.emit(
            EventKind.TEST_STARTED,
            f"Starting test run for {self.config.duration_s:g} seconds",
            subscriptions=self.resources_created,
        )
        self.recorder.mark_started()
        await self._wait_for_deadline()
        self.recorder.mark_stopped()
        self.events.emit(EventKind.TEST_COMPLETE, "Test completed, shutting down...")

        self.phase = RunPhase.SHUTTING_DOWN
        await self.outstanding.wait_for_zero(self.config.drain_poll_ms / 1000.0)

        coordinator = ShutdownCoordinator(
            events=self.events,
            poll_interval_ms=self.config.drain_poll_ms,
        )
        self.result = await coordinator.shutdown(
            subscriptions,
            session,
            self.recorder,
            labels=self.topics,
            resource="subscription",
            run_duration_ms=self.recorder.receive_window_ms,
            messages_processed=self.recorder.messages_received,
            failures=self.recorder.ack_failures,
        )
        self.phase = RunPhase.COMPLETE

        logger.info(
            f"Done. Received a total of {self.recorder.messages_received} messages "
            f"({self.result.messages_per_second:.3f} MPS)"
        )
        return self.result

    async def _create_subscription(self, session: BrokerSession, topic: str) -> Subscription:
        return await session.create_subscription(
            topic,
            self.config.qos,
            self.config.ack_mode,
            self.config.sub_name,
            self._on_message,
        )

    def _on_message(self, message: ReceivedMessage) -> None:
        self.recorder.record_receive(
            send_time_ms=embedded_send_time(message.payload),
            received_ms=message.received_ms,
        )

        if self.config.verbose:
            logger.debug(f"  Processing message {message.topic}")
            for name, value in message.payload.items():
                logger.debug(f"  => {type(value).__name__:<8} : {name} = {value}")

        if self.config.ack_mode != AckMode.MANUAL:
            return
        if message.subscription is None:
            self.recorder.record_ack_failure()
            self.events.emit(
                EventKind.ACK_FAILED,
                f"Message on {message.topic} arrived without a subscription to ACK",
                topic=message.topic,
            )
            return

        self.outstanding.increment()
        task = asyncio.ensure_future(message.subscription.ack(message))
        self._ack_tasks.add(task)
        task.add_done_callback(partial(self._on_acked, message))

    def _on_acked(self, message: ReceivedMessage, task: asyncio.Future) -> None:
        self._ack_tasks.discard(task)
        error = None if task.cancelled() else task.exception()
        if error is not None:
            self.recorder.record_ack_failure()
            self.events.emit(
                EventKind.ACK_FAILED,
                f"Message ACK error on {message.topic}",
                topic=message.topic,
                error=error,
            )
        else:
            logger.debug(f"Message ACK complete on {message.topic}")
        self.outstanding.decrement()
