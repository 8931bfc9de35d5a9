"""
In-process loopback broker.

Implements the broker client protocols against an in-memory subscription registry
so runs can be exercised without a network. Failure injection knobs let
tests drive the per-resource, per-send and session-level failure paths.
"""

import asyncio
import logging
from threading import Lock
from typing import TYPE_CHECKING, Any, Dict, Iterable, List, Optional
from uuid import UUID, uuid4

from ..exceptions import BrokerError
from ..topics.matching import topic_matches
from .base import AckMode, MessageHandler, NotifyHandler, QoS, ReceivedMessage, SessionNotification

if TYPE_CHECKING:
    from ..config import RunConfig

logger = logging.getLogger(__name__)


class MemoryPublication:
    def __init__(self, session: "MemorySession", topic: str):
        self._session = session
        self.topic = topic
        self._stopped = False

    async def send(self, topic: str, payload: Dict[str, Any]) -> None:
        if self._stopped:
            raise BrokerError(f"Publication on {self.topic} is stopped", "PUBLICATION_STOPPED")
        self._session.ensure_open()
        if not topic_matches(self.topic, topic):
            raise BrokerError(
                f"Topic '{topic}' is outside publication '{self.topic}'", "TOPIC_MISMATCH"
            )

        broker = self._session.broker
        await broker.simulate_latency()
        if broker.next_send_fails():
            raise BrokerError(f"Send rejected on {topic}", "SEND_FAILED")
        broker.publish(topic, payload)

    async def stop(self) -> None:
        await asyncio.sleep(0)
        self._session.broker.check_stop(self.topic)
        self._stopped = True


class MemorySubscription:
    """
    One subscription with its own delivery worker.

    Messages matching the subscription pattern are queued and handed to
    ``on_message`` in publish order. With manual ack mode, delivered
    message ids stay outstanding until ``ack()``.
    """

    def __init__(
        self,
        session: "MemorySession",
        topic: str,
        qos: QoS,
        ack_mode: AckMode,
        name: Optional[str],
        on_message: MessageHandler,
    ):
        self.subscription_id: UUID = uuid4()
        self._session = session
        self.topic = topic
        self.qos = qos
        self.ack_mode = ack_mode
        self.name = name
        self._on_message = on_message
        self._queue: asyncio.Queue = asyncio.Queue()
        self._delivery_task: Optional[asyncio.Task] = None
        self._unacked: Dict[str, ReceivedMessage] = {}
        self._lock = Lock()
        self._running = False
        self.delivered = 0

    def start_delivery_worker(self) -> None:
        if not self._running:
            self._running = True
            self._delivery_task = asyncio.create_task(self._delivery_worker())

    async def stop_delivery_worker(self) -> None:
        if self._running:
            self._running = False
            if self._delivery_task:
                self._delivery_task.cancel()
                try:
                    await self._delivery_task
                except asyncio.CancelledError:
                    pass

    def enqueue(self, message: ReceivedMessage) -> None:
        if self._running:
            self._queue.put_nowait(message)

    async def _delivery_worker(self) -> None:
        while self._running:
            message = await self._queue.get()
            if self.ack_mode == AckMode.MANUAL and message.message_id:
                with self._lock:
                    self._unacked[message.message_id] = message
            self.delivered += 1
            try:
                self._on_message(message)
            except Exception as e:
                logger.error(f"Message handler failed on {self.topic}: {e}", exc_info=True)

    def unacked_count(self) -> int:
        with self._lock:
            return len(self._unacked)

    async def ack(self, message: ReceivedMessage) -> None:
        await asyncio.sleep(0)
        if self.ack_mode != AckMode.MANUAL:
            return
        with self._lock:
            if self._unacked.pop(message.message_id or "", None) is None:
                raise BrokerError(
                    f"Message {message.message_id} is not awaiting ack", "ACK_UNKNOWN"
                )

    async def stop(self) -> None:
        await asyncio.sleep(0)
        self._session.broker.check_stop(self.topic)
        self._session.broker.remove_subscription(self.subscription_id)
        await self.stop_delivery_worker()


class MemorySession:
    def __init__(self, broker: "MemoryBroker", name: Optional[str]):
        self.broker = broker
        self.name = name
        self.closed = False
        self._subscriptions: List[MemorySubscription] = []

    def ensure_open(self) -> None:
        if self.closed:
            raise BrokerError("Session is closed", "SESSION_CLOSED")

    async def create_publication(self, topic: str) -> MemoryPublication:
        self.ensure_open()
        await asyncio.sleep(0)
        if self.broker.create_fails(topic):
            raise BrokerError(f"Cannot create publication on {topic}", "CREATE_FAILED")
        return MemoryPublication(self, topic)

    async def create_subscription(
        self,
        topic: str,
        qos: QoS,
        ack_mode: AckMode,
        name: Optional[str],
        on_message: MessageHandler,
    ) -> MemorySubscription:
        self.ensure_open()
        await asyncio.sleep(0)
        if self.broker.create_fails(topic):
            raise BrokerError(f"Cannot create subscription on {topic}", "CREATE_FAILED")
        if qos == QoS.GUARANTEED_DELIVERY and not name:
            raise BrokerError("GD subscriptions require a subscription name", "NAME_REQUIRED")

        subscription = MemorySubscription(self, topic, qos, ack_mode, name, on_message)
        subscription.start_delivery_worker()
        self.broker.add_subscription(subscription)
        self._subscriptions.append(subscription)
        return subscription

    async def close(self) -> None:
        await asyncio.sleep(0)
        if self.broker.fail_close:
            raise BrokerError("Logout failed", "CLOSE_FAILED")
        for subscription in self._subscriptions:
            self.broker.remove_subscription(subscription.subscription_id)
            await subscription.stop_delivery_worker()
        self.closed = True


class MemoryBroker:
    """
    Loopback broker with a subscription registry shared by all of its sessions.

    CONCURRENCY STRATEGY:
    - One registry lock for message counts and subscription bookkeeping
    - Delivery happens on per-subscription worker tasks
    """

    def __init__(
        self,
        send_latency: float = 0.0,
        fail_connect: bool = False,
        fail_create_topics: Iterable[str] = (),
        fail_every_nth_send: int = 0,
        fail_stop_topics: Iterable[str] = (),
        fail_close: bool = False,
    ):
        self._message_counts: Dict[str, int] = {}
        self._subscriptions: Dict[UUID, MemorySubscription] = {}
        self._global_lock = Lock()
        self.send_latency = send_latency
        self.fail_connect = fail_connect
        self.fail_create_topics = set(fail_create_topics)
        self.fail_every_nth_send = fail_every_nth_send
        self.fail_stop_topics = set(fail_stop_topics)
        self.fail_close = fail_close
        self.send_attempts = 0
        self.sessions: List[MemorySession] = []

    async def connect(
        self,
        config: "RunConfig",
        on_notify: Optional[NotifyHandler] = None,
    ) -> MemorySession:
        await asyncio.sleep(0)
        if self.fail_connect:
            raise BrokerError(f"Connection to {config.primary_endpoint} refused", "CONNECT_FAILED")

        session = MemorySession(self, config.client_name)
        self.sessions.append(session)
        if on_notify is not None:
            on_notify(SessionNotification.CONNECTION_INFO, config.primary_endpoint)
        return session

    # Failure injection

    def create_fails(self, topic: str) -> bool:
        return topic in self.fail_create_topics

    def check_stop(self, topic: str) -> None:
        if topic in self.fail_stop_topics:
            raise BrokerError(f"Cannot stop resource on {topic}", "STOP_FAILED")

    def next_send_fails(self) -> bool:
        with self._global_lock:
            self.send_attempts += 1
            attempt = self.send_attempts
        return self.fail_every_nth_send > 0 and attempt % self.fail_every_nth_send == 0

    async def simulate_latency(self) -> None:
        await asyncio.sleep(self.send_latency)

    # Registry

    def add_subscription(self, subscription: MemorySubscription) -> None:
        with self._global_lock:
            self._subscriptions[subscription.subscription_id] = subscription

    def remove_subscription(self, subscription_id: UUID) -> bool:
        with self._global_lock:
            return self._subscriptions.pop(subscription_id, None) is not None

    def publish(self, topic_name: str, payload: Dict[str, Any]) -> int:
        """Count a message and queue it for every matching subscription."""
        message_id = str(uuid4())
        with self._global_lock:
            self._message_counts[topic_name] = self._message_counts.get(topic_name, 0) + 1
            subscriptions = list(self._subscriptions.values())

        delivered = 0
        for subscription in subscriptions:
            if topic_matches(subscription.topic, topic_name):
                subscription.enqueue(ReceivedMessage(
                    topic=topic_name,
                    payload=payload,
                    message_id=message_id,
                    subscription_topic=subscription.topic,
                    subscription=subscription,
                ))
                delivered += 1
        return delivered

    def message_count(self, topic_name: str) -> int:
        with self._global_lock:
            return self._message_counts.get(topic_name, 0)

    def subscription_count(self) -> int:
        with self._global_lock:
            return len(self._subscriptions)
