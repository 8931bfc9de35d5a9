"""
Broker client for a JSON-over-WebSocket pub/sub server.

PROTOCOL:
- Topics are created over REST (``POST /topics``); the server rejects
  publish/subscribe on unknown topics
- Requests (subscribe, unsubscribe, publish, ping) go over one WebSocket
- The server answers each request on a connection in order, with an
  ``ack``, ``error`` or ``pong`` frame, so replies are matched FIFO
- ``event`` frames are pushed for subscribed topics and may arrive
  between replies

LIMITS:
- Best-effort QoS only; GC/GD subscriptions are rejected
- Concrete topics only for subscriptions; a wildcard publication creates
  its leaf topics on first send
"""

import asyncio
import json
import logging
from collections import deque
from typing import TYPE_CHECKING, Any, Deque, Dict, List, Optional, Set, Tuple

import requests
import websockets
from pydantic import ValidationError

from ..exceptions import BrokerError
from ..models.messages import (
    AckMessage,
    ClientMessage,
    ErrorMessage,
    EventMessage,
    InfoMessage,
    MessageType,
    PingMessage,
    PongMessage,
    PublishMessage,
    ServerMessage,
    SubscribeMessage,
    UnsubscribeMessage,
)
from ..utils.validation import is_wildcard_topic
from .base import AckMode, MessageHandler, NotifyHandler, QoS, ReceivedMessage, SessionNotification

if TYPE_CHECKING:
    from ..config import RunConfig

logger = logging.getLogger(__name__)

_REPLY_TYPES = {MessageType.ACK.value, MessageType.ERROR.value, MessageType.PONG.value}


def endpoint_urls(endpoint: str) -> Tuple[str, str]:
    """Return the (websocket, REST) URLs for a ``host:port`` endpoint."""
    host = endpoint.rstrip("/")
    return f"ws://{host}/ws", f"http://{host}"


class WebSocketPublication:
    def __init__(self, session: "WebSocketSession", topic: str):
        self._session = session
        self.topic = topic

    async def send(self, topic: str, payload: Dict[str, Any]) -> None:
        await self._session.ensure_topic(topic)
        await self._session.request(PublishMessage(topic=topic, data=payload))

    async def stop(self) -> None:
        # Publications hold no server-side state.
        await asyncio.sleep(0)


class WebSocketSubscription:
    def __init__(
        self,
        session: "WebSocketSession",
        topic: str,
        ack_mode: AckMode,
        on_message: MessageHandler,
    ):
        self._session = session
        self.topic = topic
        self.qos = QoS.BEST_EFFORT
        self.ack_mode = ack_mode
        self._on_message = on_message

    def deliver(self, message: ReceivedMessage) -> None:
        try:
            self._on_message(message)
        except Exception as e:
            logger.error(f"Message handler failed on {self.topic}: {e}", exc_info=True)

    async def ack(self, message: ReceivedMessage) -> None:
        # The server has no delivery acknowledgments.
        await asyncio.sleep(0)

    async def stop(self) -> None:
        try:
            await self._session.request(UnsubscribeMessage(topic=self.topic))
        finally:
            self._session.forget_subscription(self.topic)


class WebSocketSession:
    def __init__(
        self,
        websocket: Any,
        api_url: str,
        endpoint: str,
        on_notify: Optional[NotifyHandler] = None,
        request_timeout: float = 5.0,
    ):
        self._ws = websocket
        self._api_url = api_url
        self.endpoint = endpoint
        self._on_notify = on_notify
        self._request_timeout = request_timeout
        self._pending: Deque[asyncio.Future] = deque()
        self._send_lock = asyncio.Lock()
        self._subscriptions: Dict[str, WebSocketSubscription] = {}
        self._known_topics: Set[str] = set()
        self._topic_lock = asyncio.Lock()
        self._reader_task: Optional[asyncio.Task] = None
        self._closing = False

    def start_reader(self) -> None:
        self._reader_task = asyncio.create_task(self._receive_loop())

    async def _receive_loop(self) -> None:
        try:
            async for raw in self._ws:
                self._handle_frame(raw)
        except websockets.exceptions.ConnectionClosed as e:
            logger.info(f"WebSocket to {self.endpoint} closed: {e}")
        finally:
            self._fail_pending(BrokerError("Connection closed", "CONNECTION_CLOSED"))
            if not self._closing and self._on_notify is not None:
                self._on_notify(SessionNotification.CONNECTION_LOST, self.endpoint)

    def _handle_frame(self, raw: Any) -> None:
        try:
            data = json.loads(raw)
        except json.JSONDecodeError:
            logger.warning(f"Ignoring non-JSON frame from {self.endpoint}")
            return

        if not isinstance(data, dict):
            logger.warning(f"Ignoring malformed frame from {self.endpoint}")
            return

        frame_type = data.get("type")
        try:
            if frame_type == MessageType.EVENT.value:
                self._route_event(EventMessage(**data))
            elif frame_type in _REPLY_TYPES:
                self._resolve_reply(data)
            elif frame_type == MessageType.INFO.value:
                logger.info(f"Server info: {InfoMessage(**data).message}")
            else:
                logger.warning(f"Unknown frame type from {self.endpoint}: {frame_type}")
        except ValidationError as e:
            logger.warning(f"Invalid {frame_type} frame from {self.endpoint}: {e}")

    def _route_event(self, event: EventMessage) -> None:
        subscription = self._subscriptions.get(event.topic)
        if subscription is None:
            logger.debug(f"Event for unsubscribed topic {event.topic}")
            return
        payload = event.data if isinstance(event.data, dict) else {"data": event.data}
        subscription.deliver(ReceivedMessage(
            topic=event.topic,
            payload=payload,
            message_id=event.message_id,
            subscription_topic=subscription.topic,
            subscription=subscription,
        ))

    def _resolve_reply(self, data: dict) -> None:
        frame_type = data.get("type")
        reply: ServerMessage
        if frame_type == MessageType.ERROR.value:
            reply = ErrorMessage(**data)
        elif frame_type == MessageType.ACK.value:
            reply = AckMessage(**data)
        else:
            reply = PongMessage(**data)

        if not self._pending:
            logger.warning(f"Unexpected {frame_type} frame with no request pending")
            return
        future = self._pending.popleft()
        if future.done():
            return
        if isinstance(reply, ErrorMessage):
            future.set_exception(BrokerError(reply.message, reply.code))
        else:
            future.set_result(data)

    def _discard_pending(self, future: asyncio.Future) -> None:
        if future in self._pending:
            self._pending.remove(future)
        future.cancel()

    def _fail_pending(self, error: BrokerError) -> None:
        while self._pending:
            future = self._pending.popleft()
            if not future.done():
                future.set_exception(error)

    async def request(self, message: ClientMessage) -> dict:
        """Send one request and wait for its reply."""
        if self._closing:
            raise BrokerError("Session is closed", "SESSION_CLOSED")

        future = asyncio.get_running_loop().create_future()
        async with self._send_lock:
            self._pending.append(future)
            try:
                await self._ws.send(message.model_dump_json())
            except websockets.exceptions.ConnectionClosed as e:
                self._discard_pending(future)
                raise BrokerError(f"Connection closed: {e}", "CONNECTION_CLOSED") from e
            except BaseException:
                # An unsent request must not claim the next reply.
                self._discard_pending(future)
                raise

        try:
            return await asyncio.wait_for(asyncio.shield(future), timeout=self._request_timeout)
        except asyncio.TimeoutError as e:
            raise BrokerError(
                f"No reply to {message.__class__.__name__} within {self._request_timeout}s",
                "TIMEOUT",
            ) from e

    async def ping(self) -> None:
        await self.request(PingMessage())

    async def ensure_topic(self, topic: str) -> None:
        if topic in self._known_topics:
            return
        async with self._topic_lock:
            if topic in self._known_topics:
                return
            await asyncio.to_thread(self._create_topic, topic)
            self._known_topics.add(topic)

    def _create_topic(self, topic: str) -> None:
        try:
            response = requests.post(
                f"{self._api_url}/topics",
                json={"name": topic},
                timeout=self._request_timeout,
            )
        except requests.RequestException as e:
            raise BrokerError(f"Topic create request failed: {e}", "TOPIC_CREATE_FAILED") from e
        if response.status_code != 201:
            raise BrokerError(
                f"Failed to create topic {topic}: {response.text}", "TOPIC_CREATE_FAILED"
            )

    def forget_subscription(self, topic: str) -> None:
        self._subscriptions.pop(topic, None)

    async def create_publication(self, topic: str) -> WebSocketPublication:
        if not is_wildcard_topic(topic):
            await self.ensure_topic(topic)
        return WebSocketPublication(self, topic)

    async def create_subscription(
        self,
        topic: str,
        qos: QoS,
        ack_mode: AckMode,
        name: Optional[str],
        on_message: MessageHandler,
    ) -> WebSocketSubscription:
        if qos != QoS.BEST_EFFORT:
            raise BrokerError(f"QoS {qos.value} is not supported", "QOS_UNSUPPORTED")
        if is_wildcard_topic(topic):
            raise BrokerError(
                f"Wildcard subscription on {topic} is not supported", "WILDCARD_UNSUPPORTED"
            )
        if topic in self._subscriptions:
            raise BrokerError(f"Already subscribed to {topic}", "ALREADY_SUBSCRIBED")

        await self.ensure_topic(topic)
        subscription = WebSocketSubscription(self, topic, ack_mode, on_message)
        self._subscriptions[topic] = subscription
        try:
            await self.request(SubscribeMessage(topic=topic, last_n=0))
        except BrokerError:
            self.forget_subscription(topic)
            raise
        return subscription

    async def close(self) -> None:
        self._closing = True
        try:
            await self._ws.close()
        finally:
            if self._reader_task is not None:
                self._reader_task.cancel()
                try:
                    await self._reader_task
                except asyncio.CancelledError:
                    pass


class WebSocketBroker:
    """Connects to the primary endpoint, falling back to the secondary one."""

    def __init__(self, open_timeout: float = 10.0, request_timeout: float = 5.0):
        self._open_timeout = open_timeout
        self._request_timeout = request_timeout

    async def connect(
        self,
        config: "RunConfig",
        on_notify: Optional[NotifyHandler] = None,
    ) -> WebSocketSession:
        endpoints: List[str] = [config.primary_endpoint]
        if config.secondary_endpoint:
            endpoints.append(config.secondary_endpoint)

        errors = []
        for endpoint in endpoints:
            ws_url, api_url = endpoint_urls(endpoint)
            try:
                websocket = await websockets.connect(ws_url, open_timeout=self._open_timeout)
            except (OSError, asyncio.TimeoutError, websockets.exceptions.WebSocketException) as e:
                logger.warning(f"Connect to {ws_url} failed: {e}")
                errors.append(f"{endpoint}: {e}")
                continue

            session = WebSocketSession(
                websocket,
                api_url,
                endpoint,
                on_notify=on_notify,
                request_timeout=self._request_timeout,
            )
            session.start_reader()
            try:
                await session.ping()
            except BrokerError as e:
                await session.close()
                errors.append(f"{endpoint}: {e}")
                continue

            if on_notify is not None:
                on_notify(SessionNotification.CONNECTION_INFO, endpoint)
            return session

        raise BrokerError("Connect failed: " + "; ".join(errors), "CONNECT_FAILED")
