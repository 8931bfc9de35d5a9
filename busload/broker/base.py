"""
Broker client boundary.

The orchestration engine only talks to a message bus through these
protocols. Sessions, QoS semantics, the wire format and acknowledgment
delivery belong to the implementation behind them.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any, Callable, Dict, Optional, Protocol

from ..exceptions import BrokerError

if TYPE_CHECKING:
    from ..config import RunConfig


class QoS(str, Enum):
    BEST_EFFORT = "BE"
    GUARANTEED_CONNECTION = "GC"
    GUARANTEED_DELIVERY = "GD"


class AckMode(str, Enum):
    AUTO = "auto"
    MANUAL = "manual"


class SessionNotification(str, Enum):
    CONNECTION_INFO = "connection-info"
    CONNECTION_LOST = "connection-lost"
    CONNECTION_RESTORED = "connection-restored"
    GDS_LOST = "gds-lost"
    GDS_RESTORED = "gds-restored"


@dataclass
class ReceivedMessage:
    topic: str
    payload: Dict[str, Any]
    message_id: Optional[str] = None
    subscription_topic: Optional[str] = None
    received_ms: Optional[float] = None
    metadata: Dict[str, Any] = field(default_factory=dict)
    # Subscription that delivered the message; the target for ack().
    subscription: Optional["Subscription"] = field(default=None, repr=False)


MessageHandler = Callable[[ReceivedMessage], None]
NotifyHandler = Callable[[SessionNotification, str], None]


class Publication(Protocol):
    topic: str

    async def send(self, topic: str, payload: Dict[str, Any]) -> None: ...

    async def stop(self) -> None: ...


class Subscription(Protocol):
    topic: str
    qos: QoS

    async def ack(self, message: ReceivedMessage) -> None: ...

    async def stop(self) -> None: ...


class BrokerSession(Protocol):
    async def create_publication(self, topic: str) -> Publication: ...

    async def create_subscription(
        self,
        topic: str,
        qos: QoS,
        ack_mode: AckMode,
        name: Optional[str],
        on_message: MessageHandler,
    ) -> Subscription: ...

    async def close(self) -> None: ...


class BrokerClient(Protocol):
    async def connect(
        self,
        config: "RunConfig",
        on_notify: Optional[NotifyHandler] = None,
    ) -> BrokerSession: ...


__all__ = [
    "AckMode",
    "BrokerClient",
    "BrokerError",
    "BrokerSession",
    "MessageHandler",
    "NotifyHandler",
    "Publication",
    "QoS",
    "ReceivedMessage",
    "SessionNotification",
    "Subscription",
]
