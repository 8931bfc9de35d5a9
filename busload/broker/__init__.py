from typing import TYPE_CHECKING

from .base import (
    AckMode,
    BrokerClient,
    BrokerError,
    BrokerSession,
    Publication,
    QoS,
    ReceivedMessage,
    SessionNotification,
    Subscription,
)
from .memory import MemoryBroker
from .websocket import WebSocketBroker

if TYPE_CHECKING:
    from ..config import RunConfig


def create_broker(config: "RunConfig") -> BrokerClient:
    """Broker client for the configured transport."""
    from ..config import Transport

    if config.transport == Transport.WEBSOCKET:
        return WebSocketBroker()
    return MemoryBroker()


__all__ = [
    "AckMode",
    "BrokerClient",
    "BrokerError",
    "BrokerSession",
    "MemoryBroker",
    "Publication",
    "QoS",
    "ReceivedMessage",
    "SessionNotification",
    "Subscription",
    "WebSocketBroker",
    "create_broker",
]
