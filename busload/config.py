import os
from enum import Enum
from typing import List, Mapping, Optional

from pydantic import BaseModel, Field, field_validator

from .broker.base import AckMode, QoS
from .utils.validation import validate_topic_name

ENV_PREFIX = "BUSLOAD_"

DEFAULT_BULK_TOPIC = "TEST.BULK.*"
DEFAULT_PING_TOPIC = "PING"


class RunMode(str, Enum):
    PUBLISH = "pub"
    SUBSCRIBE = "sub"
    PING = "ping"


class Transport(str, Enum):
    MEMORY = "memory"
    WEBSOCKET = "websocket"


class RunConfig(BaseModel):
    """Settings for one load-test run."""

    mode: RunMode = RunMode.PUBLISH
    transport: Transport = Transport.MEMORY

    username: Optional[str] = None
    password: Optional[str] = None
    primary_endpoint: str = Field(default="localhost:8000", min_length=1)
    secondary_endpoint: Optional[str] = None
    client_name: Optional[str] = None

    topics: List[str] = Field(default_factory=list)
    wc_topic_count: int = Field(default=1, ge=0)
    wc_topic_start: int = Field(default=0, ge=0)

    burst: int = Field(default=10, ge=1)
    delay_ms: float = Field(default=10, ge=0)
    duration_s: float = Field(default=30, gt=0)
    max_cycles: Optional[int] = Field(default=None, ge=1)
    drain_poll_ms: float = Field(default=100, gt=0)

    qos: QoS = QoS.BEST_EFFORT
    sub_name: Optional[str] = None
    ack_mode: AckMode = AckMode.AUTO

    ping_count: int = Field(default=100, ge=1)

    verbose: bool = False
    status_port: Optional[int] = Field(default=None, ge=0, le=65535)

    @field_validator("topics")
    @classmethod
    def check_topics(cls, topics: List[str]) -> List[str]:
        for topic in topics:
            if not validate_topic_name(topic):
                raise ValueError(
                    f"Invalid topic '{topic}'. Use alphanumeric, underscore, "
                    f"hyphen, dot or wildcard only."
                )
        return topics

    @field_validator("secondary_endpoint", "client_name", "sub_name", mode="before")
    @classmethod
    def blank_to_none(cls, value):
        if isinstance(value, str) and not value.strip():
            return None
        return value

    def topic_list(self) -> List[str]:
        """Configured topics, or the mode's default topic."""
        if self.topics:
            return list(self.topics)
        if self.mode == RunMode.PING:
            return [DEFAULT_PING_TOPIC]
        return [DEFAULT_BULK_TOPIC]

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None, **overrides) -> "RunConfig":
        """
        Build a config from ``BUSLOAD_<FIELD>`` environment variables.

        ``BUSLOAD_TOPICS`` is a ``:``-separated list, e.g.
        ``TEST.BULK.*:TEST.OTHER``. Keyword overrides win over the
        environment.
        """
        env = os.environ if environ is None else environ
        values = {}
        for name in cls.model_fields:
            raw = env.get(f"{ENV_PREFIX}{name.upper()}")
            if raw is None:
                continue
            if name == "topics":
                values[name] = [t for t in raw.split(":") if t]
            else:
                values[name] = raw
        values.update(overrides)
        return cls(**values)
