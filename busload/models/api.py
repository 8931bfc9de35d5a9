from pydantic import BaseModel, Field
from typing import Any, Dict, List, Optional


class HealthResponse(BaseModel):
    status: str = "healthy"
    mode: str
    phase: str
    uptime_seconds: float
    live_pacers: int = 0


class StatsResponse(BaseModel):
    messages_sent: int = 0
    send_failures: int = 0
    messages_outstanding: int = 0
    messages_received: int = 0
    latency_samples: int = 0
    resources_created: int = 0
    resources_failed: int = 0
    elapsed_ms: float = 0.0


class EventResponse(BaseModel):
    kind: str
    message: str
    timestamp: float
    topic: Optional[str] = None
    error: Optional[str] = None
    details: Dict[str, Any] = Field(default_factory=dict)


class EventsResponse(BaseModel):
    total: int
    events: List[EventResponse]
