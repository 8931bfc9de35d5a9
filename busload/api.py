"""
Read-only HTTP status for a run in progress.

GET /health  - mode, phase, uptime
GET /stats   - live send/receive counters
GET /events  - most recent diagnostic events
"""

from fastapi import FastAPI, Query

from .models.api import EventResponse, EventsResponse, HealthResponse, StatsResponse
from .runs.base import LoadRun, RunPhase
from .utils.time_utils import get_current_timestamp


def create_status_app(load_run: LoadRun) -> FastAPI:
    start_time = get_current_timestamp()

    app = FastAPI(
        title="busload status",
        description="Live counters and diagnostics for a pub/sub load test",
        version="1.0.0",
    )

    @app.get("/health", response_model=HealthResponse)
    async def health_check() -> HealthResponse:
        status = "failed" if load_run.phase == RunPhase.ABORTED else "healthy"
        return HealthResponse(
            status=status,
            mode=load_run.mode.value,
            phase=load_run.phase.value,
            uptime_seconds=get_current_timestamp() - start_time,
            live_pacers=load_run.live_pacers.value,
        )

    @app.get("/stats", response_model=StatsResponse)
    async def get_stats() -> StatsResponse:
        recorder = load_run.recorder
        return StatsResponse(
            messages_sent=recorder.messages_sent,
            send_failures=recorder.send_failures,
            messages_outstanding=load_run.outstanding.value,
            messages_received=recorder.messages_received,
            latency_samples=recorder.sample_count(),
            resources_created=load_run.resources_created,
            resources_failed=load_run.resources_failed,
            elapsed_ms=recorder.duration_ms,
        )

    @app.get("/events", response_model=EventsResponse)
    async def get_events(last_n: int = Query(default=50, ge=1, le=1000)) -> EventsResponse:
        events = load_run.events.recent(last_n)
        return EventsResponse(
            total=load_run.events.total(),
            events=[
                EventResponse(
                    kind=event.kind.value,
                    message=event.message,
                    timestamp=event.timestamp,
                    topic=event.topic,
                    error=event.error,
                    details=event.details,
                )
                for event in events
            ],
        )

    return app
