import pytest
from fastapi.testclient import TestClient

from busload.api import create_status_app
from busload.broker import MemoryBroker
from busload.config import RunConfig
from busload.events import EventKind
from busload.runs import PublisherRun


@pytest.fixture
def load_run():
    return PublisherRun(RunConfig(), MemoryBroker())


@pytest.fixture
def client(load_run):
    return TestClient(create_status_app(load_run))


def test_health(client):
    response = client.get("/health")
    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "healthy"
    assert body["mode"] == "pub"
    assert body["phase"] == "idle"
    assert body["live_pacers"] == 0


def test_stats_reflect_recorder(client, load_run):
    load_run.recorder.record_send(True)
    load_run.recorder.record_send(True)
    load_run.recorder.record_send(False)
    load_run.recorder.add_latency(1.5)

    body = client.get("/stats").json()
    assert body["messages_sent"] == 2
    assert body["send_failures"] == 1
    assert body["latency_samples"] == 1
    assert body["messages_outstanding"] == 0


def test_recent_events(client, load_run):
    load_run.events.emit(EventKind.CONNECTED, "Connected")
    load_run.events.emit(EventKind.RESOURCE_FAILED, "Error creating publication", topic="T1")
    load_run.events.emit(EventKind.TEST_STARTED, "Starting test run")

    body = client.get("/events", params={"last_n": 2}).json()
    assert body["total"] == 3
    assert [e["kind"] for e in body["events"]] == ["resource_failed", "test_started"]
    assert body["events"][0]["topic"] == "T1"


def test_events_last_n_must_be_positive(client):
    assert client.get("/events", params={"last_n": 0}).status_code == 422
