import logging

from busload.events import EventKind, EventLog


def test_emit_records_and_notifies():
    log = EventLog()
    seen = []
    log.add_listener(seen.append)

    event = log.emit(
        EventKind.RESOURCE_FAILED, "Error creating publication", topic="T1",
        error=ValueError("boom"), index=1,
    )

    assert seen == [event]
    assert event.error == "boom"
    assert event.details == {"index": 1}
    assert log.of_kind(EventKind.RESOURCE_FAILED) == [event]


def test_history_is_bounded_but_total_keeps_counting():
    log = EventLog(history_size=3)
    for i in range(5):
        log.emit(EventKind.SEND_FAILED, f"send {i}")

    assert [e.message for e in log.recent(10)] == ["send 2", "send 3", "send 4"]
    assert log.total() == 5


def test_failing_listener_does_not_block_others(caplog):
    log = EventLog()
    seen = []

    def broken(event):
        raise RuntimeError("listener bug")

    log.add_listener(broken)
    log.add_listener(seen.append)

    with caplog.at_level(logging.ERROR):
        log.emit(EventKind.CONNECTED, "Connected")

    assert len(seen) == 1
    assert "listener bug" in caplog.text


def test_log_level_follows_event_kind(caplog):
    log = EventLog()
    with caplog.at_level(logging.DEBUG, logger="busload.events"):
        log.emit(EventKind.CONNECT_FAILED, "Connect failed")
        log.emit(EventKind.SESSION_CLOSE_FAILED, "Session close failed")
        log.emit(EventKind.SEND_FAILED, "Error sending on T")

    levels = [record.levelno for record in caplog.records]
    assert levels == [logging.ERROR, logging.WARNING, logging.DEBUG]
