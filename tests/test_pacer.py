import asyncio
import itertools

import pytest

from busload.events import EventKind
from busload.metrics.recorder import RunRecorder
from busload.orchestration import BurstPacer, OutstandingCounter, PacerState

from .fakes import FakePublication


@pytest.mark.asyncio
async def test_burst_count_times_cycles_sends():
    publication = FakePublication("TEST.BULK")
    outstanding = OutstandingCounter()
    pacer = BurstPacer(publication, "TEST.BULK", outstanding, burst_size=5, delay_ms=0, max_cycles=2)

    await pacer.run()

    assert pacer.cycles == 2
    assert pacer.messages_issued == 10
    assert len(publication.sent) == 10
    assert outstanding.value == 0
    assert pacer.state == PacerState.DONE


@pytest.mark.asyncio
async def test_drains_in_flight_sends_before_done():
    gate = asyncio.Event()
    publication = FakePublication("TEST.BULK", gate=gate)
    outstanding = OutstandingCounter()
    live = OutstandingCounter()
    pacer = BurstPacer(
        publication, "TEST.BULK", outstanding,
        burst_size=5, delay_ms=0, live_pacers=live, max_cycles=1, drain_poll_ms=10,
    )

    pacer.start()
    await asyncio.sleep(0.05)

    assert pacer.state == PacerState.DRAINING
    assert outstanding.value == 5
    assert live.value == 1

    gate.set()
    await asyncio.wait_for(pacer.wait_done(), timeout=1)

    assert pacer.state == PacerState.DONE
    assert outstanding.value == 0
    assert live.value == 0
    assert len(publication.sent) == 5


@pytest.mark.asyncio
async def test_failed_sends_are_tallied_and_do_not_stop_the_pacer(events):
    publication = FakePublication("TEST.BULK", fail_when=lambda attempt: attempt % 3 == 0)
    recorder = RunRecorder()
    pacer = BurstPacer(
        publication, "TEST.BULK", OutstandingCounter(),
        burst_size=3, delay_ms=0, recorder=recorder, events=events, max_cycles=3,
    )

    await pacer.run()

    assert publication.attempts == 9
    assert recorder.messages_sent == 6
    assert recorder.send_failures == 3
    failures = events.of_kind(EventKind.SEND_FAILED)
    assert len(failures) == 3
    assert all(e.topic == "TEST.BULK" for e in failures)


@pytest.mark.asyncio
async def test_stop_finishes_the_current_burst_only():
    publication = FakePublication("TEST.BULK")
    pacer = BurstPacer(publication, "TEST.BULK", OutstandingCounter(), burst_size=4, delay_ms=1000)

    task = pacer.start()
    await asyncio.sleep(0.05)
    pacer.stop()
    await asyncio.wait_for(task, timeout=1)

    assert pacer.cycles == 1
    assert len(publication.sent) == 4
    assert pacer.state == PacerState.DONE


@pytest.mark.asyncio
async def test_wildcard_publication_rotates_leaves():
    publication = FakePublication("TEST.BULK.*")
    pacer = BurstPacer(
        publication, "TEST.BULK.*", OutstandingCounter(),
        burst_size=5, delay_ms=0, wc_topic_count=3, wc_topic_start=10, max_cycles=1,
    )

    await pacer.run()

    topics = publication.attempted_topics
    assert topics == [
        "TEST.BULK.T10", "TEST.BULK.T11", "TEST.BULK.T12",
        "TEST.BULK.T10", "TEST.BULK.T11",
    ]


@pytest.mark.asyncio
async def test_every_burst_restarts_at_first_leaf():
    publication = FakePublication("W.*")
    pacer = BurstPacer(
        publication, "W.*", OutstandingCounter(),
        burst_size=2, delay_ms=0, wc_topic_count=3, max_cycles=2,
    )

    await pacer.run()

    assert publication.attempted_topics == ["W.T0", "W.T1", "W.T0", "W.T1"]


@pytest.mark.asyncio
async def test_payload_carries_topic_sequence_and_send_time():
    publication = FakePublication("TEST.BULK")
    sequence = itertools.count(1)
    pacer = BurstPacer(
        publication, "TEST.BULK", OutstandingCounter(),
        burst_size=3, delay_ms=0, sequence=sequence, max_cycles=1,
    )

    await pacer.run()

    payloads = [payload for _, payload in publication.sent]
    assert sorted(p["message_count"] for p in payloads) == [1, 2, 3]
    assert all(p["publication_topic"] == "TEST.BULK" for p in payloads)
    assert all(p["send_time_ms"] > 0 for p in payloads)
    assert next(sequence) == 4


@pytest.mark.asyncio
async def test_pacer_cannot_run_twice():
    pacer = BurstPacer(FakePublication("T"), "T", OutstandingCounter(), burst_size=1, max_cycles=1)
    await pacer.run()
    with pytest.raises(RuntimeError):
        await pacer.run()
