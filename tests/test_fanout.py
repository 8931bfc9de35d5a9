import asyncio

import pytest

from busload.events import EventKind
from busload.exceptions import BrokerError
from busload.orchestration import FanoutJob, fanout


def make_op(failing, delays=None):
    async def op(topic):
        await asyncio.sleep((delays or {}).get(topic, 0))
        if topic in failing:
            raise BrokerError(f"no resource on {topic}")
        return f"handle:{topic}"
    return op


@pytest.mark.asyncio
async def test_slots_follow_input_order_not_completion_order(events):
    topics = ["T0", "T1", "T2", "T3", "T4"]
    # Later topics finish first.
    delays = {topic: 0.01 * (len(topics) - i) for i, topic in enumerate(topics)}
    completion_order = []
    events.add_listener(lambda e: completion_order.append(e.topic))

    job = FanoutJob(topics, make_op({"T1", "T3"}, delays), events=events, resource="publication")
    handles = await job.run()

    assert handles == ["handle:T0", None, "handle:T2", None, "handle:T4"]
    assert completion_order == ["T4", "T3", "T2", "T1", "T0"]
    assert job.completed == len(topics)
    assert job.finished


@pytest.mark.asyncio
async def test_failures_are_reported_against_their_topic(events):
    job = FanoutJob(["A", "B", "C"], make_op({"B"}), events=events, resource="subscription")
    await job.run()

    failed = events.of_kind(EventKind.RESOURCE_FAILED)
    assert [e.topic for e in failed] == ["B"]
    assert failed[0].details["index"] == 1
    assert "no resource on B" in failed[0].error
    assert len(events.of_kind(EventKind.RESOURCE_CREATED)) == 2

    slot = job.slots[1]
    assert not slot.ok
    assert isinstance(slot.error, BrokerError)


@pytest.mark.asyncio
async def test_all_failures_still_complete_the_batch(events):
    topics = ["A", "B", "C"]
    handles = await fanout(topics, make_op(set(topics)), events=events)
    assert handles == [None, None, None]
    assert len(events.of_kind(EventKind.RESOURCE_FAILED)) == 3


@pytest.mark.asyncio
async def test_all_attempts_dispatched_before_any_completes():
    started = []
    release = asyncio.Event()

    async def op(topic):
        started.append(topic)
        await release.wait()
        return topic

    job = FanoutJob(["A", "B", "C"], op)
    runner = asyncio.create_task(job.run())
    await asyncio.sleep(0.01)

    assert started == ["A", "B", "C"]
    assert job.completed == 0
    assert not runner.done()

    release.set()
    assert await runner == ["A", "B", "C"]


@pytest.mark.asyncio
async def test_empty_batch_finishes_immediately():
    job = FanoutJob([], make_op(set()))
    assert await job.run() == []
    assert job.finished
    assert job.completed == 0


@pytest.mark.asyncio
async def test_job_runs_only_once():
    job = FanoutJob(["A"], make_op(set()))
    await job.run()
    with pytest.raises(RuntimeError):
        await job.run()


@pytest.mark.asyncio
async def test_stop_action_emits_stopped_events(events):
    async def stop(topic):
        await asyncio.sleep(0)

    job = FanoutJob(["A", "B"], stop, events=events, resource="publication", action="stop")
    await job.run()

    stopped = events.of_kind(EventKind.RESOURCE_STOPPED)
    assert sorted(e.topic for e in stopped) == ["A", "B"]
    assert all(slot.ok for slot in job.slots)
