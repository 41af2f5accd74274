"""Tests for the per-queue job state machine."""

import asyncio

import pytest

from autopilot.backend.memory import MemoryJobStore
from autopilot.backend.models import JobState
from autopilot.services.infrastructure.job_management.backoff import (
    ExponentialBackoff,
    FixedBackoff,
)
from autopilot.services.infrastructure.job_management.dispatcher import (
    Dispatcher,
    JobOptions,
)
from autopilot.services.infrastructure.job_management.events import (
    EventBus,
    QueueEventType,
)
from autopilot.services.infrastructure.job_management.queue import JobQueue
from autopilot.services.infrastructure.job_management.queues import (
    JobTypes,
    QueueName,
)


@pytest.fixture
def events():
    bus = EventBus()
    bus.received = []
    bus.subscribe(bus.received.append)
    return bus


@pytest.fixture
def queue(queue_config, events, clock):
    return JobQueue(
        QueueName.GENERATION,
        MemoryJobStore(),
        Dispatcher(queue_config),
        events,
        clock,
    )


def event_types(events):
    return [event.type for event in events.received]


class TestJobQueue:
    @pytest.mark.asyncio
    async def test_priority_order(self, queue):
        for priority in (3, 1, 2):
            await queue.enqueue(
                JobTypes.GENERATE_WORKFLOW,
                {"p": priority},
                JobOptions(priority=priority),
            )

        claimed = []
        for _ in range(3):
            job = await queue.claim_next()
            claimed.append(job.payload["p"])

        assert claimed == [1, 2, 3]

    @pytest.mark.asyncio
    async def test_fifo_within_priority(self, queue):
        ids = [
            (await queue.enqueue(JobTypes.GENERATE_WORKFLOW, {"n": n})).id
            for n in range(3)
        ]

        claimed = [(await queue.claim_next()).id for _ in range(3)]

        assert claimed == ids

    @pytest.mark.asyncio
    async def test_concurrent_claims_never_share_a_job(self, queue):
        for n in range(5):
            await queue.enqueue(JobTypes.GENERATE_WORKFLOW, {"n": n})

        jobs = await asyncio.gather(*(queue.claim_next() for _ in range(10)))
        ids = [job.id for job in jobs if job]

        assert len(ids) == 5
        assert len(set(ids)) == 5

    @pytest.mark.asyncio
    async def test_status_is_idempotent(self, queue):
        job = await queue.enqueue(JobTypes.GENERATE_WORKFLOW, {})

        first = await queue.get_status(job.id)
        second = await queue.get_status(job.id)

        assert first == second
        assert first.state == JobState.WAITING
        assert first.queue == "workflow-generation"

    @pytest.mark.asyncio
    async def test_status_of_unknown_job(self, queue):
        assert await queue.get_status("missing") is None

    @pytest.mark.asyncio
    async def test_complete_records_result(self, queue, clock, events):
        job = await queue.enqueue(JobTypes.GENERATE_WORKFLOW, {})
        await queue.claim_next()
        clock.advance(1500)

        done = await queue.complete(job.id, {"workflow_id": 9})

        assert done.state == JobState.COMPLETED
        assert done.result == {"workflow_id": 9}
        assert done.progress == 100
        completed = events.received[-1]
        assert completed.type == QueueEventType.COMPLETED
        assert completed.duration_ms == 1500

    @pytest.mark.asyncio
    async def test_retry_then_fail(self, queue, clock, events):
        job = await queue.enqueue(
            JobTypes.GENERATE_WORKFLOW,
            {},
            JobOptions(attempts=3, backoff=ExponentialBackoff(2000)),
        )

        await queue.claim_next()
        first = await queue.fail(job.id, "boom")
        assert first.state == JobState.DELAYED
        assert first.attempts == 1
        assert first.delay_until == clock() + 2000

        # Not eligible before the backoff elapses
        assert await queue.claim_next() is None
        clock.advance(2000)
        await queue.claim_next()
        second = await queue.fail(job.id, "boom")
        assert second.attempts == 2
        assert second.delay_until == clock() + 4000

        clock.advance(4000)
        await queue.claim_next()
        final = await queue.fail(job.id, "boom")

        assert final.state == JobState.FAILED
        assert final.attempts == 3
        assert final.error == "boom"
        assert await queue.claim_next() is None
        assert event_types(events).count(QueueEventType.RETRYING) == 2
        assert event_types(events)[-1] == QueueEventType.FAILED

    @pytest.mark.asyncio
    async def test_fixed_backoff_delay(self, queue, clock):
        job = await queue.enqueue(
            JobTypes.GENERATE_WORKFLOW,
            {},
            JobOptions(attempts=2, backoff=FixedBackoff(10_000)),
        )
        await queue.claim_next()

        retried = await queue.fail(job.id, "flaky")

        assert retried.delay_until == clock() + 10_000

    @pytest.mark.asyncio
    async def test_delayed_job_eligibility(self, queue, clock):
        await queue.enqueue(JobTypes.GENERATE_WORKFLOW, {}, JobOptions(delay_ms=5000))

        assert await queue.claim_next() is None
        clock.advance(4999)
        assert await queue.claim_next() is None
        clock.advance(1)
        assert await queue.claim_next() is not None

    @pytest.mark.asyncio
    async def test_progress_is_clamped(self, queue, events):
        job = await queue.enqueue(JobTypes.GENERATE_WORKFLOW, {})
        await queue.claim_next()

        updated = await queue.update_progress(job.id, 140)

        assert updated.progress == 100
        assert events.received[-1].progress == 100

    @pytest.mark.asyncio
    async def test_pause_and_resume(self, queue, events):
        await queue.enqueue(JobTypes.GENERATE_WORKFLOW, {})

        await queue.pause()
        assert await queue.is_paused()
        assert await queue.claim_next() is None

        await queue.resume()
        assert await queue.claim_next() is not None
        assert QueueEventType.PAUSED in event_types(events)
        assert QueueEventType.RESUMED in event_types(events)

    @pytest.mark.asyncio
    async def test_stats(self, queue):
        await queue.enqueue(JobTypes.GENERATE_WORKFLOW, {})
        await queue.enqueue(JobTypes.GENERATE_WORKFLOW, {}, JobOptions(delay_ms=1000))
        await queue.claim_next()

        counts = await queue.stats()

        assert counts.active == 1
        assert counts.delayed == 1
        assert counts.waiting == 0
