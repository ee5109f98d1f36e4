"""Tests for the in-memory job queue and the shared retry policy"""
from datetime import timedelta

import pytest

from src.infrastructure.queue import InMemoryJobQueue, QueueMaintenanceScheduler, enqueue_triage_job


class TestRetryPolicy:
    def test_backoff_doubles_from_base(self):
        queue = InMemoryJobQueue(max_attempts=3, backoff_base_seconds=1.0)

        assert [queue.backoff_delay(n) for n in (1, 2, 3)] == [1.0, 2.0, 4.0]

    def test_max_attempts_must_be_positive(self):
        with pytest.raises(ValueError):
            InMemoryJobQueue(max_attempts=0)


class TestDelivery:
    @pytest.mark.asyncio
    async def test_enqueue_then_dequeue_counts_attempt(self):
        queue = InMemoryJobQueue()
        job = await enqueue_triage_job(queue, 7)

        delivered = await queue.dequeue(timeout=0.1)

        assert delivered.job_id == job.job_id
        assert delivered.attempts_made == 1
        assert delivered.delivered_at is not None
        assert (await queue.stats()).active == 1

    @pytest.mark.asyncio
    async def test_dequeue_times_out_with_none(self):
        queue = InMemoryJobQueue()

        assert await queue.dequeue(timeout=0.01) is None

    @pytest.mark.asyncio
    async def test_ack_removes_active_job(self):
        queue = InMemoryJobQueue()
        await queue.enqueue(1)
        job = await queue.dequeue(timeout=0.1)

        await queue.ack(job)

        stats = await queue.stats()
        assert (stats.waiting, stats.active, stats.delayed, stats.dead) == (0, 0, 0, 0)


class TestFailure:
    @pytest.mark.asyncio
    async def test_retryable_failure_is_delayed_then_redelivered(self):
        queue = InMemoryJobQueue(max_attempts=3, backoff_base_seconds=0.02)
        await queue.enqueue(1)
        job = await queue.dequeue(timeout=0.1)

        assert await queue.fail(job, "timeout", retryable=True) is True
        assert (await queue.stats()).delayed == 1

        again = await queue.dequeue(timeout=1.0)
        assert again.job_id == job.job_id
        assert again.attempts_made == 2
        assert again.last_error == "timeout"

    @pytest.mark.asyncio
    async def test_non_retryable_failure_goes_to_dead_set(self):
        queue = InMemoryJobQueue(max_attempts=3)
        await queue.enqueue(1)
        job = await queue.dequeue(timeout=0.1)

        assert await queue.fail(job, "ticket gone", retryable=False) is False

        dead = await queue.dead_jobs()
        assert [d.job_id for d in dead] == [job.job_id]
        assert dead[0].dead_at is not None

    @pytest.mark.asyncio
    async def test_last_attempt_goes_to_dead_set(self):
        queue = InMemoryJobQueue(max_attempts=2, backoff_base_seconds=0.0)
        await queue.enqueue(1)

        job = await queue.dequeue(timeout=0.1)
        assert await queue.fail(job, "e1") is True
        job = await queue.dequeue(timeout=0.1)
        assert await queue.fail(job, "e2") is False

        assert (await queue.stats()).dead == 1

    @pytest.mark.asyncio
    async def test_dead_jobs_most_recent_first(self):
        queue = InMemoryJobQueue(max_attempts=1)
        for ticket_id in (1, 2):
            await queue.enqueue(ticket_id)
            job = await queue.dequeue(timeout=0.1)
            await queue.fail(job, "boom")

        assert [j.ticket_id for j in await queue.dead_jobs()] == [2, 1]

    @pytest.mark.asyncio
    async def test_dead_set_keeps_only_newest_jobs(self):
        queue = InMemoryJobQueue(max_attempts=1, dead_retention=2)
        for ticket_id in (1, 2, 3):
            await queue.enqueue(ticket_id)
            job = await queue.dequeue(timeout=0.1)
            await queue.fail(job, "boom")

        assert [j.ticket_id for j in await queue.dead_jobs()] == [3, 2]
        assert (await queue.stats()).dead == 2

    def test_dead_retention_must_be_positive(self):
        with pytest.raises(ValueError):
            InMemoryJobQueue(dead_retention=0)

    @pytest.mark.asyncio
    async def test_close_cancels_delayed_jobs(self):
        queue = InMemoryJobQueue(backoff_base_seconds=10)
        await queue.enqueue(1)
        job = await queue.dequeue(timeout=0.1)
        await queue.fail(job, "boom")

        await queue.close()

        assert (await queue.stats()).delayed == 0


class TestStalledRecovery:
    @pytest.mark.asyncio
    async def test_unacked_job_is_requeued(self):
        queue = InMemoryJobQueue()
        await queue.enqueue(1)
        job = await queue.dequeue(timeout=0.1)
        job.delivered_at = job.delivered_at - timedelta(seconds=600)

        assert await queue.recover_stalled(stalled_after_seconds=300) == 1

        again = await queue.dequeue(timeout=0.1)
        assert again.job_id == job.job_id
        assert again.attempts_made == 2

    @pytest.mark.asyncio
    async def test_job_that_keeps_stalling_ends_in_dead_set(self):
        queue = InMemoryJobQueue(max_attempts=3)
        enqueued = await queue.enqueue(1)

        for attempt in (1, 2, 3):
            job = await queue.dequeue(timeout=0.01)
            assert job.attempts_made == attempt
            job.delivered_at = job.delivered_at - timedelta(seconds=600)
            assert await queue.recover_stalled(stalled_after_seconds=300) == 1

        assert await queue.dequeue(timeout=0.01) is None
        dead = await queue.dead_jobs()
        assert [j.job_id for j in dead] == [enqueued.job_id]
        assert dead[0].last_error == "stalled"
        assert dead[0].attempts_made == 3
        stats = await queue.stats()
        assert (stats.waiting, stats.active, stats.dead) == (0, 0, 1)

    @pytest.mark.asyncio
    async def test_recent_job_is_left_alone(self):
        queue = InMemoryJobQueue()
        await queue.enqueue(1)
        await queue.dequeue(timeout=0.1)

        assert await queue.recover_stalled(stalled_after_seconds=300) == 0

    @pytest.mark.asyncio
    async def test_maintenance_pass(self):
        queue = InMemoryJobQueue()
        await queue.enqueue(1)
        job = await queue.dequeue(timeout=0.1)
        job.delivered_at = job.delivered_at - timedelta(seconds=60)
        scheduler = QueueMaintenanceScheduler(queue, interval_seconds=30, stalled_after_seconds=30)

        assert await scheduler.recover_stalled_jobs() == 1

    @pytest.mark.asyncio
    async def test_scheduler_start_stop(self):
        scheduler = QueueMaintenanceScheduler(InMemoryJobQueue(), interval_seconds=60)

        await scheduler.start()
        assert scheduler.is_running
        await scheduler.stop()
        assert not scheduler.is_running
