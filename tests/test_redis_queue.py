"""Unit tests for RedisJobQueue with a mocked redis client"""
import pytest
from unittest.mock import ANY, AsyncMock, MagicMock

from redis.exceptions import ConnectionError as RedisConnectionError

from src.core import QueueException
from src.infrastructure.queue import TriageJob
from src.infrastructure.queue.redis_backend import RedisJobQueue


class FakePipeline:
    """Records queued commands; ``execute`` returns canned results."""

    def __init__(self, results=None):
        self.commands = []
        self.results = results or []

    def __getattr__(self, name):
        def record(*args, **kwargs):
            self.commands.append((name, args, kwargs))
            return self
        return record

    async def execute(self):
        return self.results

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc_info):
        return False


@pytest.fixture
def pipe():
    return FakePipeline()


@pytest.fixture
def mock_redis(pipe):
    client = MagicMock()
    client.pipeline.return_value = pipe
    client.ping = AsyncMock(return_value=True)
    client.blmove = AsyncMock(return_value=None)
    client.hget = AsyncMock(return_value=None)
    client.zrangebyscore = AsyncMock(return_value=[])
    client.zrem = AsyncMock(return_value=1)
    client.lpush = AsyncMock(return_value=1)
    client.lrem = AsyncMock(return_value=1)
    client.lrange = AsyncMock(return_value=[])
    client.lpos = AsyncMock(return_value=0)
    client.zadd = AsyncMock(return_value=0)
    client.hmget = AsyncMock(return_value=[])
    client.aclose = AsyncMock()
    return client


@pytest.fixture
def queue(mock_redis):
    return RedisJobQueue("redis://test", name="ticket", max_attempts=3, backoff_base_seconds=1.0, client=mock_redis)


def command_names(pipe):
    return [name for name, _, _ in pipe.commands]


class TestConnection:
    @pytest.mark.asyncio
    async def test_start_pings(self, queue, mock_redis):
        await queue.start()

        mock_redis.ping.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_start_wraps_connection_error(self, queue, mock_redis):
        mock_redis.ping.side_effect = RedisConnectionError("refused")

        with pytest.raises(QueueException) as exc_info:
            await queue.start()

        assert exc_info.value.retryable

    def test_client_requires_start(self):
        with pytest.raises(RuntimeError):
            RedisJobQueue("redis://test").client


class TestEnqueue:
    @pytest.mark.asyncio
    async def test_stores_payload_and_pushes_id(self, queue, pipe):
        job = await queue.enqueue(42)

        assert command_names(pipe) == ["hset", "lpush"]
        _, hset_args, _ = pipe.commands[0]
        assert hset_args[0] == "ticket:jobs"
        assert hset_args[1] == job.job_id
        assert TriageJob.model_validate_json(hset_args[2]).ticket_id == 42
        assert pipe.commands[1][1] == ("ticket:wait", job.job_id)


class TestDequeue:
    @pytest.mark.asyncio
    async def test_timeout_returns_none(self, queue, mock_redis):
        assert await queue.dequeue(timeout=1) is None

        mock_redis.blmove.assert_awaited_once_with(
            "ticket:wait", "ticket:active", 1, src="RIGHT", dest="LEFT"
        )

    @pytest.mark.asyncio
    async def test_delivery_counts_attempt(self, queue, mock_redis, pipe):
        stored = TriageJob(ticket_id=9)
        mock_redis.blmove.return_value = stored.job_id
        mock_redis.hget.return_value = stored.model_dump_json()

        job = await queue.dequeue(timeout=1)

        assert job.job_id == stored.job_id
        assert job.attempts_made == 1
        assert command_names(pipe) == ["hset", "zadd"]

    @pytest.mark.asyncio
    async def test_orphaned_id_is_dropped_from_active(self, queue, mock_redis):
        mock_redis.blmove.return_value = "missing"

        assert await queue.dequeue(timeout=1) is None
        mock_redis.lrem.assert_awaited_once_with("ticket:active", 0, "missing")

    @pytest.mark.asyncio
    async def test_due_delayed_jobs_are_promoted(self, queue, mock_redis):
        mock_redis.zrangebyscore.return_value = ["due-job"]

        await queue.dequeue(timeout=1)

        mock_redis.zrem.assert_awaited_with("ticket:delayed", "due-job")
        mock_redis.lpush.assert_awaited_with("ticket:wait", "due-job")

    @pytest.mark.asyncio
    async def test_redis_error_is_wrapped(self, queue, mock_redis):
        mock_redis.blmove.side_effect = RedisConnectionError("gone")

        with pytest.raises(QueueException):
            await queue.dequeue(timeout=1)


class TestFail:
    @pytest.mark.asyncio
    async def test_retryable_failure_is_delayed(self, queue, pipe):
        job = TriageJob(ticket_id=1, attempts_made=1)

        assert await queue.fail(job, "timeout", retryable=True) is True

        assert command_names(pipe) == ["lrem", "zrem", "hset", "zadd"]
        zadd_args = pipe.commands[-1][1]
        assert zadd_args[0] == "ticket:delayed"

    @pytest.mark.asyncio
    async def test_exhausted_job_goes_to_dead_list(self, queue, pipe):
        job = TriageJob(ticket_id=1, attempts_made=3)

        assert await queue.fail(job, "timeout", retryable=True) is False

        assert command_names(pipe)[-1] == "lpush"
        assert pipe.commands[-1][1] == ("ticket:dead", job.job_id)
        assert job.dead_at is not None

    @pytest.mark.asyncio
    async def test_non_retryable_goes_to_dead_list(self, queue, pipe):
        job = TriageJob(ticket_id=1, attempts_made=1)

        assert await queue.fail(job, "not found", retryable=False) is False
        assert pipe.commands[-1][1][0] == "ticket:dead"

    @pytest.mark.asyncio
    async def test_dead_list_beyond_retention_is_trimmed(self, mock_redis, pipe):
        queue = RedisJobQueue("redis://test", name="ticket", max_attempts=3, dead_retention=2, client=mock_redis)
        mock_redis.lrange.return_value = ["oldest"]

        await queue.fail(TriageJob(ticket_id=1, attempts_made=1), "not found", retryable=False)

        mock_redis.lrange.assert_awaited_once_with("ticket:dead", 2, -1)
        assert command_names(pipe)[-2:] == ["ltrim", "hdel"]
        assert pipe.commands[-2][1] == ("ticket:dead", 0, 1)
        assert pipe.commands[-1][1] == ("ticket:jobs", "oldest")

    @pytest.mark.asyncio
    async def test_dead_list_within_retention_is_untouched(self, queue, pipe):
        await queue.fail(TriageJob(ticket_id=1, attempts_made=1), "not found", retryable=False)

        assert "ltrim" not in command_names(pipe)


class TestInspection:
    @pytest.mark.asyncio
    async def test_dead_jobs(self, queue, mock_redis):
        dead = TriageJob(ticket_id=5, attempts_made=3)
        mock_redis.lrange.return_value = [dead.job_id]
        mock_redis.hmget.return_value = [dead.model_dump_json()]

        jobs = await queue.dead_jobs(limit=10)

        mock_redis.lrange.assert_awaited_once_with("ticket:dead", 0, 9)
        assert [j.ticket_id for j in jobs] == [5]

    @pytest.mark.asyncio
    async def test_stats(self, queue, mock_redis):
        mock_redis.pipeline.return_value = FakePipeline(results=[1, 2, 3, 4])

        stats = await queue.stats()

        assert (stats.waiting, stats.active, stats.delayed, stats.dead) == (1, 2, 3, 4)



class TestStalledRecovery:
    @pytest.mark.asyncio
    async def test_stalled_job_is_requeued(self, queue, mock_redis, pipe):
        stuck = TriageJob(ticket_id=4, attempts_made=1)
        mock_redis.zrangebyscore.side_effect = [[stuck.job_id], []]
        mock_redis.hget.return_value = stuck.model_dump_json()

        assert await queue.recover_stalled(stalled_after_seconds=300) == 1

        assert command_names(pipe) == ["lrem", "lpush"]
        assert pipe.commands[1][1] == ("ticket:wait", stuck.job_id)

    @pytest.mark.asyncio
    async def test_exhausted_stalled_job_goes_to_dead_list(self, queue, mock_redis, pipe):
        stuck = TriageJob(ticket_id=4, attempts_made=3)
        mock_redis.zrangebyscore.side_effect = [[stuck.job_id], []]
        mock_redis.hget.return_value = stuck.model_dump_json()

        assert await queue.recover_stalled(stalled_after_seconds=300) == 1

        assert command_names(pipe) == ["lrem", "hset", "lpush"]
        buried = TriageJob.model_validate_json(pipe.commands[1][1][2])
        assert buried.last_error == "stalled"
        assert buried.dead_at is not None
        assert pipe.commands[2][1] == ("ticket:dead", stuck.job_id)

    @pytest.mark.asyncio
    async def test_active_ids_without_delivery_time_are_scored(self, queue, mock_redis, pipe):
        mock_redis.lrange.return_value = ["orphan"]

        assert await queue.recover_stalled(stalled_after_seconds=300) == 0

        mock_redis.lrange.assert_awaited_once_with("ticket:active", 0, -1)
        mock_redis.zadd.assert_awaited_once_with("ticket:active_since", {"orphan": ANY}, nx=True)
        assert pipe.commands == []

    @pytest.mark.asyncio
    async def test_job_settled_meanwhile_is_not_requeued(self, queue, mock_redis, pipe):
        mock_redis.zrangebyscore.side_effect = [["done"], []]
        mock_redis.lpos.return_value = None

        assert await queue.recover_stalled(stalled_after_seconds=300) == 0

        mock_redis.hget.assert_not_awaited()
        assert pipe.commands == []
