"""
Redis Job Queue
===============

Durable triage job queue on Redis.

Key layout (``<prefix>`` is the queue name):
- ``<prefix>:jobs``          hash   job_id -> job JSON
- ``<prefix>:wait``          list   job ids ready for delivery
- ``<prefix>:active``        list   job ids delivered and not yet acked
- ``<prefix>:active_since``  zset   job id -> delivery timestamp (stall detection)
- ``<prefix>:delayed``       zset   job id -> timestamp of next delivery
- ``<prefix>:dead``          list   job ids that exhausted their attempts

Delivery uses ``BLMOVE wait -> active`` so a crashed consumer never loses a
job; ``recover_stalled`` moves it back to ``wait`` (or to ``dead`` once its
attempts are used up). Ids found in ``active`` without an ``active_since``
score (consumer died between BLMOVE and ZADD) are scored on sight so they
stall out like any other delivery. The dead list keeps the newest
``dead_retention`` ids; older payloads are deleted.
"""

import time
from typing import List, Optional

import redis.asyncio as redis
from redis.exceptions import RedisError

from src.core import QueueException
from src.infrastructure.queue.base import STALLED_ERROR, JobQueue, QueueStats, TriageJob, utcnow
from src.shared.infrastructure.logging import get_logger

logger = get_logger(__name__)


class RedisJobQueue(JobQueue):
    """Job queue persisted in Redis lists and sorted sets."""

    def __init__(
        self,
        redis_url: str,
        name: str = "ticket",
        max_attempts: int = 3,
        backoff_base_seconds: float = 1.0,
        dead_retention: int = 5000,
        client: Optional[redis.Redis] = None,
    ):
        super().__init__(max_attempts, backoff_base_seconds, dead_retention)
        self._redis_url = redis_url
        self._name = name
        self._client = client

        self._jobs_key = f"{name}:jobs"
        self._wait_key = f"{name}:wait"
        self._active_key = f"{name}:active"
        self._active_since_key = f"{name}:active_since"
        self._delayed_key = f"{name}:delayed"
        self._dead_key = f"{name}:dead"

    @property
    def client(self) -> redis.Redis:
        if self._client is None:
            raise RuntimeError("Redis queue not started. Call start() first.")
        return self._client

    async def start(self) -> None:
        """Open the connection pool and verify connectivity."""
        if self._client is None:
            self._client = redis.from_url(
                self._redis_url,
                decode_responses=True,
                max_connections=50,
            )
        try:
            await self._client.ping()
        except RedisError as e:
            raise QueueException(f"Redis unavailable: {e}")
        logger.info("Redis job queue connected", extra={"queue": self._name})

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None
        logger.info("Redis job queue closed", extra={"queue": self._name})

    async def enqueue(self, ticket_id: int) -> TriageJob:
        job = TriageJob(ticket_id=ticket_id)
        try:
            async with self.client.pipeline(transaction=True) as pipe:
                pipe.hset(self._jobs_key, job.job_id, job.model_dump_json())
                pipe.lpush(self._wait_key, job.job_id)
                await pipe.execute()
        except RedisError as e:
            raise QueueException(f"Failed to enqueue job for ticket {ticket_id}: {e}")
        return job

    async def dequeue(self, timeout: Optional[float] = None) -> Optional[TriageJob]:
        try:
            await self._promote_delayed()
            job_id = await self.client.blmove(
                self._wait_key,
                self._active_key,
                timeout or 0,
                src="RIGHT",
                dest="LEFT",
            )
            if job_id is None:
                return None

            payload = await self.client.hget(self._jobs_key, job_id)
            if payload is None:
                # Orphaned id (payload removed by an ack racing a stall recovery)
                await self.client.lrem(self._active_key, 0, job_id)
                return None

            job = TriageJob.model_validate_json(payload)
            job.attempts_made += 1
            job.delivered_at = utcnow()

            async with self.client.pipeline(transaction=True) as pipe:
                pipe.hset(self._jobs_key, job.job_id, job.model_dump_json())
                pipe.zadd(self._active_since_key, {job.job_id: time.time()})
                await pipe.execute()
        except RedisError as e:
            raise QueueException(f"Failed to dequeue job: {e}")
        return job

    async def ack(self, job: TriageJob) -> None:
        try:
            async with self.client.pipeline(transaction=True) as pipe:
                pipe.lrem(self._active_key, 0, job.job_id)
                pipe.zrem(self._active_since_key, job.job_id)
                pipe.hdel(self._jobs_key, job.job_id)
                await pipe.execute()
        except RedisError as e:
            raise QueueException(f"Failed to ack job {job.job_id}: {e}")

    async def fail(self, job: TriageJob, error: str, retryable: bool = True) -> bool:
        job.last_error = error
        retry = self.should_retry(job, retryable)
        if not retry:
            job.dead_at = utcnow()

        try:
            async with self.client.pipeline(transaction=True) as pipe:
                pipe.lrem(self._active_key, 0, job.job_id)
                pipe.zrem(self._active_since_key, job.job_id)
                pipe.hset(self._jobs_key, job.job_id, job.model_dump_json())
                if retry:
                    ready_at = time.time() + self.backoff_delay(job.attempts_made)
                    pipe.zadd(self._delayed_key, {job.job_id: ready_at})
                else:
                    pipe.lpush(self._dead_key, job.job_id)
                await pipe.execute()
            if not retry:
                await self._trim_dead()
        except RedisError as e:
            raise QueueException(f"Failed to record failure of job {job.job_id}: {e}")
        return retry

    async def _trim_dead(self) -> None:
        """Drop dead ids (and their payloads) beyond ``dead_retention``."""
        overflow = await self.client.lrange(self._dead_key, self.dead_retention, -1)
        if not overflow:
            return
        async with self.client.pipeline(transaction=True) as pipe:
            pipe.ltrim(self._dead_key, 0, self.dead_retention - 1)
            pipe.hdel(self._jobs_key, *overflow)
            await pipe.execute()

    async def _promote_delayed(self) -> int:
        """Move delayed jobs whose backoff elapsed back to the wait list."""
        due = await self.client.zrangebyscore(self._delayed_key, "-inf", time.time())
        promoted = 0
        for job_id in due:
            # ZREM result decides which consumer owns the promotion
            if await self.client.zrem(self._delayed_key, job_id):
                await self.client.lpush(self._wait_key, job_id)
                promoted += 1
        return promoted

    async def dead_jobs(self, limit: int = 100) -> List[TriageJob]:
        try:
            job_ids = await self.client.lrange(self._dead_key, 0, limit - 1)
            if not job_ids:
                return []
            payloads = await self.client.hmget(self._jobs_key, job_ids)
        except RedisError as e:
            raise QueueException(f"Failed to read dead jobs: {e}")
        return [TriageJob.model_validate_json(p) for p in payloads if p is not None]

    async def recover_stalled(self, stalled_after_seconds: float) -> int:
        now = time.time()
        cutoff = now - stalled_after_seconds
        try:
            active_ids = await self.client.lrange(self._active_key, 0, -1)
            if active_ids:
                # NX: only ids whose consumer never recorded a delivery time
                await self.client.zadd(self._active_since_key, {job_id: now for job_id in active_ids}, nx=True)

            stalled = await self.client.zrangebyscore(self._active_since_key, "-inf", cutoff)
            found = 0
            for job_id in stalled:
                if not await self.client.zrem(self._active_since_key, job_id):
                    continue
                if await self.client.lpos(self._active_key, job_id) is None:
                    # Settled after the orphan scan
                    continue
                found += 1
                payload = await self.client.hget(self._jobs_key, job_id)
                job = TriageJob.model_validate_json(payload) if payload is not None else None

                if job is None:
                    await self.client.lrem(self._active_key, 0, job_id)
                    continue

                if self.is_exhausted(job):
                    job.last_error = STALLED_ERROR
                    job.dead_at = utcnow()
                    async with self.client.pipeline(transaction=True) as pipe:
                        pipe.lrem(self._active_key, 0, job_id)
                        pipe.hset(self._jobs_key, job_id, job.model_dump_json())
                        pipe.lpush(self._dead_key, job_id)
                        await pipe.execute()
                    await self._trim_dead()
                    logger.warning(
                        "Stalled triage job moved to dead set",
                        extra={"job_id": job_id, "ticket_id": job.ticket_id, "attempt": job.attempts_made}
                    )
                    continue

                async with self.client.pipeline(transaction=True) as pipe:
                    pipe.lrem(self._active_key, 0, job_id)
                    pipe.lpush(self._wait_key, job_id)
                    await pipe.execute()
            await self._promote_delayed()
        except RedisError as e:
            raise QueueException(f"Failed to recover stalled jobs: {e}")
        return found

    async def stats(self) -> QueueStats:
        try:
            async with self.client.pipeline(transaction=False) as pipe:
                pipe.llen(self._wait_key)
                pipe.llen(self._active_key)
                pipe.zcard(self._delayed_key)
                pipe.llen(self._dead_key)
                waiting, active, delayed, dead = await pipe.execute()
        except RedisError as e:
            raise QueueException(f"Failed to read queue stats: {e}")
        return QueueStats(waiting=waiting, active=active, delayed=delayed, dead=dead)
