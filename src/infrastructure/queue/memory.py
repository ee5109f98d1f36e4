"""
In-Memory Job Queue
===================

asyncio implementation of the triage job queue for tests and single-process
development. Jobs do not survive a restart.
"""

import asyncio
from datetime import timedelta
from typing import Dict, List, Optional

from src.infrastructure.queue.base import STALLED_ERROR, JobQueue, QueueStats, TriageJob, utcnow
from src.shared.infrastructure.logging import get_logger

logger = get_logger(__name__)


class InMemoryJobQueue(JobQueue):
    """Single-process queue backed by ``asyncio.Queue`` and loop timers."""

    def __init__(
        self,
        max_attempts: int = 3,
        backoff_base_seconds: float = 1.0,
        dead_retention: int = 5000
    ):
        super().__init__(max_attempts, backoff_base_seconds, dead_retention)
        self._ready: asyncio.Queue[TriageJob] = asyncio.Queue()
        self._active: Dict[str, TriageJob] = {}
        self._delayed: Dict[str, asyncio.TimerHandle] = {}
        self._dead: List[TriageJob] = []
        self._closed = False

    async def close(self) -> None:
        self._closed = True
        for handle in self._delayed.values():
            handle.cancel()
        if self._delayed:
            logger.warning(
                "In-memory queue closed with delayed jobs pending",
                extra={"delayed": len(self._delayed)}
            )
        self._delayed.clear()

    async def enqueue(self, ticket_id: int) -> TriageJob:
        job = TriageJob(ticket_id=ticket_id)
        self._ready.put_nowait(job)
        return job

    async def dequeue(self, timeout: Optional[float] = None) -> Optional[TriageJob]:
        try:
            if timeout is None:
                job = await self._ready.get()
            else:
                job = await asyncio.wait_for(self._ready.get(), timeout)
        except asyncio.TimeoutError:
            return None

        job.attempts_made += 1
        job.delivered_at = utcnow()
        self._active[job.job_id] = job
        return job

    async def ack(self, job: TriageJob) -> None:
        self._active.pop(job.job_id, None)

    async def fail(self, job: TriageJob, error: str, retryable: bool = True) -> bool:
        self._active.pop(job.job_id, None)
        job.last_error = error

        if not self.should_retry(job, retryable):
            self._bury(job)
            return False

        delay = self.backoff_delay(job.attempts_made)
        if delay <= 0:
            self._ready.put_nowait(job)
        else:
            loop = asyncio.get_running_loop()
            self._delayed[job.job_id] = loop.call_later(delay, self._promote, job)
        return True

    def _bury(self, job: TriageJob) -> None:
        job.dead_at = utcnow()
        self._dead.append(job)
        if len(self._dead) > self.dead_retention:
            del self._dead[:-self.dead_retention]

    def _promote(self, job: TriageJob) -> None:
        self._delayed.pop(job.job_id, None)
        if not self._closed:
            self._ready.put_nowait(job)

    async def dead_jobs(self, limit: int = 100) -> List[TriageJob]:
        return list(reversed(self._dead))[:limit]

    async def recover_stalled(self, stalled_after_seconds: float) -> int:
        cutoff = utcnow() - timedelta(seconds=stalled_after_seconds)
        stalled = [
            job for job in self._active.values()
            if job.delivered_at is not None and job.delivered_at < cutoff
        ]
        for job in stalled:
            self._active.pop(job.job_id, None)
            if self.is_exhausted(job):
                job.last_error = STALLED_ERROR
                self._bury(job)
                logger.warning(
                    "Stalled triage job moved to dead set",
                    extra={"job_id": job.job_id, "ticket_id": job.ticket_id, "attempt": job.attempts_made}
                )
            else:
                self._ready.put_nowait(job)
        return len(stalled)

    async def stats(self) -> QueueStats:
        return QueueStats(
            waiting=self._ready.qsize(),
            active=len(self._active),
            delayed=len(self._delayed),
            dead=len(self._dead),
        )
