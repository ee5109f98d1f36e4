"""
Job Queue Infrastructure
========================

At-least-once triage job channel with retry/backoff and a dead set.

Backends:
- InMemoryJobQueue: asyncio, single process (tests, local development)
- RedisJobQueue: durable, shared between processes
"""

from typing import Optional

from src.config import Settings, settings
from src.infrastructure.queue.base import JobQueue, QueueStats, TriageJob
from src.infrastructure.queue.memory import InMemoryJobQueue
from src.infrastructure.queue.maintenance import QueueMaintenanceScheduler
from src.shared.infrastructure.logging import get_logger

logger = get_logger(__name__)


def create_job_queue(config: Optional[Settings] = None) -> JobQueue:
    """Build the queue backend selected by ``queue_backend``."""
    config = config or settings

    if config.queue_backend == "redis":
        from src.infrastructure.queue.redis_backend import RedisJobQueue

        return RedisJobQueue(
            redis_url=config.redis_url,
            name=config.triage_queue_name,
            max_attempts=config.triage_max_attempts,
            backoff_base_seconds=config.triage_backoff_base_seconds,
            dead_retention=config.triage_dead_job_retention,
        )

    return InMemoryJobQueue(
        max_attempts=config.triage_max_attempts,
        backoff_base_seconds=config.triage_backoff_base_seconds,
        dead_retention=config.triage_dead_job_retention,
    )


async def enqueue_triage_job(queue: JobQueue, ticket_id: int) -> TriageJob:
    """Entry point of the ticket-creation flow: one job per created ticket."""
    job = await queue.enqueue(ticket_id)
    logger.info(
        "Triage job enqueued",
        extra={"ticket_id": ticket_id, "job_id": job.job_id}
    )
    return job


__all__ = [
    "JobQueue",
    "QueueStats",
    "TriageJob",
    "InMemoryJobQueue",
    "QueueMaintenanceScheduler",
    "create_job_queue",
    "enqueue_triage_job",
]
