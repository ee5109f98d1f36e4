"""
Job Queue Abstractions
======================

Interface for the at-least-once triage job channel.

A job is delivered by ``dequeue`` and stays "active" until the consumer
either ``ack``s it or reports a failure with ``fail``. Failed jobs are
re-delivered with exponential backoff until ``max_attempts`` deliveries have
been made; after that (or on a non-retryable failure) they are parked in the
dead set for operator inspection. A delivery that is never settled (consumer
crashed) counts as an attempt too, so a job that keeps killing its consumer
also ends up dead. The dead set keeps the newest ``dead_retention`` jobs.
"""

from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import List, Optional
from uuid import uuid4

from pydantic import BaseModel, Field


STALLED_ERROR = "stalled"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class TriageJob(BaseModel):
    """
    Unit of work for the triage worker.

    Carries only the ticket id; the worker re-reads the ticket on delivery.
    """
    job_id: str = Field(default_factory=lambda: uuid4().hex)
    ticket_id: int
    attempts_made: int = Field(default=0, ge=0, description="Deliveries so far")
    enqueued_at: datetime = Field(default_factory=utcnow)
    delivered_at: Optional[datetime] = None
    last_error: Optional[str] = None
    dead_at: Optional[datetime] = None


class QueueStats(BaseModel):
    """Point-in-time counts per job state."""
    waiting: int = 0
    active: int = 0
    delayed: int = 0
    dead: int = 0


class JobQueue(ABC):
    """
    Durable-enough, at-least-once delivery channel for triage jobs.

    Owned resource: call ``start()`` before use and ``close()`` on shutdown.
    """

    def __init__(
        self,
        max_attempts: int = 3,
        backoff_base_seconds: float = 1.0,
        dead_retention: int = 5000
    ):
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        if dead_retention < 1:
            raise ValueError("dead_retention must be at least 1")
        self.max_attempts = max_attempts
        self.backoff_base_seconds = backoff_base_seconds
        self.dead_retention = dead_retention

    def backoff_delay(self, attempts_made: int) -> float:
        """Delay before the next delivery: base, 2 * base, 4 * base, ..."""
        return self.backoff_base_seconds * (2 ** max(attempts_made - 1, 0))

    def should_retry(self, job: TriageJob, retryable: bool) -> bool:
        return retryable and job.attempts_made < self.max_attempts

    def is_exhausted(self, job: TriageJob) -> bool:
        """No deliveries left: a stalled job in this state is dead-lettered."""
        return job.attempts_made >= self.max_attempts

    async def start(self) -> None:
        """Open connections / allocate resources."""

    async def close(self) -> None:
        """Release resources. Pending delayed jobs survive only in durable backends."""

    @abstractmethod
    async def enqueue(self, ticket_id: int) -> TriageJob:
        """Add a job for ``ticket_id``."""

    @abstractmethod
    async def dequeue(self, timeout: Optional[float] = None) -> Optional[TriageJob]:
        """
        Wait for the next job.

        Returns None when nothing arrived within ``timeout`` seconds.
        The returned job has ``attempts_made`` incremented.
        """

    @abstractmethod
    async def ack(self, job: TriageJob) -> None:
        """Mark a delivered job as completed."""

    @abstractmethod
    async def fail(self, job: TriageJob, error: str, retryable: bool = True) -> bool:
        """
        Report a failed delivery.

        Returns:
            True if the job was scheduled for another attempt,
            False if it was moved to the dead set
        """

    @abstractmethod
    async def dead_jobs(self, limit: int = 100) -> List[TriageJob]:
        """Jobs that exhausted their attempts, most recent first."""

    @abstractmethod
    async def recover_stalled(self, stalled_after_seconds: float) -> int:
        """
        Settle jobs delivered more than ``stalled_after_seconds`` ago and never
        acknowledged (consumer crashed): re-queue them, or move them to the dead
        set with ``last_error="stalled"`` when no attempts remain. Returns the
        number of stalled jobs found.
        """

    @abstractmethod
    async def stats(self) -> QueueStats:
        """Counts per job state."""
