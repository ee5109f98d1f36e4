"""
Triage Worker Pool
==================

Bounded pool of asyncio handler tasks consuming the triage job queue.

Each handler pulls one job at a time. Jobs for the same ticket never run
in parallel inside the process: handlers serialize on a per-ticket lock.
"""

import asyncio
import os
import socket
from contextlib import asynccontextmanager
from typing import Dict, List, Optional

from src.core import ApplicationException
from src.infrastructure.queue import JobQueue, TriageJob
from src.shared.infrastructure.logging import get_context_logger, get_logger
from src.triage.application.services import TriageJobProcessor

logger = get_logger(__name__)


def build_worker_id(index: int) -> str:
    return f"{socket.gethostname()}:{os.getpid()}:{index}"


def is_retryable(exc: BaseException) -> bool:
    """Application errors declare it; anything unexpected is retried."""
    if isinstance(exc, ApplicationException):
        return exc.retryable
    return True


class TriageWorkerPool:
    """
    Runs ``concurrency`` handlers against one queue.

    Owned resource: ``start()`` spawns the handlers, ``stop()`` lets
    in-flight jobs finish (up to ``shutdown_timeout``) and cancels the rest.
    Cancelled jobs stay active in the queue and come back through
    stalled-job recovery.
    """

    def __init__(
        self,
        queue: JobQueue,
        processor: TriageJobProcessor,
        concurrency: int = 4,
        poll_timeout: float = 1.0,
        shutdown_timeout: float = 30.0
    ):
        if concurrency < 1:
            raise ValueError("concurrency must be at least 1")
        self._queue = queue
        self._processor = processor
        self._concurrency = concurrency
        self._poll_timeout = poll_timeout
        self._shutdown_timeout = shutdown_timeout
        self._tasks: List[asyncio.Task] = []
        self._running = False
        self._locks: Dict[int, asyncio.Lock] = {}
        self._lock_users: Dict[int, int] = {}

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def concurrency(self) -> int:
        return self._concurrency

    async def start(self) -> None:
        if self._running:
            logger.warning("Triage worker pool already running")
            return

        self._running = True
        self._tasks = [
            asyncio.create_task(self._run_handler(index), name=f"triage-worker-{index}")
            for index in range(self._concurrency)
        ]
        logger.info("Triage worker pool started", extra={"concurrency": self._concurrency})

    async def stop(self) -> None:
        if not self._running:
            return

        self._running = False
        tasks, self._tasks = self._tasks, []

        _, pending = await asyncio.wait(tasks, timeout=self._shutdown_timeout)
        for task in pending:
            task.cancel()
        await asyncio.gather(*pending, return_exceptions=True)

        logger.info(
            "Triage worker pool stopped",
            extra={"cancelled_handlers": len(pending)}
        )

    async def _run_handler(self, index: int) -> None:
        worker_id = build_worker_id(index)

        while self._running:
            try:
                job = await self._queue.dequeue(timeout=self._poll_timeout)
            except ApplicationException as e:
                logger.error(
                    "Failed to fetch triage job",
                    extra={"worker_id": worker_id, "error": e.message}
                )
                await asyncio.sleep(self._poll_timeout)
                continue

            if job is None:
                continue

            try:
                await self.handle(job, worker_id)
            except Exception as e:
                # Queue bookkeeping failed; the job is recovered as stalled
                logger.error(
                    "Triage handler error",
                    extra={"worker_id": worker_id, "job_id": job.job_id, "ticket_id": job.ticket_id, "error": str(e)}
                )

    @asynccontextmanager
    async def _ticket_lock(self, ticket_id: int):
        lock = self._locks.get(ticket_id)
        if lock is None:
            lock = self._locks[ticket_id] = asyncio.Lock()
        self._lock_users[ticket_id] = self._lock_users.get(ticket_id, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._lock_users[ticket_id] -= 1
            if self._lock_users[ticket_id] == 0:
                del self._lock_users[ticket_id]
                del self._locks[ticket_id]

    async def handle(self, job: TriageJob, worker_id: str) -> Optional[bool]:
        """
        Process one delivery and settle it with the queue.

        Returns:
            None when acknowledged, True when a retry was scheduled,
            False when the job was moved to the dead set
        """
        log = get_context_logger(__name__, job_id=job.job_id)
        context = {"ticket_id": job.ticket_id, "attempt": job.attempts_made, "worker_id": worker_id}

        async with self._ticket_lock(job.ticket_id):
            try:
                await self._processor.process(job, worker_id)
            except Exception as e:
                retryable = is_retryable(e)
                rescheduled = await self._queue.fail(job, str(e), retryable=retryable)
                if rescheduled:
                    log.warning(
                        "Triage attempt failed, retry scheduled",
                        extra={**context, "error": str(e), "error_type": type(e).__name__}
                    )
                else:
                    log.warning(
                        "Triage job moved to dead set",
                        extra={
                            **context,
                            "error": str(e),
                            "error_type": type(e).__name__,
                            "retryable": retryable,
                        }
                    )
                return rescheduled

            await self._queue.ack(job)
            log.info("Triage job completed", extra=context)
            return None
