"""
Queue Maintenance Scheduler
===========================

Wrapper for APScheduler running periodic stalled-job recovery, so that jobs
held by a consumer that died mid-processing are delivered again.
"""

from typing import Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler

from src.infrastructure.queue.base import JobQueue
from src.shared.infrastructure.logging import get_logger

logger = get_logger(__name__)


class QueueMaintenanceScheduler:
    """
    Manages the lifecycle of the scheduler and its recovery job.
    """

    def __init__(
        self,
        queue: JobQueue,
        interval_seconds: int = 30,
        stalled_after_seconds: float = 300,
    ):
        self.queue = queue
        self.interval_seconds = interval_seconds
        self.stalled_after_seconds = stalled_after_seconds
        self._scheduler: Optional[AsyncIOScheduler] = None
        self._running = False

    async def recover_stalled_jobs(self) -> int:
        """Single maintenance pass; failures are logged and retried next interval."""
        try:
            recovered = await self.queue.recover_stalled(self.stalled_after_seconds)
        except Exception as e:
            logger.error("Stalled job recovery failed", extra={"error": str(e)})
            return 0

        if recovered:
            logger.warning(
                "Re-queued stalled triage jobs",
                extra={"recovered": recovered}
            )
        return recovered

    async def start(self) -> None:
        """Start the scheduler."""
        if self._running:
            logger.warning("Queue maintenance scheduler already running")
            return

        self._scheduler = AsyncIOScheduler()
        self._scheduler.add_job(
            self.recover_stalled_jobs,
            "interval",
            seconds=self.interval_seconds,
            id="triage_queue_stalled_recovery",
            name="Triage Queue Stalled Job Recovery",
            misfire_grace_time=self.interval_seconds,
            max_instances=1,
            replace_existing=True
        )
        self._scheduler.start()
        self._running = True

        logger.info(
            "Queue maintenance scheduler started",
            extra={
                "interval_seconds": self.interval_seconds,
                "stalled_after_seconds": self.stalled_after_seconds
            }
        )

    async def stop(self) -> None:
        """Stop the scheduler gracefully."""
        if not self._running:
            return

        if self._scheduler:
            self._scheduler.shutdown(wait=False)

        self._running = False
        logger.info("Queue maintenance scheduler stopped")

    @property
    def is_running(self) -> bool:
        """Check if scheduler is running."""
        return self._running
