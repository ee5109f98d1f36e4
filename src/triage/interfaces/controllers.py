"""
Triage Controllers (API Routes)
================================

FastAPI routes for operator inspection of the triage queue.
"""

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status

from src.infrastructure.queue import JobQueue
from src.shared.infrastructure.logging import get_logger
from src.triage.application import DeadJobListResponse, DeadJobResponse

logger = get_logger(__name__)
router = APIRouter(prefix="/triage", tags=["Ticket Triage"])


def get_job_queue(request: Request) -> JobQueue:
    queue = getattr(request.app.state, "job_queue", None)
    if queue is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Job queue not available"
        )
    return queue


@router.get("/dead-jobs", response_model=DeadJobListResponse, summary="Jobs that exhausted their attempts")
async def list_dead_jobs(
    limit: int = Query(default=100, ge=1, le=1000),
    queue: JobQueue = Depends(get_job_queue)
) -> DeadJobListResponse:
    """
    Dead set of the triage queue, most recent first.

    A dead job means the ticket was never triaged automatically; it can be
    re-run with ``POST /tickets/{id}/triage``.
    """
    jobs = await queue.dead_jobs(limit=limit)
    return DeadJobListResponse(
        items=[DeadJobResponse.from_job(job) for job in jobs],
        stats=await queue.stats()
    )
