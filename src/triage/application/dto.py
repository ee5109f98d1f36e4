"""
Triage Application DTOs
=======================

Data Transfer Objects for the triage API layer.

Pydantic models for response serialization.
"""

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

from src.config import WorkerProcessStatus
from src.infrastructure.queue import QueueStats, TriageJob
from src.triage.domain import WorkerProcessRecord


class WorkerProcessResponse(BaseModel):
    """One audit record of a triage attempt."""
    model_config = ConfigDict(from_attributes=True)

    id: Optional[int] = None
    worker_id: str
    ticket_id: int
    status: WorkerProcessStatus
    attempt: int
    reply_text: Optional[str] = None
    raw_model_output: Optional[str] = None
    error_message: Optional[str] = None
    timestamp: datetime

    @classmethod
    def from_domain(cls, record: WorkerProcessRecord) -> "WorkerProcessResponse":
        return cls.model_validate(record)


class WorkerProcessListResponse(BaseModel):
    ticket_id: int
    items: List[WorkerProcessResponse]


class DeadJobResponse(BaseModel):
    """A job that exhausted its delivery attempts."""
    job_id: str
    ticket_id: int
    attempts_made: int
    last_error: Optional[str] = None
    enqueued_at: datetime
    dead_at: Optional[datetime] = None

    @classmethod
    def from_job(cls, job: TriageJob) -> "DeadJobResponse":
        return cls(**job.model_dump(include=set(cls.model_fields)))


class DeadJobListResponse(BaseModel):
    items: List[DeadJobResponse]
    stats: QueueStats = Field(..., description="Current queue counts")
