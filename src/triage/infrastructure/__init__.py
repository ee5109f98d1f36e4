"""
Triage Infrastructure Layer
============================

Infrastructure implementations for triage module.

Contains:
- Models: SQLAlchemy ORM models
- Repositories: Audit log data access
- Worker: asyncio worker pool consuming the triage queue
"""

from src.triage.infrastructure.models import WorkerProcessModel
from src.triage.infrastructure.repositories import SQLAlchemyWorkerProcessRepository
from src.triage.infrastructure.worker import TriageWorkerPool, build_worker_id

__all__ = [
    "WorkerProcessModel",
    "SQLAlchemyWorkerProcessRepository",
    "TriageWorkerPool",
    "build_worker_id",
]
