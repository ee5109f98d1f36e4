"""
Triage Application Layer
=========================

Application layer for ticket triage module.

Contains:
- Services: Classifier, audit logger and job processor
- DTOs: Data transfer objects for API serialization
"""

from src.triage.application.dto import (
    WorkerProcessResponse,
    WorkerProcessListResponse,
    DeadJobResponse,
    DeadJobListResponse,
)
from src.triage.application.services import (
    TriageClassifier,
    AuditLogger,
    TriageJobProcessor,
    IWorkerProcessRepository,
)

__all__ = [
    # DTOs
    "WorkerProcessResponse",
    "WorkerProcessListResponse",
    "DeadJobResponse",
    "DeadJobListResponse",
    # Services
    "TriageClassifier",
    "AuditLogger",
    "TriageJobProcessor",
    # Repository Interfaces
    "IWorkerProcessRepository",
]
