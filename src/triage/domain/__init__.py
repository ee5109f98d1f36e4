"""
Triage Domain Layer
===================

Domain layer for ticket triage module.

Contains:
- Entities: TriageResult, TriageOutcome, WorkerProcessRecord
- Prompt construction and response parsing (TriagePromptBuilder, TriageResponseParser)

This layer is framework-agnostic and contains pure business logic.
"""

from src.triage.domain.entities import (
    TriageResult,
    TriageOutcome,
    WorkerProcessRecord,
    TriagePromptBuilder,
    TriageResponseParser,
)

__all__ = [
    "TriageResult",
    "TriageOutcome",
    "WorkerProcessRecord",
    "TriagePromptBuilder",
    "TriageResponseParser",
]
