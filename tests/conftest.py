"""
pytest configuration and shared fixtures
"""
import pytest

from src.infrastructure.queue import InMemoryJobQueue
from src.tickets.application import TicketLifecycleService
from src.triage.application import AuditLogger, TriageClassifier, TriageJobProcessor
from tests.helpers import (
    InMemoryTicketRepository,
    InMemoryWorkerProcessRepository,
    ScriptedLLMClient,
)


@pytest.fixture
def ticket_repo():
    return InMemoryTicketRepository()


@pytest.fixture
def audit_repo():
    return InMemoryWorkerProcessRepository()


@pytest.fixture
def job_queue():
    """Queue with zero backoff so retries are immediately deliverable."""
    return InMemoryJobQueue(max_attempts=3, backoff_base_seconds=0.0)


@pytest.fixture
def lifecycle(ticket_repo, job_queue):
    return TicketLifecycleService(ticket_repo, job_queue)


@pytest.fixture
def llm():
    return ScriptedLLMClient()


@pytest.fixture
def classifier(llm):
    return TriageClassifier(llm, timeout_seconds=5, temperature=0.2, max_tokens=1024)


@pytest.fixture
def audit(audit_repo):
    return AuditLogger(audit_repo)


@pytest.fixture
def processor(lifecycle, classifier, audit):
    return TriageJobProcessor(lifecycle=lifecycle, classifier=classifier, audit=audit)
