"""
Triage Application Services
============================

Application services for asynchronous ticket triage.

Orchestrates the model call, the response parser, the lifecycle controller
and the audit log for one triage job.
"""

import asyncio
from abc import ABC, abstractmethod
from typing import List, Optional

from src.config import WorkerProcessStatus, settings
from src.core import (
    LLMTimeoutException,
    StaleTriageException,
    TicketNotFoundException,
)
from src.infrastructure.llm import ILLMClient
from src.infrastructure.queue import TriageJob
from src.shared.infrastructure.logging import get_logger, log_latency
from src.tickets.application import TicketLifecycleService
from src.triage.domain import (
    TriageOutcome,
    TriagePromptBuilder,
    TriageResponseParser,
    WorkerProcessRecord,
)

logger = get_logger(__name__)


# ========== Repository Interfaces ==========

class IWorkerProcessRepository(ABC):
    """Interface for the append-only worker process audit log."""

    @abstractmethod
    async def append(self, record: WorkerProcessRecord) -> WorkerProcessRecord:
        """Store one audit record."""

    @abstractmethod
    async def list_for_ticket(self, ticket_id: int, limit: int = 100) -> List[WorkerProcessRecord]:
        """Records for a ticket, oldest first."""


# ========== Application Services ==========

class TriageClassifier:
    """
    Service for ticket classification using LLM.

    Sends the fixed instruction plus the ticket to the model and turns the
    untrusted reply into a TriageOutcome.
    """

    def __init__(
        self,
        llm_client: ILLMClient,
        timeout_seconds: Optional[float] = None,
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None
    ):
        self._llm = llm_client
        self._timeout = timeout_seconds if timeout_seconds is not None else settings.llm_timeout_seconds
        self._temperature = temperature if temperature is not None else settings.llm_temperature
        self._max_tokens = max_tokens if max_tokens is not None else settings.llm_max_tokens

    async def classify(
        self,
        ticket_id: int,
        title: str,
        content: str,
        context: Optional[str] = None
    ) -> TriageOutcome:
        """
        Classify a ticket and draft a reply.

        Args:
            ticket_id: Ticket ID, echoed to the model and used as fallback
            title: Ticket title
            content: Ticket content
            context: Optional free-text context, sent only when non-blank

        Returns:
            TriageOutcome; an invalid outcome still carries the raw text

        Raises:
            LLMTimeoutException: The call exceeded the time limit
            LLMException: The model endpoint failed
        """
        messages = TriagePromptBuilder.build_messages(str(ticket_id), title, content, context)

        with log_latency(logger, "triage_completion", ticket_id=ticket_id):
            try:
                response = await asyncio.wait_for(
                    self._llm.chat_completion(
                        messages=messages,
                        temperature=self._temperature,
                        max_tokens=self._max_tokens,
                        operation="triage"
                    ),
                    timeout=self._timeout
                )
            except asyncio.TimeoutError:
                raise LLMTimeoutException(self._timeout)

        outcome = TriageResponseParser.parse(response.content, str(ticket_id))

        logger.info(
            "Ticket classified",
            extra={
                "ticket_id": ticket_id,
                "valid": outcome.valid,
                "reason": outcome.reason,
                "model": response.model,
            }
        )
        return outcome


class AuditLogger:
    """
    Writes worker process records.

    An audit write failure is logged and never fails the triage attempt.
    """

    def __init__(self, repository: IWorkerProcessRepository):
        self._repo = repository

    async def record(
        self,
        worker_id: str,
        ticket_id: int,
        status: WorkerProcessStatus,
        attempt: int = 1,
        reply_text: Optional[str] = None,
        raw_model_output: Optional[str] = None,
        error_message: Optional[str] = None
    ) -> Optional[WorkerProcessRecord]:
        record = WorkerProcessRecord(
            worker_id=worker_id,
            ticket_id=ticket_id,
            status=status,
            attempt=attempt,
            reply_text=reply_text,
            raw_model_output=raw_model_output,
            error_message=error_message,
        )
        try:
            return await self._repo.append(record)
        except Exception as e:
            logger.error(
                "Failed to write worker process record",
                extra={
                    "ticket_id": ticket_id,
                    "worker_id": worker_id,
                    "status": status.value,
                    "error": str(e),
                }
            )
            return None

    async def history(self, ticket_id: int, limit: int = 100) -> List[WorkerProcessRecord]:
        return await self._repo.list_for_ticket(ticket_id, limit=limit)


class TriageJobProcessor:
    """
    Handles one delivery of a triage job.

    Returning normally means the job is done (ack). Raising hands the error
    to the queue, which retries when ``exc.retryable`` and attempts remain.
    """

    def __init__(
        self,
        lifecycle: TicketLifecycleService,
        classifier: TriageClassifier,
        audit: AuditLogger
    ):
        self._lifecycle = lifecycle
        self._classifier = classifier
        self._audit = audit

    async def process(self, job: TriageJob, worker_id: str) -> TriageOutcome:
        """
        Run triage for ``job.ticket_id``.

        Raises:
            TicketNotFoundException: Ticket is gone (terminal)
            StaleTriageException: Ticket is RESOLVED or CLOSED (terminal)
            LLMException: Model call failed (retryable)
        """
        ticket_id = job.ticket_id
        attempt = job.attempts_made

        async def audit(status: WorkerProcessStatus, **fields) -> None:
            await self._audit.record(worker_id, ticket_id, status, attempt=attempt, **fields)

        try:
            ticket = await self._lifecycle.get_ticket(ticket_id)
        except TicketNotFoundException:
            await audit(WorkerProcessStatus.FAILED, error_message=f"Ticket not found: {ticket_id}")
            raise

        if not ticket.can_edit_draft:
            stale = StaleTriageException(ticket_id, ticket.status.value)
            await audit(WorkerProcessStatus.FAILED, error_message=stale.message)
            raise stale

        try:
            outcome = await self._classifier.classify(
                ticket_id, ticket.title, ticket.content, context=ticket.tag
            )
        except Exception as e:
            await audit(WorkerProcessStatus.FAILED, error_message=str(e))
            raise

        if not outcome.valid:
            await audit(
                WorkerProcessStatus.INVALID_RESPONSE,
                raw_model_output=outcome.raw,
                error_message=outcome.reason,
            )
            logger.warning(
                "Invalid triage response",
                extra={"ticket_id": ticket_id, "job_id": job.job_id, "attempt": attempt, "reason": outcome.reason}
            )
            return outcome

        try:
            await self._lifecycle.apply_triage(ticket_id, outcome.result)
        except Exception as e:
            await audit(WorkerProcessStatus.FAILED, raw_model_output=outcome.raw, error_message=str(e))
            raise

        await audit(
            WorkerProcessStatus.INFO,
            reply_text=outcome.result.response_draft,
            raw_model_output=outcome.raw,
        )
        return outcome
