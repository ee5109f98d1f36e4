"""
Ticket Application Services
===========================

Lifecycle controller for support tickets.

Every mutation is a guarded read-modify-write: the ticket is read, the
domain guard is evaluated, then the write is issued through a conditional
update that re-checks the same precondition in the store. A write that
matches no row is re-diagnosed against the current row so the caller gets
the precise reason.
"""

from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, Optional

from src.config import (
    EDITABLE_STATUSES,
    TRIAGE_DONE_TAG,
    Actor,
    ReplyAuthor,
    TicketStatus,
)
from src.core import (
    ConcurrentModificationException,
    QueueException,
    StaleTriageException,
    TicketNotFoundException,
)
from src.infrastructure.queue import JobQueue, TriageJob, enqueue_triage_job
from src.shared.infrastructure.logging import get_logger
from src.tickets.domain import Ticket, TicketPage, TicketQuery, append_tag
from src.triage.domain import TriageResult

logger = get_logger(__name__)

CLOSABLE_STATUSES = (TicketStatus.OPEN, TicketStatus.IN_PROGRESS, TicketStatus.RESOLVED)


# ========== Repository Interfaces ==========

class ITicketRepository(ABC):
    """Interface for ticket data access."""

    @abstractmethod
    async def get_by_id(self, ticket_id: int) -> Optional[Ticket]:
        """Get ticket by ID."""

    @abstractmethod
    async def create(
        self,
        title: str,
        content: str,
        user_id: Optional[int] = None,
        tag: Optional[str] = None
    ) -> Ticket:
        """Create new ticket in OPEN status."""

    @abstractmethod
    async def update(
        self,
        ticket_id: int,
        fields: Dict[str, Any],
        conditions: Optional[Dict[str, Any]] = None
    ) -> Optional[Ticket]:
        """
        Partial update guarded by ``conditions``.

        A condition value may be a single expected value or a collection of
        accepted values. Returns None when the row is absent or a condition
        does not hold.
        """

    @abstractmethod
    async def list(self, query: TicketQuery) -> TicketPage:
        """
        One window of the tickets matching ``query``.

        ``TicketPage.total`` counts every match, not only the window.
        """


# ========== Application Services ==========

class TicketLifecycleService:
    """
    Lifecycle controller for tickets.

    The single writer path for ticket rows; the triage worker reaches the
    store only through ``apply_triage``.
    """

    def __init__(
        self,
        ticket_repository: ITicketRepository,
        job_queue: Optional[JobQueue] = None
    ):
        self._repo = ticket_repository
        self._queue = job_queue

    async def create_ticket(
        self,
        title: str,
        content: str,
        user_id: Optional[int] = None
    ) -> Ticket:
        """
        Persist a new OPEN ticket and enqueue its triage job.

        A failed enqueue does not undo the ticket; it stays OPEN and can be
        re-triggered.
        """
        ticket = await self._repo.create(title=title, content=content, user_id=user_id)

        logger.info(
            "Ticket created",
            extra={"ticket_id": ticket.id, "user_id": user_id}
        )

        if self._queue is not None:
            try:
                await enqueue_triage_job(self._queue, ticket.id)
            except QueueException as e:
                logger.error(
                    "Failed to enqueue triage job",
                    extra={"ticket_id": ticket.id, "error": e.message}
                )

        return ticket

    async def get_ticket(self, ticket_id: int) -> Ticket:
        ticket = await self._repo.get_by_id(ticket_id)
        if ticket is None:
            raise TicketNotFoundException(ticket_id)
        return ticket

    async def list_tickets(self, query: TicketQuery) -> TicketPage:
        return await self._repo.list(query)

    async def retrigger_triage(self, ticket_id: int) -> TriageJob:
        """Enqueue another triage run for a ticket that is still editable."""
        if self._queue is None:
            raise QueueException("No job queue configured")

        ticket = await self.get_ticket(ticket_id)
        ticket.ensure_draft_editable()

        job = await enqueue_triage_job(self._queue, ticket.id)
        logger.info(
            "Triage re-triggered",
            extra={"ticket_id": ticket.id, "job_id": job.job_id}
        )
        return job

    async def edit_draft(
        self,
        ticket_id: int,
        text: str,
        actor: Actor = Actor.HUMAN
    ) -> Ticket:
        """
        Replace the response draft.

        Raises:
            TicketNotFoundException: Ticket does not exist
            DraftNotEditableException: Ticket is RESOLVED or CLOSED
        """
        ticket = await self.get_ticket(ticket_id)
        ticket.ensure_draft_editable()

        author = ReplyAuthor.HUMAN_AI if actor == Actor.HUMAN else ReplyAuthor.AI

        updated = await self._guarded_update(
            ticket_id,
            fields={"response_draft": text, "reply_made_by": author},
            conditions={"status": EDITABLE_STATUSES},
            rediagnose=lambda current: current.ensure_draft_editable(),
        )

        logger.info(
            "Response draft updated",
            extra={"ticket_id": ticket_id, "actor": actor.value}
        )
        return updated

    async def resolve(self, ticket_id: int) -> Ticket:
        """
        Promote the draft to the final response and mark the ticket RESOLVED.

        The draft read here is the draft copied; if it changed in between
        the write is rejected rather than resolving with a stale copy.
        """
        ticket = await self.get_ticket(ticket_id)
        ticket.ensure_resolvable()

        updated = await self._guarded_update(
            ticket_id,
            fields={"response": ticket.response_draft, "status": TicketStatus.RESOLVED},
            conditions={
                "status": EDITABLE_STATUSES,
                "response_draft": ticket.response_draft,
            },
            rediagnose=lambda current: current.ensure_resolvable(),
        )

        logger.info("Ticket resolved", extra={"ticket_id": ticket_id})
        return updated

    async def close(self, ticket_id: int, requesting_user_id: Optional[int]) -> Ticket:
        """Close the ticket on behalf of its owner."""
        ticket = await self.get_ticket(ticket_id)
        ticket.ensure_closable_by(requesting_user_id)

        updated = await self._guarded_update(
            ticket_id,
            fields={"status": TicketStatus.CLOSED},
            conditions={"status": CLOSABLE_STATUSES},
            rediagnose=lambda current: current.ensure_closable_by(requesting_user_id),
        )

        logger.info(
            "Ticket closed",
            extra={"ticket_id": ticket_id, "user_id": requesting_user_id, "previous_status": ticket.status.value}
        )
        return updated

    async def apply_triage(self, ticket_id: int, result: TriageResult) -> Ticket:
        """
        Write a valid triage result in one guarded update.

        Classification fields, the AI draft, the IN_PROGRESS transition and
        the ``triage-done`` marker land together or not at all. A ticket that
        has left OPEN / IN_PROGRESS rejects the whole result.

        Raises:
            TicketNotFoundException: Ticket vanished since the job was read
            StaleTriageException: Ticket is RESOLVED or CLOSED
            ConcurrentModificationException: Another writer won the race
        """
        ticket = await self.get_ticket(ticket_id)

        def ensure_fresh(current: Ticket) -> None:
            if not current.can_edit_draft:
                raise StaleTriageException(current.id, current.status.value)

        ensure_fresh(ticket)

        updated = await self._guarded_update(
            ticket_id,
            fields={
                "category": result.category,
                "sentiment_score": result.sentiment_score,
                "urgency": result.urgency,
                "response_draft": result.response_draft,
                "reply_made_by": ReplyAuthor.AI,
                "status": TicketStatus.IN_PROGRESS,
                "tag": append_tag(ticket.tag, TRIAGE_DONE_TAG),
            },
            conditions={"status": EDITABLE_STATUSES, "tag": ticket.tag},
            rediagnose=ensure_fresh,
        )

        logger.info(
            "Triage result applied",
            extra={
                "ticket_id": ticket_id,
                "category": result.category.value,
                "urgency": result.urgency.value,
                "sentiment_score": result.sentiment_score,
            }
        )
        return updated

    async def _guarded_update(
        self,
        ticket_id: int,
        fields: Dict[str, Any],
        conditions: Dict[str, Any],
        rediagnose: Callable[[Ticket], None]
    ) -> Ticket:
        updated = await self._repo.update(ticket_id, fields, conditions)
        if updated is not None:
            return updated

        current = await self._repo.get_by_id(ticket_id)
        if current is None:
            raise TicketNotFoundException(ticket_id)

        # Raises the domain error if the precondition no longer holds.
        rediagnose(current)

        logger.warning(
            "Guarded ticket write lost a race",
            extra={"ticket_id": ticket_id, "fields": sorted(fields)}
        )
        raise ConcurrentModificationException(ticket_id)


__all__ = [
    "ITicketRepository",
    "TicketLifecycleService",
    "CLOSABLE_STATUSES",
]
