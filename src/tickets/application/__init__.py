"""
Ticket Application Layer
========================

Application layer for the ticket lifecycle module.

Contains:
- Services: TicketLifecycleService (guarded lifecycle transitions)
- Repository interface: ITicketRepository
- DTOs: Data transfer objects for API serialization
"""

from src.tickets.application.dto import (
    CreateTicketRequest,
    UpdateDraftRequest,
    TicketResponse,
    TicketListResponse,
    TriageRequeuedResponse,
)
from src.tickets.application.services import (
    CLOSABLE_STATUSES,
    ITicketRepository,
    TicketLifecycleService,
)

__all__ = [
    # DTOs
    "CreateTicketRequest",
    "UpdateDraftRequest",
    "TicketResponse",
    "TicketListResponse",
    "TriageRequeuedResponse",
    # Services
    "TicketLifecycleService",
    "CLOSABLE_STATUSES",
    # Repository Interfaces
    "ITicketRepository",
]
