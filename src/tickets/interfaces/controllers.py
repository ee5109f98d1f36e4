"""
Ticket Controllers (API Routes)
===============================

FastAPI routes for the ticket lifecycle.

Controllers delegate to TicketLifecycleService; lifecycle errors are mapped
to HTTP responses by the shared application exception handler. The caller's
identity is taken from the ``X-User-Id`` header set by the upstream gateway.
"""

from typing import Optional

from fastapi import APIRouter, Depends, Header, HTTPException, Query, Request, status

from src.config import (
    SENTIMENT_MAX,
    SENTIMENT_MIN,
    SortOrder,
    TicketSortField,
    TicketStatus,
    TriageCategory,
    UrgencyLevel,
)
from src.shared.infrastructure.logging import get_logger
from src.tickets.application import (
    CreateTicketRequest,
    TicketLifecycleService,
    TicketListResponse,
    TicketResponse,
    TriageRequeuedResponse,
    UpdateDraftRequest,
)
from src.tickets.domain import TicketQuery
from src.triage.application import (
    AuditLogger,
    WorkerProcessListResponse,
    WorkerProcessResponse,
)

logger = get_logger(__name__)
router = APIRouter(prefix="/tickets", tags=["Tickets"])


# ========== Example payloads for Swagger ==========

TICKET_RESPONSE_EXAMPLE = {
    "id": 42,
    "title": "Charged twice this month",
    "content": "My card was billed twice for the March invoice.",
    "status": "IN_PROGRESS",
    "user_id": 7,
    "category": "Billing",
    "sentiment_score": 3,
    "urgency": "High",
    "response_draft": "We're sorry about the double charge. We are reviewing your invoice now.",
    "response": None,
    "reply_made_by": "AI",
    "tag": "triage-done",
    "created_at": "2026-03-02T10:15:00Z",
    "updated_at": "2026-03-02T10:15:04Z"
}

POLICY_ERROR_EXAMPLE = {
    "detail": "Cannot edit the response draft of a RESOLVED ticket.",
    "code": "DRAFT_NOT_EDITABLE"
}


# ========== Dependencies ==========

def get_lifecycle_service(request: Request) -> TicketLifecycleService:
    """Lifecycle service built during application startup."""
    service = getattr(request.app.state, "lifecycle_service", None)
    if service is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Ticket service not available"
        )
    return service


def get_audit_logger(request: Request) -> AuditLogger:
    audit = getattr(request.app.state, "audit_logger", None)
    if audit is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Audit log not available"
        )
    return audit


def get_current_user_id(
    x_user_id: Optional[int] = Header(default=None, alias="X-User-Id")
) -> Optional[int]:
    return x_user_id


# ========== Route Handlers ==========

@router.post(
    "",
    response_model=TicketResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Submit a ticket",
    responses={201: {"content": {"application/json": {"example": TICKET_RESPONSE_EXAMPLE}}}}
)
async def create_ticket(
    request_body: CreateTicketRequest,
    user_id: Optional[int] = Depends(get_current_user_id),
    service: TicketLifecycleService = Depends(get_lifecycle_service)
) -> TicketResponse:
    """
    Create a ticket in OPEN status and enqueue its triage job.

    Classification fields stay null until the worker has processed the job.
    """
    ticket = await service.create_ticket(
        title=request_body.title,
        content=request_body.content,
        user_id=user_id
    )
    return TicketResponse.from_domain(ticket)


@router.get("", response_model=TicketListResponse, summary="List tickets")
async def list_tickets(
    status_filter: Optional[TicketStatus] = Query(default=None, alias="status"),
    category: Optional[TriageCategory] = Query(default=None),
    sentiment: Optional[int] = Query(default=None, ge=SENTIMENT_MIN, le=SENTIMENT_MAX),
    urgency: Optional[UrgencyLevel] = Query(default=None),
    search: Optional[str] = Query(default=None, min_length=1, max_length=200, description="Words of the title"),
    sort_by: TicketSortField = Query(default=TicketSortField.CREATED_AT),
    sort_order: SortOrder = Query(default=SortOrder.DESC),
    mine: bool = Query(default=False, description="Only tickets owned by the caller"),
    limit: int = Query(default=50, ge=1, le=200),
    offset: int = Query(default=0, ge=0),
    user_id: Optional[int] = Depends(get_current_user_id),
    service: TicketLifecycleService = Depends(get_lifecycle_service)
) -> TicketListResponse:
    if mine and user_id is None:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="X-User-Id header is required when mine=true"
        )

    page = await service.list_tickets(TicketQuery(
        status=status_filter,
        user_id=user_id if mine else None,
        category=category,
        sentiment_score=sentiment,
        urgency=urgency,
        search=search,
        sort_by=sort_by,
        sort_order=sort_order,
        limit=limit,
        offset=offset
    ))
    return TicketListResponse.from_page(page, limit=limit, offset=offset)


@router.get("/{ticket_id}", response_model=TicketResponse, summary="Get a ticket")
async def get_ticket(
    ticket_id: int,
    service: TicketLifecycleService = Depends(get_lifecycle_service)
) -> TicketResponse:
    ticket = await service.get_ticket(ticket_id)
    return TicketResponse.from_domain(ticket)


@router.patch(
    "/{ticket_id}/draft",
    response_model=TicketResponse,
    summary="Edit the response draft",
    responses={400: {"content": {"application/json": {"example": POLICY_ERROR_EXAMPLE}}}}
)
async def edit_draft(
    ticket_id: int,
    request_body: UpdateDraftRequest,
    service: TicketLifecycleService = Depends(get_lifecycle_service)
) -> TicketResponse:
    """Allowed only while the ticket is OPEN or IN_PROGRESS."""
    ticket = await service.edit_draft(ticket_id, request_body.response_draft)
    return TicketResponse.from_domain(ticket)


@router.post("/{ticket_id}/resolve", response_model=TicketResponse, summary="Resolve a ticket")
async def resolve_ticket(
    ticket_id: int,
    service: TicketLifecycleService = Depends(get_lifecycle_service)
) -> TicketResponse:
    """
    Copy the current draft to the final response and mark the ticket RESOLVED.

    Requires status OPEN or IN_PROGRESS and a non-blank draft.
    """
    ticket = await service.resolve(ticket_id)
    return TicketResponse.from_domain(ticket)


@router.post("/{ticket_id}/close", response_model=TicketResponse, summary="Close a ticket")
async def close_ticket(
    ticket_id: int,
    user_id: Optional[int] = Depends(get_current_user_id),
    service: TicketLifecycleService = Depends(get_lifecycle_service)
) -> TicketResponse:
    """Only the ticket's creator can close it."""
    ticket = await service.close(ticket_id, requesting_user_id=user_id)
    return TicketResponse.from_domain(ticket)


@router.post(
    "/{ticket_id}/triage",
    response_model=TriageRequeuedResponse,
    status_code=status.HTTP_202_ACCEPTED,
    summary="Re-run triage"
)
async def retrigger_triage(
    ticket_id: int,
    service: TicketLifecycleService = Depends(get_lifecycle_service)
) -> TriageRequeuedResponse:
    job = await service.retrigger_triage(ticket_id)
    return TriageRequeuedResponse(ticket_id=ticket_id, job_id=job.job_id)


@router.get(
    "/{ticket_id}/worker-processes",
    response_model=WorkerProcessListResponse,
    summary="Triage attempt history"
)
async def list_worker_processes(
    ticket_id: int,
    limit: int = Query(default=100, ge=1, le=500),
    service: TicketLifecycleService = Depends(get_lifecycle_service),
    audit: AuditLogger = Depends(get_audit_logger)
) -> WorkerProcessListResponse:
    await service.get_ticket(ticket_id)
    records = await audit.history(ticket_id, limit=limit)
    return WorkerProcessListResponse(
        ticket_id=ticket_id,
        items=[WorkerProcessResponse.from_domain(r) for r in records]
    )
