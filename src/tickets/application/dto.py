"""
Ticket Application DTOs
=======================

Data Transfer Objects for the ticket lifecycle API layer.

Pydantic models for request/response validation.
"""

import math
from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from src.config import (
    CONTENT_MAX_LENGTH,
    TITLE_MAX_LENGTH,
    ReplyAuthor,
    TicketStatus,
    TriageCategory,
    UrgencyLevel,
)
from src.tickets.domain import Ticket, TicketPage


# ========== Request DTOs ==========

class CreateTicketRequest(BaseModel):
    """Request model for ticket submission."""
    title: str = Field(..., min_length=1, max_length=TITLE_MAX_LENGTH, description="Short summary")
    content: str = Field(..., min_length=1, max_length=CONTENT_MAX_LENGTH, description="Full details")

    @field_validator("title", "content")
    @classmethod
    def reject_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("must not be blank")
        return v


class UpdateDraftRequest(BaseModel):
    """Request model for a human draft edit."""
    response_draft: str = Field(..., max_length=CONTENT_MAX_LENGTH)


# ========== Response DTOs ==========

class TicketResponse(BaseModel):
    """Full ticket representation."""
    model_config = ConfigDict(from_attributes=True)

    id: int
    title: str
    content: str
    status: TicketStatus
    user_id: Optional[int] = None
    category: Optional[TriageCategory] = None
    sentiment_score: Optional[int] = None
    urgency: Optional[UrgencyLevel] = None
    response_draft: Optional[str] = None
    response: Optional[str] = None
    reply_made_by: Optional[ReplyAuthor] = None
    tag: Optional[str] = None
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_domain(cls, ticket: Ticket) -> "TicketResponse":
        return cls.model_validate(ticket)


class TicketListResponse(BaseModel):
    """Paginated ticket listing."""
    items: List[TicketResponse]
    total: int = Field(..., description="Tickets matching the filters across all pages")
    total_pages: int
    limit: int
    offset: int

    @classmethod
    def from_page(cls, page: TicketPage, limit: int, offset: int) -> "TicketListResponse":
        return cls(
            items=[TicketResponse.from_domain(t) for t in page.items],
            total=page.total,
            total_pages=math.ceil(page.total / limit),
            limit=limit,
            offset=offset,
        )


class TriageRequeuedResponse(BaseModel):
    """Response for a manual triage re-trigger."""
    ticket_id: int
    job_id: str
