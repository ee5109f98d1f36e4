"""
Ticket Domain Entities
======================

Pure Python domain entity for the ticket lifecycle.

The entity owns the lifecycle guards; the application service decides when
to evaluate them and persists the outcome through guarded writes.

State machine:
    OPEN -> IN_PROGRESS -> RESOLVED
    OPEN / IN_PROGRESS / RESOLVED -> CLOSED   (owner close action)
    CLOSED is terminal.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional

from src.config import (
    EDITABLE_STATUSES,
    ReplyAuthor,
    SortOrder,
    TicketSortField,
    TicketStatus,
    TriageCategory,
    UrgencyLevel,
)
from src.core import (
    DraftNotEditableException,
    MissingDraftException,
    NotTicketOwnerException,
    TicketAlreadyClosedException,
    TicketNotResolvableException,
)


def split_tag(tag: Optional[str]) -> List[str]:
    """Outcome markers stored in the comma-joined tag."""
    if not tag:
        return []
    return [part.strip() for part in tag.split(",") if part.strip()]


def append_tag(tag: Optional[str], marker: str) -> str:
    """Append ``marker`` unless already present; existing markers are kept."""
    markers = split_tag(tag)
    if marker not in markers:
        markers.append(marker)
    return ",".join(markers)


@dataclass
class Ticket:
    """
    Support ticket.

    ``title`` and ``content`` are immutable after creation; ``response`` is
    written once, on resolution.
    """

    id: int
    title: str
    content: str
    status: TicketStatus
    created_at: datetime
    updated_at: datetime

    user_id: Optional[int] = None

    # Classification (null until triaged)
    category: Optional[TriageCategory] = None
    sentiment_score: Optional[int] = None
    urgency: Optional[UrgencyLevel] = None

    # Reply
    response_draft: Optional[str] = None
    response: Optional[str] = None
    reply_made_by: Optional[ReplyAuthor] = None

    tag: Optional[str] = None

    @property
    def is_closed(self) -> bool:
        return self.status == TicketStatus.CLOSED

    @property
    def is_triaged(self) -> bool:
        return (
            self.category is not None
            and self.sentiment_score is not None
            and self.urgency is not None
        )

    @property
    def can_edit_draft(self) -> bool:
        """Draft is mutable only while the ticket is OPEN or IN_PROGRESS."""
        return self.status in EDITABLE_STATUSES

    @property
    def has_usable_draft(self) -> bool:
        return self.response_draft is not None and self.response_draft.strip() != ""

    @property
    def can_resolve(self) -> bool:
        return self.can_edit_draft and self.has_usable_draft

    @property
    def tag_markers(self) -> List[str]:
        return split_tag(self.tag)

    def is_owned_by(self, user_id: Optional[int]) -> bool:
        """Ownerless tickets are owned by nobody."""
        return self.user_id is not None and user_id is not None and self.user_id == user_id

    # ========== Guards ==========

    def ensure_draft_editable(self) -> None:
        if not self.can_edit_draft:
            raise DraftNotEditableException(self.id, self.status.value)

    def ensure_resolvable(self) -> None:
        if not self.can_edit_draft:
            raise TicketNotResolvableException(self.id, self.status.value)
        if not self.has_usable_draft:
            raise MissingDraftException(self.id)

    def ensure_closable_by(self, user_id: Optional[int]) -> None:
        if not self.is_owned_by(user_id):
            raise NotTicketOwnerException(self.id)
        if self.is_closed:
            raise TicketAlreadyClosedException(self.id)


@dataclass
class TicketQuery:
    """
    Filters, ordering and window of a ticket listing.

    ``None`` filters are not applied. ``search`` matches words of the title;
    ties in the sort key are broken by id in the same direction.
    """
    status: Optional[TicketStatus] = None
    user_id: Optional[int] = None
    category: Optional[TriageCategory] = None
    sentiment_score: Optional[int] = None
    urgency: Optional[UrgencyLevel] = None
    search: Optional[str] = None
    sort_by: TicketSortField = TicketSortField.CREATED_AT
    sort_order: SortOrder = SortOrder.DESC
    limit: int = 50
    offset: int = 0


@dataclass
class TicketPage:
    """One window of a listing plus the number of tickets matching overall."""
    items: List[Ticket] = field(default_factory=list)
    total: int = 0
