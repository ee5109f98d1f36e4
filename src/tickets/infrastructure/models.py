"""
Ticket Infrastructure Models
============================

SQLAlchemy ORM models for the ticket lifecycle module.
"""

from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import DateTime, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from src.config import ReplyAuthor, TicketStatus, TriageCategory, UrgencyLevel
from src.infrastructure.database import Base


class TicketModel(Base):
    """
    Database model for the Ticket entity.

    Enum columns are stored as their string values.
    """
    __tablename__ = "tickets"

    # Primary key
    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    # Submission (immutable)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    content: Mapped[str] = mapped_column(Text, nullable=False)
    user_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True, index=True)

    # Lifecycle
    status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default=TicketStatus.OPEN.value,
        index=True
    )

    # Classification
    category: Mapped[Optional[str]] = mapped_column(String(50), nullable=True, index=True)
    sentiment_score: Mapped[Optional[int]] = mapped_column(Integer, nullable=True, index=True)
    urgency: Mapped[Optional[str]] = mapped_column(String(20), nullable=True, index=True)

    # Reply
    response_draft: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    response: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    reply_made_by: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)

    tag: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
        index=True
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc)
    )

    __table_args__ = (
        Index("ix_tickets_status_created_at", "status", "created_at"),
    )

    def __repr__(self) -> str:
        return f"<TicketModel(id={self.id}, status={self.status})>"


def enum_or_none(enum_cls, value: Optional[str]):
    return enum_cls(value) if value is not None else None


# Column name -> enum type for values that cross the ORM boundary as strings
ENUM_COLUMNS = {
    "status": TicketStatus,
    "category": TriageCategory,
    "urgency": UrgencyLevel,
    "reply_made_by": ReplyAuthor,
}
