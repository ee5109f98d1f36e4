"""
Triage Infrastructure Models
=============================

SQLAlchemy ORM models for the triage module.
"""

from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import DateTime, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from src.infrastructure.database import Base


class WorkerProcessModel(Base):
    """
    Database model for WorkerProcessRecord.

    Append-only audit trail, one row per processing attempt.
    """
    __tablename__ = "worker_processes"

    # Primary key
    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    worker_id: Mapped[str] = mapped_column(String(255), nullable=False)

    # No foreign key: attempts for missing tickets are recorded too
    ticket_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)

    status: Mapped[str] = mapped_column(String(30), nullable=False)
    attempt: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    reply_text: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    raw_model_output: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    error_message: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    timestamp: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc)
    )

    __table_args__ = (
        Index("ix_worker_processes_ticket_timestamp", "ticket_id", "timestamp"),
    )
