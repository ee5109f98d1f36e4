"""
Ticket Infrastructure Layer
===========================

Infrastructure implementations for the ticket lifecycle module.

Contains:
- Models: SQLAlchemy ORM models
- Repositories: Data access implementations
"""

from src.tickets.infrastructure.models import TicketModel
from src.tickets.infrastructure.repositories import SQLAlchemyTicketRepository

__all__ = [
    "TicketModel",
    "SQLAlchemyTicketRepository",
]
