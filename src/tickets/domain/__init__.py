"""
Ticket Domain Layer
===================

Domain layer for the ticket lifecycle module.

Contains:
- Entities: Ticket with its lifecycle guards
- Tag helpers for the append-only outcome markers
- TicketQuery / TicketPage for listings

This layer is framework-agnostic and contains pure business logic.
"""

from src.tickets.domain.entities import (
    Ticket,
    TicketPage,
    TicketQuery,
    append_tag,
    split_tag,
)

__all__ = [
    "Ticket",
    "TicketPage",
    "TicketQuery",
    "append_tag",
    "split_tag",
]
