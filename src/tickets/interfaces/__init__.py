"""
Ticket Interfaces Layer
=======================

Interface adapters (controllers) for the ticket lifecycle module.

Contains:
- Controllers: FastAPI route handlers
"""

from src.tickets.interfaces.controllers import router as tickets_router

__all__ = ["tickets_router"]
