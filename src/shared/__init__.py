"""
Shared Kernel Module
====================

This module contains shared infrastructure used across all bounded contexts
(Ticket Lifecycle and Ticket Triage).

Architecture Pattern: Modular Monolith
- Each module (tickets, triage) is a bounded context
- Shared kernel contains only generic infrastructure (logging, API middleware)

DO NOT add ticket lifecycle or triage business logic to the shared kernel.
"""

__version__ = "1.0.0"
