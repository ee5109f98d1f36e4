"""
Ticket Module
=============

Bounded Context for the support ticket lifecycle.

Responsibilities:
- Accept ticket submissions and hand them to triage
- Gate lifecycle actions (edit draft, resolve, close) on ticket status
- Apply triage results through guarded writes
"""

__version__ = "1.0.0"
