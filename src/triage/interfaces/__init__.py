"""
Triage Interfaces Layer
=======================

Operator routes for the triage job queue (dead-job inspection).
"""

from src.triage.interfaces.controllers import router as triage_router

__all__ = ["triage_router"]
