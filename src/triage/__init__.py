"""
Triage Module
=============

Bounded Context for asynchronous AI triage of new tickets.

Responsibilities:
- Classify tickets by category, sentiment and urgency and draft a reply
- Parse and normalize untrusted model output
- Consume the triage job queue with a bounded worker pool
- Record every processing attempt in the worker process audit log
"""

__version__ = "1.0.0"
