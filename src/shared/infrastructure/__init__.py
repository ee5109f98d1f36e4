"""
Shared Infrastructure
=====================

Low-level technical concerns reused by every bounded context:
- Structured JSON logging
"""
