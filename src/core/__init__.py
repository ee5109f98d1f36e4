"""
Core Module
============

Shared core utilities and abstractions used across the application.

This module contains framework-agnostic code that defines the fundamental
building blocks of the system.
"""

from src.core.exceptions import (
    ApplicationException,
    DomainException,
    RepositoryException,
    ValidationException,
    ResourceNotFoundException,
    TicketNotFoundException,
    ConfigurationException,
    ExternalServiceException,
    LLMException,
    LLMUnavailableException,
    LLMTimeoutException,
    QueueException,
    ConcurrentModificationException,
    StaleTriageException,
    PolicyViolationException,
    DraftNotEditableException,
    MissingDraftException,
    TicketNotResolvableException,
    NotTicketOwnerException,
    TicketAlreadyClosedException,
)

__all__ = [
    "ApplicationException",
    "DomainException",
    "RepositoryException",
    "ValidationException",
    "ResourceNotFoundException",
    "TicketNotFoundException",
    "ConfigurationException",
    "ExternalServiceException",
    "LLMException",
    "LLMUnavailableException",
    "LLMTimeoutException",
    "QueueException",
    "ConcurrentModificationException",
    "StaleTriageException",
    "PolicyViolationException",
    "DraftNotEditableException",
    "MissingDraftException",
    "TicketNotResolvableException",
    "NotTicketOwnerException",
    "TicketAlreadyClosedException",
]
