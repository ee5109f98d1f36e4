"""
Core Exceptions
================

Custom exceptions for the application following clean architecture principles.

These exceptions define domain-specific errors that can be caught and handled
appropriately at the application boundaries. Every exception declares through
``retryable`` whether repeating the operation can succeed; the triage worker
hands that flag to the job queue to choose between backoff and dead-lettering.
"""

from typing import Optional, Any


class ApplicationException(Exception):
    """Base exception for all application errors."""

    retryable: bool = False

    def __init__(self, message: str, details: Optional[dict] = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)


class DomainException(ApplicationException):
    """Base exception for domain logic violations."""


class RepositoryException(ApplicationException):
    """Base exception for repository/data access errors (store unavailable)."""

    retryable = True


class ValidationException(ApplicationException):
    """Exception for validation errors."""


class ResourceNotFoundException(ApplicationException):
    """Exception when a requested resource is not found."""

    def __init__(
        self,
        resource_type: str,
        resource_id: Optional[Any] = None,
        details: Optional[dict] = None
    ):
        self.resource_type = resource_type
        self.resource_id = resource_id
        message = f"{resource_type}"
        if resource_id is not None:
            message += f" with id '{resource_id}'"
        message += " not found"
        super().__init__(message, details)


class TicketNotFoundException(ResourceNotFoundException):
    """Ticket does not exist (terminal for a triage job)."""

    def __init__(self, ticket_id: int):
        self.ticket_id = ticket_id
        super().__init__("Ticket", ticket_id)


class ConfigurationException(ApplicationException):
    """Exception for configuration errors."""


class ExternalServiceException(ApplicationException):
    """Base exception for external service failures."""

    retryable = True

    def __init__(
        self,
        service_name: str,
        message: str,
        details: Optional[dict] = None
    ):
        self.service_name = service_name
        super().__init__(f"{service_name}: {message}", details)


class LLMException(ExternalServiceException):
    """Exception for LLM API failures."""

    def __init__(self, message: str, details: Optional[dict] = None):
        super().__init__("LLM Service", message, details)


class LLMUnavailableException(LLMException):
    """Model endpoint could not be reached or answered with an error."""


class LLMTimeoutException(LLMException):
    """Model call exceeded its time limit."""

    def __init__(self, timeout_seconds: float):
        self.timeout_seconds = timeout_seconds
        super().__init__(
            f"Request timed out after {timeout_seconds}s",
            {"timeout_seconds": timeout_seconds}
        )


class QueueException(ExternalServiceException):
    """Exception for job queue backend failures."""

    def __init__(self, message: str, details: Optional[dict] = None):
        super().__init__("Job Queue", message, details)


class ConcurrentModificationException(DomainException):
    """A guarded ticket write lost a race against another writer."""

    retryable = True

    def __init__(self, ticket_id: int):
        self.ticket_id = ticket_id
        super().__init__(
            f"Ticket {ticket_id} was modified concurrently",
            {"ticket_id": ticket_id}
        )


class StaleTriageException(DomainException):
    """Triage result arrived after the ticket left the editable statuses."""

    def __init__(self, ticket_id: int, status: str):
        self.ticket_id = ticket_id
        self.status = status
        super().__init__(
            f"Stale triage result discarded: ticket {ticket_id} is {status}",
            {"ticket_id": ticket_id, "status": status}
        )


# ========== Policy / precondition errors ==========

class PolicyViolationException(DomainException):
    """
    A lifecycle action is not legal for the ticket's current state.

    Carries a stable ``code`` and a user-facing ``reason``.
    """

    code: str = "POLICY_VIOLATION"

    def __init__(self, ticket_id: int, reason: str, details: Optional[dict] = None):
        self.ticket_id = ticket_id
        self.reason = reason
        super().__init__(reason, {"ticket_id": ticket_id, **(details or {})})


class DraftNotEditableException(PolicyViolationException):
    code = "DRAFT_NOT_EDITABLE"

    def __init__(self, ticket_id: int, status: str):
        self.status = status
        super().__init__(
            ticket_id,
            f"Cannot edit the response draft of a {status} ticket.",
            {"status": status}
        )


class MissingDraftException(PolicyViolationException):
    code = "MISSING_DRAFT"

    def __init__(self, ticket_id: int):
        super().__init__(
            ticket_id,
            "Ticket has no response draft. Add or generate a draft before resolving."
        )


class TicketNotResolvableException(PolicyViolationException):
    code = "NOT_RESOLVABLE"

    def __init__(self, ticket_id: int, status: str):
        self.status = status
        super().__init__(
            ticket_id,
            f"Only OPEN or IN_PROGRESS tickets can be resolved (ticket is {status}).",
            {"status": status}
        )


class NotTicketOwnerException(PolicyViolationException):
    code = "NOT_TICKET_OWNER"

    def __init__(self, ticket_id: int):
        super().__init__(
            ticket_id,
            "Only the creator of this ticket can perform this action."
        )


class TicketAlreadyClosedException(PolicyViolationException):
    code = "ALREADY_CLOSED"

    def __init__(self, ticket_id: int):
        super().__init__(ticket_id, "Ticket is already closed.")
