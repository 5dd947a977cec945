# Overview: Domain error taxonomy shared by services and routes.

"""
Domain errors raised by the service layer.

Routes map each class to an HTTP status (see routes/__init__.py). Every error
carries a human-readable message and an optional `details` dict that is
returned to the client as-is.
"""


class DomainError(Exception):
    """Base class for business-rule failures surfaced to the caller."""
    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.details = details or {}


class AuthenticationError(DomainError):
    """No active seller session."""


class NotFoundError(DomainError):
    """Record does not exist or belongs to another seller."""


class InsufficientInventoryError(DomainError):
    """Fewer unused codes than the quantity requested for an app."""


class AlreadyConfirmedError(DomainError):
    """Sale is already confirmed; codes cannot be allocated twice."""


class NoCodesToResendError(DomainError):
    """Sale has no attached codes to deliver again."""


class ExternalServiceError(DomainError):
    """Payment or messaging provider failed or answered with an error."""
