# Overview: Shared helpers for API blueprints.

from flask import jsonify

from ..services.errors import (
    DomainError,
    AuthenticationError,
    NotFoundError,
    InsufficientInventoryError,
    AlreadyConfirmedError,
    NoCodesToResendError,
    ExternalServiceError,
)
from ..validation import ValidationError, ConflictError

_STATUS_BY_ERROR = (
    (AuthenticationError, 401),
    (NotFoundError, 404),
    (InsufficientInventoryError, 409),
    (AlreadyConfirmedError, 409),
    (NoCodesToResendError, 409),
    (ExternalServiceError, 502),
    (ValidationError, 400),
    (ConflictError, 409),
)


def error_response(exc: Exception):
    """JSON body + status for a domain or validation error."""
    status = 400
    for error_cls, code in _STATUS_BY_ERROR:
        if isinstance(exc, error_cls):
            status = code
            break

    body = {"error": str(exc)}
    if isinstance(exc, DomainError):
        body["details"] = exc.details
    return jsonify(body), status


HANDLED_ERRORS = (DomainError, ValidationError, ConflictError)
