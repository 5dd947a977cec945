"""
Ownership Service: Seller Scoping Helpers

WHY: Centralize the "this row belongs to the caller" check. Every customer,
app, sale (and, through its app, every code) belongs to exactly one seller,
and reads/writes against another seller's rows must fail exactly as if the
row did not exist.

SECURITY INVARIANTS:
1. Every service entry point receives the caller's seller_id
2. A missing seller_id means there is no session: AuthenticationError
3. Foreign rows raise NotFoundError (never reveal that they exist)
4. Cross-seller attempts are logged as security events

USAGE:
    from recargas.services.ownership_service import require_seller, require_owned

    seller_id = require_seller(seller_id)
    sale = require_owned(Sale, sale_id, seller_id, "Sale")
"""

from flask import current_app, has_request_context, request

from ..extensions import db
from ..models import SecurityEvent
from .errors import AuthenticationError, NotFoundError


def require_seller(seller_id: int | None) -> int:
    """Guard used at the top of every scoped service call."""
    if seller_id is None:
        raise AuthenticationError("Seller not authenticated")
    return seller_id


def require_owned(model, record_id: int, seller_id: int, label: str, *, lock: bool = False):
    """
    Load `model` row `record_id` and check it belongs to `seller_id`.

    Args:
        model: SQLAlchemy model with a seller_id column
        record_id: Primary key from client input
        seller_id: Caller's seller id
        label: Name used in the error message ("Sale", "Customer", ...)
        lock: SELECT ... FOR UPDATE the row

    Raises:
        AuthenticationError if seller_id is None
        NotFoundError if the row is missing or owned by another seller
    """
    require_seller(seller_id)

    query = db.session.query(model).filter(model.id == record_id)
    if lock:
        query = query.with_for_update()
    record = query.first()

    if record is None:
        raise NotFoundError(f"{label} not found", details={"id": record_id})

    if record.seller_id != seller_id:
        _log_cross_seller_attempt(
            f"{label} {record_id} belongs to seller {record.seller_id}, not {seller_id}",
            seller_id=seller_id,
        )
        raise NotFoundError(f"{label} not found", details={"id": record_id})  # Don't reveal it exists

    return record


def log_security_event(
    *,
    seller_id: int | None,
    event_type: str,
    success: bool,
    reason: str | None = None,
    resource: str | None = None,
    action: str | None = None,
) -> SecurityEvent:
    """
    Append a security event. Request metadata is filled in when available.

    The event is added to the session; the caller's commit (or the explicit
    commit in _log_cross_seller_attempt) persists it.
    """
    ip_address = None
    user_agent = None
    if has_request_context():
        resource = resource or request.path
        action = action or request.method
        ip_address = request.remote_addr
        user_agent = request.headers.get("User-Agent")

    event = SecurityEvent(
        seller_id=seller_id,
        event_type=event_type,
        success=success,
        reason=reason,
        resource=resource,
        action=action,
        ip_address=ip_address,
        user_agent=user_agent[:512] if user_agent else None,
    )
    db.session.add(event)
    return event


def _log_cross_seller_attempt(reason: str, seller_id: int | None) -> None:
    """
    Record a denied cross-seller access.

    Committed immediately: the surrounding operation is about to fail and
    roll back, and the audit row must survive that.
    """
    current_app.logger.warning("Cross-seller access denied: %s", reason)
    log_security_event(
        seller_id=seller_id,
        event_type="CROSS_SELLER_ACCESS_DENIED",
        success=False,
        reason=reason,
    )
    db.session.commit()
