# Overview: Service-layer operations for bearer sessions.

"""
Seller bearer sessions.

A successful login hands the seller's client an opaque token. Only its
SHA-256 digest is persisted, so a leaked database cannot be replayed against
the API. A token stops working when any of these happen:
- it is older than SESSION_ABSOLUTE_TIMEOUT
- it was unused for SESSION_IDLE_TIMEOUT (revoked on the next attempt)
- the seller logged out or was deactivated
"""

import secrets
import hashlib
from dataclasses import dataclass
from datetime import timedelta

from ..extensions import db
from ..models import SessionToken, Seller
from .errors import AuthenticationError
from recargas.time_utils import utcnow


SESSION_ABSOLUTE_TIMEOUT = timedelta(hours=24)
SESSION_IDLE_TIMEOUT = timedelta(hours=8)


@dataclass
class SessionContext:
    """Authenticated seller plus the session record that vouched for it."""
    seller: Seller
    session: SessionToken

    @property
    def seller_id(self) -> int:
        return self.seller.id


def generate_token() -> str:
    """64-character hex string (32 bytes of entropy). Never stored."""
    return secrets.token_hex(32)


def hash_token(token: str) -> str:
    """
    Digest stored in session_tokens.token_hash.

    Tokens carry 256 bits of entropy, so plain SHA-256 is enough.
    """
    return hashlib.sha256(token.encode('utf-8')).hexdigest()


def create_session(
    seller_id: int,
    user_agent: str | None = None,
    ip_address: str | None = None
) -> tuple[SessionToken, str]:
    """
    Open a session for an active seller.

    Returns (session_record, plaintext_token). The plaintext goes back to the
    client once and is never stored.
    """
    seller = db.session.query(Seller).filter_by(id=seller_id).first()
    if not seller:
        raise AuthenticationError("Seller not found")
    if not seller.is_active:
        raise AuthenticationError("Seller account is not active")

    plaintext_token = generate_token()
    now = utcnow()

    session = SessionToken(
        seller_id=seller_id,
        token_hash=hash_token(plaintext_token),
        created_at=now,
        last_used_at=now,
        expires_at=now + SESSION_ABSOLUTE_TIMEOUT,
        user_agent=user_agent[:512] if user_agent else None,
        ip_address=ip_address,
        is_revoked=False
    )

    db.session.add(session)
    db.session.commit()

    return session, plaintext_token


def _revoke(session: SessionToken, reason: str) -> None:
    session.is_revoked = True
    session.revoked_at = utcnow()
    session.revoked_reason = reason
    db.session.commit()


def validate_session(token: str) -> SessionContext | None:
    """
    Resolve a bearer token to its seller.

    Returns None if the token is unknown, expired, idle too long, revoked, or
    the seller account was deactivated. Updates last_used_at on success.
    """
    now = utcnow()

    session = db.session.query(SessionToken).filter_by(
        token_hash=hash_token(token),
        is_revoked=False
    ).first()

    if not session:
        return None

    if session.expires_at < now:
        return None

    if now - session.last_used_at > SESSION_IDLE_TIMEOUT:
        _revoke(session, "Idle timeout")
        return None

    seller = session.seller
    if not seller or not seller.is_active:
        _revoke(session, "Seller account deactivated")
        return None

    session.last_used_at = now
    db.session.commit()

    return SessionContext(seller=seller, session=session)


def revoke_session(token: str, reason: str = "Logout") -> bool:
    """Revoke by plaintext token. Returns False if it was not active."""
    session = db.session.query(SessionToken).filter_by(
        token_hash=hash_token(token),
        is_revoked=False
    ).first()
    if not session:
        return False
    _revoke(session, reason)
    return True
