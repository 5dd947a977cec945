# Overview: Service-layer operations for seller accounts; passwords, registration, login.

"""
Seller Authentication Service

WHY: Every customer, app, code and sale is owned by a seller account, so
the account is the root of all access checks. Passwords are bcrypt-hashed.

SECURITY NOTES:
- Passwords hashed with bcrypt (cost factor 12)
- Minimum 8 characters, must contain a letter and a digit
- Session tokens managed separately (see session_service.py)
- Failed logins are recorded as security events
"""

import re

import bcrypt

from ..extensions import db
from ..models import Seller
from ..validation import ValidationError, ConflictError
from recargas.time_utils import utcnow
from .errors import AuthenticationError
from .ownership_service import log_security_event


class PasswordValidationError(ValidationError):
    """Raised when password doesn't meet strength requirements."""
    pass


EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")

INTEGRATION_FIELDS = ("whatsapp_secret", "whatsapp_account", "mercadopago_token", "mercadopago_webhook")


def validate_password_strength(password: str) -> None:
    """
    Validate password meets strength requirements.

    Raises PasswordValidationError if requirements not met.
    """
    if len(password) < 8:
        raise PasswordValidationError("Password must be at least 8 characters long")

    if not re.search(r'[A-Za-z]', password):
        raise PasswordValidationError("Password must contain at least one letter")

    if not re.search(r'\d', password):
        raise PasswordValidationError("Password must contain at least one digit")


def hash_password(password: str) -> str:
    """
    Hash password using bcrypt with cost factor 12.

    Password is validated for strength before hashing.
    """
    validate_password_strength(password)
    salt = bcrypt.gensalt(rounds=12)
    hashed = bcrypt.hashpw(password.encode('utf-8'), salt)
    return hashed.decode('utf-8')  # Store as string in database


def verify_password(password: str, password_hash: str) -> bool:
    """Timing-safe bcrypt check. Malformed hashes never match."""
    try:
        return bcrypt.checkpw(password.encode('utf-8'), password_hash.encode('utf-8'))
    except ValueError:
        return False


def register_seller(name: str, email: str, password: str, phone: str | None = None) -> Seller:
    """
    Create a seller account.

    Raises:
        ValidationError: blank name, malformed email, weak password
        ConflictError: email already registered
    """
    name = (name or "").strip()
    email = (email or "").strip().lower()

    if not name:
        raise ValidationError("name is required")
    if not EMAIL_RE.match(email):
        raise ValidationError("email is invalid")

    existing = db.session.query(Seller).filter_by(email=email).first()
    if existing:
        raise ConflictError("Email already registered")

    seller = Seller(
        name=name,
        email=email,
        phone=(phone or "").strip() or None,
        password_hash=hash_password(password),
        is_active=True,
    )
    db.session.add(seller)
    db.session.commit()
    return seller


def authenticate(email: str, password: str) -> Seller:
    """
    Check credentials and stamp last_login_at.

    Raises AuthenticationError with the same message for unknown email, wrong
    password and deactivated account.
    """
    email = (email or "").strip().lower()
    seller = db.session.query(Seller).filter_by(email=email).first()

    if not seller or not seller.is_active or not verify_password(password or "", seller.password_hash):
        log_security_event(
            seller_id=seller.id if seller else None,
            event_type="LOGIN_FAILED",
            success=False,
            reason="Invalid credentials" if seller and seller.is_active else "Unknown or inactive account",
        )
        db.session.commit()
        raise AuthenticationError("Invalid email or password")

    seller.last_login_at = utcnow()
    db.session.commit()
    return seller


def update_integrations(seller: Seller, data: dict) -> Seller:
    """
    Store WhatsApp / Mercado Pago credentials. Only provided keys change;
    empty strings clear a value.
    """
    for key in INTEGRATION_FIELDS:
        if key in data:
            value = data[key]
            if value is not None and not isinstance(value, str):
                raise ValidationError(f"{key} must be a string")
            setattr(seller, key, (value or "").strip() or None)

    db.session.commit()
    return seller
