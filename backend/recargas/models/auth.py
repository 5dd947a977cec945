from __future__ import annotations

from ..extensions import db
from recargas.time_utils import to_utc_z


class Seller(db.Model):
    """
    Seller accounts: the tenant root for every customer, app, code and sale.

    WHY: A reseller only ever sees their own catalog and orders. The seller
    row also carries the per-seller credentials for the WhatsApp gateway and
    Mercado Pago, since each reseller sends from their own accounts.
    """
    __tablename__ = "sellers"
    __table_args__ = (
        db.UniqueConstraint("email", name="uq_sellers_email"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    name = db.Column(db.String(128), nullable=False)
    email = db.Column(db.String(255), nullable=False, index=True)
    phone = db.Column(db.String(32), nullable=True)

    # Bcrypt hashed password
    password_hash = db.Column(db.String(255), nullable=False)

    is_active = db.Column(db.Boolean, nullable=False, default=True)

    # Outbound integrations (secrets; never serialized)
    whatsapp_secret = db.Column(db.String(255), nullable=True)
    whatsapp_account = db.Column(db.String(255), nullable=True)
    mercadopago_token = db.Column(db.String(255), nullable=True)
    # Mercado Pago "secret signature" used to check x-signature on webhooks
    mercadopago_webhook = db.Column(db.String(512), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    last_login_at = db.Column(db.DateTime(timezone=True), nullable=True)

    @property
    def whatsapp_configured(self) -> bool:
        return bool(self.whatsapp_secret and self.whatsapp_account)

    @property
    def mercadopago_configured(self) -> bool:
        return bool(self.mercadopago_token)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "email": self.email,
            "phone": self.phone,
            "is_active": self.is_active,
            "whatsapp_configured": self.whatsapp_configured,
            "mercadopago_configured": self.mercadopago_configured,
            "webhook_signature_configured": bool(self.mercadopago_webhook),
            "created_at": to_utc_z(self.created_at),
            "last_login_at": to_utc_z(self.last_login_at) if self.last_login_at else None,
        }


class SessionToken(db.Model):
    """
    Bearer sessions. Only the SHA-256 of the token is stored.

    The seller_id captured here is the ownership scope of every request
    authenticated with the token.
    """
    __tablename__ = "session_tokens"
    __table_args__ = (
        db.Index("ix_session_tokens_seller_revoked", "seller_id", "is_revoked"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    seller_id = db.Column(db.Integer, db.ForeignKey("sellers.id"), nullable=False, index=True)

    token_hash = db.Column(db.String(64), nullable=False, unique=True, index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False)
    last_used_at = db.Column(db.DateTime(timezone=True), nullable=False)
    expires_at = db.Column(db.DateTime(timezone=True), nullable=False)

    is_revoked = db.Column(db.Boolean, nullable=False, default=False)
    revoked_at = db.Column(db.DateTime(timezone=True), nullable=True)
    revoked_reason = db.Column(db.String(255), nullable=True)

    user_agent = db.Column(db.String(512), nullable=True)
    ip_address = db.Column(db.String(45), nullable=True)

    seller = db.relationship("Seller", backref=db.backref("sessions", lazy=True, cascade="all, delete-orphan"))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "seller_id": self.seller_id,
            "created_at": to_utc_z(self.created_at),
            "last_used_at": to_utc_z(self.last_used_at),
            "expires_at": to_utc_z(self.expires_at),
            "is_revoked": self.is_revoked,
        }
