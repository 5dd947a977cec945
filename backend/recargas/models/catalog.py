from __future__ import annotations

from ..extensions import db
from recargas.time_utils import to_utc_z


class App(db.Model):
    """
    Catalog item ("app"): a sellable product backed by single-use codes.

    INVARIANT: codes_available equals the number of unused Code rows for the
    app and is never negative. It is only changed by code ingestion and sale
    confirmation, in the same transaction as the code rows themselves.
    """
    __tablename__ = "apps"
    __table_args__ = (
        db.CheckConstraint("codes_available >= 0", name="ck_apps_codes_available_nonneg"),
        db.CheckConstraint("price_cents >= 0", name="ck_apps_price_nonneg"),
        db.Index("ix_apps_seller_name", "seller_id", "name"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    seller_id = db.Column(db.Integer, db.ForeignKey("sellers.id"), nullable=False, index=True)

    name = db.Column(db.String(128), nullable=False)
    price_cents = db.Column(db.Integer, nullable=False, default=0)

    # Denormalized count of unused codes
    codes_available = db.Column(db.Integer, nullable=False, default=0)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    version_id = db.Column(db.Integer, nullable=False, default=1)

    seller = db.relationship("Seller", backref=db.backref("apps", lazy=True))
    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "seller_id": self.seller_id,
            "name": self.name,
            "price_cents": self.price_cents,
            "codes_available": self.codes_available,
            "created_at": to_utc_z(self.created_at),
            "version_id": self.version_id,
        }


class Code(db.Model):
    """
    Single-use redemption code.

    The code string is unique across the whole store, not just per app.
    Transitions unused -> used exactly once, when attached to a sale item.
    """
    __tablename__ = "codes"
    __table_args__ = (
        db.UniqueConstraint("code", name="uq_codes_code"),
        db.Index("ix_codes_app_used", "app_id", "used"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    app_id = db.Column(db.Integer, db.ForeignKey("apps.id"), nullable=False, index=True)

    code = db.Column(db.String(255), nullable=False)
    used = db.Column(db.Boolean, nullable=False, default=False)
    used_at = db.Column(db.DateTime(timezone=True), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    app = db.relationship("App", backref=db.backref("codes", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "app_id": self.app_id,
            "code": self.code,
            "used": self.used,
            "used_at": to_utc_z(self.used_at) if self.used_at else None,
            "created_at": to_utc_z(self.created_at),
        }
