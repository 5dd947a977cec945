from __future__ import annotations

from ..extensions import db
from recargas.time_utils import to_utc_z


SALE_STATUS_PENDING = "pending"
SALE_STATUS_CONFIRMED = "confirmed"
SALE_STATUS_CANCELLED = "cancelled"
VALID_SALE_STATUSES = (SALE_STATUS_PENDING, SALE_STATUS_CONFIRMED, SALE_STATUS_CANCELLED)


class Sale(db.Model):
    """
    Customer order.

    LIFECYCLE: pending -> confirmed (codes allocated) or pending -> cancelled.
    A confirmed sale can never be confirmed again.

    total_price_cents is computed from the items when the sale is created and
    afterwards only changes through an explicit update.
    """
    __tablename__ = "sales"
    __table_args__ = (
        db.Index("ix_sales_seller_status_created", "seller_id", "status", "created_at"),
        db.Index("ix_sales_seller_payment", "seller_id", "payment_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    seller_id = db.Column(db.Integer, db.ForeignKey("sellers.id"), nullable=False, index=True)
    customer_id = db.Column(db.Integer, db.ForeignKey("customers.id"), nullable=False, index=True)

    total_price_cents = db.Column(db.Integer, nullable=False, default=0)

    # Lifecycle status
    status = db.Column(db.String(16), nullable=False, default=SALE_STATUS_PENDING, index=True)

    # PIX payment tracking (provider ids are opaque strings)
    payment_id = db.Column(db.String(64), nullable=True)
    payment_status = db.Column(db.String(32), nullable=True)
    pix_code = db.Column(db.Text, nullable=True)

    # Timestamps
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    confirmed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    version_id = db.Column(db.Integer, nullable=False, default=1)

    seller = db.relationship("Seller", backref=db.backref("sales", lazy=True))
    customer = db.relationship("Customer", backref=db.backref("sales", lazy=True))
    items = db.relationship(
        "SaleItem",
        back_populates="sale",
        order_by="SaleItem.position",
        cascade="all, delete-orphan",
        lazy=True,
    )
    __mapper_args__ = {"version_id_col": version_id}

    @property
    def has_codes(self) -> bool:
        return any(item.sale_codes for item in self.items)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "seller_id": self.seller_id,
            "customer_id": self.customer_id,
            "total_price_cents": self.total_price_cents,
            "status": self.status,
            "payment_id": self.payment_id,
            "payment_status": self.payment_status,
            "created_at": to_utc_z(self.created_at),
            "confirmed_at": to_utc_z(self.confirmed_at) if self.confirmed_at else None,
            "version_id": self.version_id,
            "items": [item.to_dict() for item in self.items],
        }


class SaleItem(db.Model):
    """
    Line item. price_cents is captured when the sale is built and is never
    re-read from the catalog.
    """
    __tablename__ = "sale_items"
    __table_args__ = (
        db.CheckConstraint("quantity > 0", name="ck_sale_items_quantity_positive"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    sale_id = db.Column(db.Integer, db.ForeignKey("sales.id"), nullable=False, index=True)
    app_id = db.Column(db.Integer, db.ForeignKey("apps.id"), nullable=False, index=True)

    # Item order within the sale
    position = db.Column(db.Integer, nullable=False, default=0)

    quantity = db.Column(db.Integer, nullable=False)
    price_cents = db.Column(db.Integer, nullable=False)

    sale = db.relationship("Sale", back_populates="items")
    app = db.relationship("App")
    sale_codes = db.relationship(
        "SaleCode",
        back_populates="sale_item",
        order_by="SaleCode.id",
        cascade="all, delete-orphan",
        lazy=True,
    )

    @property
    def codes(self) -> list[str]:
        return [link.code.code for link in self.sale_codes]

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "sale_id": self.sale_id,
            "app_id": self.app_id,
            "quantity": self.quantity,
            "price_cents": self.price_cents,
            "line_total_cents": self.price_cents * self.quantity,
            "codes": self.codes,
        }


class SaleCode(db.Model):
    """
    Attachment of a consumed code to a sale item.

    code_id is unique: a code can be attached to at most one item, ever.
    """
    __tablename__ = "sale_codes"
    __table_args__ = (
        db.UniqueConstraint("code_id", name="uq_sale_codes_code"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    sale_item_id = db.Column(db.Integer, db.ForeignKey("sale_items.id"), nullable=False, index=True)
    code_id = db.Column(db.Integer, db.ForeignKey("codes.id"), nullable=False)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    sale_item = db.relationship("SaleItem", back_populates="sale_codes")
    code = db.relationship("Code")
