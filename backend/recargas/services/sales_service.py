"""
Sales Service - pending sales, code allocation on confirmation, PIX payment

WHY: A sale is recorded first (pending) and only consumes inventory when it
is confirmed, either by the seller or by an approved PIX payment.

CONFIRMATION INVARIANTS:
- All items of a sale are allocated in ONE transaction; a short item rolls
  back every earlier item, so there is never a partial allocation
- A code is attached to at most one sale item (sale_codes.code_id unique)
- App.codes_available moves in the same transaction as the code rows
- A confirmed sale is never allocated again
"""

from __future__ import annotations

from flask import current_app

from ..extensions import db
from ..models import App, Customer, Sale, SaleItem, SaleCode, Seller
from ..models.sales import SALE_STATUS_PENDING, SALE_STATUS_CONFIRMED, SALE_STATUS_CANCELLED
from ..validation import ConflictError, ValidationError, enforce_rules_sale_patch, parse_sale_items
from recargas.time_utils import utcnow
from .code_inventory_service import allocate_codes
from .concurrency import begin_write, lock_for_update, run_with_retry
from .errors import AlreadyConfirmedError, InsufficientInventoryError, NoCodesToResendError, NotFoundError
from .notification_service import (
    KIND_ORDER_CODES,
    KIND_ORDER_CONFIRMATION,
    dispatch_best_effort,
    send_order_codes_now,
)
from .ownership_service import require_owned, require_seller
from .payment_service import PAYMENT_STATUS_APPROVED, PAYMENT_STATUS_PENDING, create_pix_charge, sale_status_for_payment

SALE_MUTABLE_FIELDS = {"customer_id", "total_price_cents", "status"}


def _load_owned_apps(seller_id: int, app_ids: list[int]) -> dict[int, App]:
    apps = {
        a.id: a
        for a in db.session.query(App).filter(App.seller_id == seller_id, App.id.in_(set(app_ids))).all()
    }
    for app_id in app_ids:
        if app_id not in apps:
            # Raises NotFoundError (and logs when the app belongs to someone else)
            require_owned(App, app_id, seller_id, "App")
    return apps


def create_sale(
    seller_id: int,
    customer_id: int,
    items: list[dict],
    payment_id: str | None = None,
) -> Sale:
    """
    Create a pending sale.

    items: [{app_id, quantity, price_cents}, ...] in display order. The unit
    price is the one the caller quoted; it is not re-read from the catalog.
    total_price_cents = sum(price_cents * quantity).

    Sends the order-confirmation message best-effort.
    """
    require_seller(seller_id)
    items = parse_sale_items(items)

    customer = require_owned(Customer, customer_id, seller_id, "Customer")
    _load_owned_apps(seller_id, [item["app_id"] for item in items])

    sale = Sale(
        seller_id=seller_id,
        customer_id=customer.id,
        total_price_cents=sum(item["price_cents"] * item["quantity"] for item in items),
        status=SALE_STATUS_PENDING,
        payment_id=payment_id,
        payment_status=PAYMENT_STATUS_PENDING if payment_id else None,
    )
    for position, item in enumerate(items):
        sale.items.append(SaleItem(
            app_id=item["app_id"],
            position=position,
            quantity=item["quantity"],
            price_cents=item["price_cents"],
        ))

    db.session.add(sale)
    db.session.commit()

    current_app.logger.info(
        "Sale created sale_id=%s seller_id=%s total_price_cents=%s items=%s",
        sale.id, seller_id, sale.total_price_cents, len(items),
    )

    dispatch_best_effort(sale, KIND_ORDER_CONFIRMATION)
    return sale


def _confirm_locked(sale: Sale) -> None:
    if sale.status == SALE_STATUS_CONFIRMED:
        raise AlreadyConfirmedError("Sale already confirmed", details={"sale_id": sale.id})

    if not sale.items:
        raise ValidationError("Cannot confirm a sale with no items")

    for item in sale.items:
        app = lock_for_update(db.session.query(App).filter(App.id == item.app_id)).first()
        if app is None:
            raise NotFoundError("App not found", details={"id": item.app_id})

        for code in allocate_codes(app, item.quantity):
            item.sale_codes.append(SaleCode(code_id=code.id, code=code))

    sale.status = SALE_STATUS_CONFIRMED
    sale.confirmed_at = utcnow()


def confirm_sale(seller_id: int, sale_id: int) -> Sale:
    """
    Allocate codes for every item and mark the sale confirmed.

    Raises:
        NotFoundError: sale missing or owned by another seller
        AlreadyConfirmedError: sale already confirmed (nothing is touched)
        InsufficientInventoryError: some app has fewer unused codes than the
            item quantity; the whole confirmation is rolled back
    """
    require_seller(seller_id)

    def _op():
        begin_write()
        sale = require_owned(Sale, sale_id, seller_id, "Sale", lock=True)
        _confirm_locked(sale)
        db.session.commit()
        return sale

    sale = run_with_retry(_op)

    current_app.logger.info(
        "Sale confirmed sale_id=%s seller_id=%s codes=%s",
        sale.id, seller_id, sum(len(item.sale_codes) for item in sale.items),
    )

    dispatch_best_effort(sale, KIND_ORDER_CODES)
    return sale


def update_sale(seller_id: int, sale_id: int, patch: dict) -> Sale:
    """
    Overwrite customer_id / total_price_cents / status.

    Items and codes are never touched. Moving a confirmed sale away from
    "confirmed" keeps its codes attached (and used).
    """
    sale = require_owned(Sale, sale_id, seller_id, "Sale")

    unknown = set(patch) - SALE_MUTABLE_FIELDS
    if unknown:
        raise ValidationError(f"Field not allowed: {', '.join(sorted(unknown))}")
    enforce_rules_sale_patch(patch)

    if patch.get("customer_id") is not None:
        require_owned(Customer, patch["customer_id"], seller_id, "Customer")

    if patch.get("status") == SALE_STATUS_CONFIRMED and sale.status != SALE_STATUS_CONFIRMED:
        raise ConflictError("Use the confirm operation to confirm a sale")

    if sale.has_codes and patch.get("status") == SALE_STATUS_PENDING:
        raise ConflictError("Sale already has codes attached and cannot return to pending")

    for k, v in patch.items():
        if v is None:
            continue
        setattr(sale, k, v)

    def _op():
        db.session.commit()
        return sale

    return run_with_retry(_op)


def cancel_sale(seller_id: int, sale_id: int) -> Sale:
    """Mark cancelled. Allocated codes stay used."""
    sale = update_sale(seller_id, sale_id, {"status": SALE_STATUS_CANCELLED})
    current_app.logger.info("Sale cancelled sale_id=%s seller_id=%s", sale.id, seller_id)
    return sale


def delete_sale(seller_id: int, sale_id: int) -> None:
    """
    Delete a sale with its items and code attachments.

    Codes consumed by the sale are NOT returned to the unused pool.
    """
    sale = require_owned(Sale, sale_id, seller_id, "Sale")
    db.session.delete(sale)
    db.session.commit()
    current_app.logger.info("Sale deleted sale_id=%s seller_id=%s", sale_id, seller_id)


def resend_order_codes(seller_id: int, sale_id: int) -> bool:
    """Send the codes message again. Returns whether it was delivered."""
    sale = require_owned(Sale, sale_id, seller_id, "Sale")
    if not sale.has_codes:
        raise NoCodesToResendError("Sale has no codes to resend", details={"sale_id": sale.id})
    return send_order_codes_now(sale)


def get_sale(seller_id: int, sale_id: int) -> Sale:
    return require_owned(Sale, sale_id, seller_id, "Sale")


def list_sales(seller_id: int, status: str | None = None) -> list[Sale]:
    """Newest first."""
    require_seller(seller_id)
    query = db.session.query(Sale).filter(Sale.seller_id == seller_id)
    if status:
        query = query.filter(Sale.status == status)
    return query.order_by(Sale.created_at.desc(), Sale.id.desc()).all()


def apps_for_sale(sale: Sale) -> list[App]:
    """Current rows of the apps a sale touches (for client cache refresh)."""
    app_ids = {item.app_id for item in sale.items}
    if not app_ids:
        return []
    return db.session.query(App).filter(App.id.in_(app_ids)).order_by(App.id.asc()).all()


def attach_payment(seller_id: int, sale_id: int):
    """
    Create a PIX charge for the sale total and store it on the sale.

    Returns (sale, charge). ExternalServiceError propagates.
    """
    sale = require_owned(Sale, sale_id, seller_id, "Sale")
    if sale.status == SALE_STATUS_CANCELLED:
        raise ConflictError("Cannot charge a cancelled sale")

    seller = db.session.get(Seller, seller_id)
    customer = db.session.get(Customer, sale.customer_id)

    charge = create_pix_charge(
        seller,
        sale.total_price_cents,
        f"Pedido #{sale.id}",
        {"name": customer.name if customer else "", "email": customer.email if customer else ""},
    )

    sale.payment_id = charge.payment_id
    sale.payment_status = charge.status
    sale.pix_code = charge.pix_code
    db.session.commit()
    return sale, charge


def apply_payment_status(seller_id: int, payment_id: str, status: str) -> int:
    """
    Apply a provider payment status to the seller's sales with that payment id.

    - payment_status is stored verbatim
    - "approved" on an unconfirmed sale runs the normal confirmation (codes
      are allocated); if inventory is short the sale stays pending and the
      failure is logged for the seller to resolve
    - any other status moves the sale back to pending, unless codes are
      already attached
    - cancelled sales only record payment_status

    Returns the number of sales matched.
    """
    require_seller(seller_id)
    sales = (
        db.session.query(Sale)
        .filter(Sale.seller_id == seller_id, Sale.payment_id == payment_id)
        .all()
    )

    for sale in sales:
        sale.payment_status = status
        if sale.status == SALE_STATUS_CANCELLED:
            db.session.commit()
            continue

        target = sale_status_for_payment(status)
        if target != SALE_STATUS_CONFIRMED and not sale.has_codes:
            sale.status = target
        db.session.commit()

        if status == PAYMENT_STATUS_APPROVED and sale.status != SALE_STATUS_CONFIRMED:
            try:
                confirm_sale(seller_id, sale.id)
            except InsufficientInventoryError as e:
                current_app.logger.error(
                    "Approved payment %s could not confirm sale %s: %s %s",
                    payment_id, sale.id, e, e.details,
                )

    return len(sales)
