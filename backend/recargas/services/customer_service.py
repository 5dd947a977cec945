# backend/recargas/services/customer_service.py
"""
Customer Service

All operations are scoped to the calling seller; foreign customers behave as
missing ones.
"""
from __future__ import annotations

from ..extensions import db
from ..models import Customer, Sale
from ..validation import ConflictError
from .ownership_service import require_seller, require_owned

CUSTOMER_MUTABLE_FIELDS = {"name", "email", "phone"}


def apply_customer_patch(c: Customer, patch: dict) -> None:
    for k, v in patch.items():
        if k not in CUSTOMER_MUTABLE_FIELDS:
            continue
        setattr(c, k, v)


def list_customers(seller_id: int) -> list[Customer]:
    require_seller(seller_id)
    return (
        db.session.query(Customer)
        .filter(Customer.seller_id == seller_id)
        .order_by(Customer.name.asc(), Customer.id.asc())
        .all()
    )


def get_customer(seller_id: int, customer_id: int) -> Customer:
    return require_owned(Customer, customer_id, seller_id, "Customer")


def create_customer(seller_id: int, patch: dict) -> Customer:
    require_seller(seller_id)
    customer = Customer(seller_id=seller_id)
    apply_customer_patch(customer, patch)
    db.session.add(customer)
    db.session.commit()
    return customer


def update_customer(seller_id: int, customer_id: int, patch: dict) -> Customer:
    customer = require_owned(Customer, customer_id, seller_id, "Customer")
    apply_customer_patch(customer, patch)
    db.session.commit()
    return customer


def delete_customer(seller_id: int, customer_id: int) -> None:
    """
    Delete a customer. Customers referenced by sales are kept: deleting them
    would orphan order history.
    """
    customer = require_owned(Customer, customer_id, seller_id, "Customer")

    has_sales = db.session.query(Sale.id).filter(Sale.customer_id == customer.id).first()
    if has_sales:
        raise ConflictError("Customer has sales and cannot be deleted")

    db.session.delete(customer)
    db.session.commit()
