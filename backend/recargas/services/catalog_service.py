# backend/recargas/services/catalog_service.py
"""
Catalog Service: apps (sellable products backed by codes).

codes_available is not client-writable; it only moves with code ingestion
(code_inventory_service) and sale confirmation (sales_service).
"""
from __future__ import annotations

from ..extensions import db
from ..models import App, Code, SaleItem
from ..validation import ConflictError
from .ownership_service import require_seller, require_owned

APP_MUTABLE_FIELDS = {"name", "price_cents"}


def apply_app_patch(a: App, patch: dict) -> None:
    for k, v in patch.items():
        if k not in APP_MUTABLE_FIELDS:
            continue
        setattr(a, k, v)


def list_apps(seller_id: int) -> list[App]:
    require_seller(seller_id)
    return (
        db.session.query(App)
        .filter(App.seller_id == seller_id)
        .order_by(App.name.asc(), App.id.asc())
        .all()
    )


def get_app(seller_id: int, app_id: int, *, lock: bool = False) -> App:
    return require_owned(App, app_id, seller_id, "App", lock=lock)


def create_app(seller_id: int, patch: dict) -> App:
    require_seller(seller_id)
    app = App(seller_id=seller_id, codes_available=0)
    apply_app_patch(app, patch)
    db.session.add(app)
    db.session.commit()
    return app


def update_app(seller_id: int, app_id: int, patch: dict) -> App:
    app = require_owned(App, app_id, seller_id, "App")
    apply_app_patch(app, patch)
    db.session.commit()
    return app


def delete_app(seller_id: int, app_id: int) -> None:
    """
    Delete an app and its unused codes.

    Apps referenced by sale items cannot be deleted: their used codes are
    attached to order history.
    """
    app = require_owned(App, app_id, seller_id, "App")

    referenced = db.session.query(SaleItem.id).filter(SaleItem.app_id == app.id).first()
    if referenced:
        raise ConflictError("App is referenced by sales and cannot be deleted")

    db.session.query(Code).filter(Code.app_id == app.id).delete(synchronize_session=False)
    db.session.delete(app)
    db.session.commit()
