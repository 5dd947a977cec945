# Overview: Flask API routes for sales; creation, confirmation, updates and PIX charges.

# backend/recargas/routes/sales.py
"""Sales API routes, scoped to the authenticated seller"""

from flask import Blueprint, request, jsonify, g, current_app

from ..services import sales_service
from ..validation import ValidationError, coerce_int
from ..decorators import require_auth
from . import error_response, HANDLED_ERRORS


sales_bp = Blueprint("sales", __name__, url_prefix="/api/sales")


@sales_bp.get("")
@require_auth
def list_sales_route():
    status = request.args.get("status")
    sales = sales_service.list_sales(g.seller_id, status=status)
    return jsonify({"items": [s.to_dict() for s in sales], "count": len(sales)}), 200


@sales_bp.post("")
@require_auth
def create_sale_route():
    """
    Create a pending sale.

    Body: {"customer_id": int, "items": [{"app_id", "quantity", "price_cents"}],
           "payment_id": str (optional)}
    """
    data = request.get_json(silent=True) or {}
    try:
        if data.get("customer_id") is None:
            raise ValidationError("customer_id required")
        payment_id = data.get("payment_id")
        sale = sales_service.create_sale(
            g.seller_id,
            coerce_int(data["customer_id"], "customer_id"),
            data.get("items"),
            payment_id=str(payment_id) if payment_id else None,
        )
    except HANDLED_ERRORS as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to create sale")
        return jsonify({"error": "Internal server error"}), 500

    return jsonify({"sale": sale.to_dict()}), 201


@sales_bp.get("/<int:sale_id>")
@require_auth
def get_sale_route(sale_id: int):
    try:
        sale = sales_service.get_sale(g.seller_id, sale_id)
    except HANDLED_ERRORS as e:
        return error_response(e)
    return jsonify({"sale": sale.to_dict()}), 200


@sales_bp.post("/<int:sale_id>/confirm")
@require_auth
def confirm_sale_route(sale_id: int):
    """
    Allocate codes and confirm.

    The response carries the refreshed apps so clients can replace their
    copies of codes_available instead of recomputing them.
    """
    try:
        sale = sales_service.confirm_sale(g.seller_id, sale_id)
        apps = sales_service.apps_for_sale(sale)
    except HANDLED_ERRORS as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to confirm sale")
        return jsonify({"error": "Internal server error"}), 500

    return jsonify({"sale": sale.to_dict(), "apps": [a.to_dict() for a in apps]}), 200


@sales_bp.put("/<int:sale_id>")
@require_auth
def update_sale_route(sale_id: int):
    """Body keys (optional): customer_id, total_price_cents, status."""
    data = request.get_json(silent=True) or {}
    try:
        if not isinstance(data, dict):
            raise ValidationError("Invalid JSON payload")
        patch = dict(data)
        if patch.get("customer_id") is not None:
            patch["customer_id"] = coerce_int(patch["customer_id"], "customer_id")
        sale = sales_service.update_sale(g.seller_id, sale_id, patch)
    except HANDLED_ERRORS as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to update sale")
        return jsonify({"error": "Internal server error"}), 500

    return jsonify({"sale": sale.to_dict()}), 200


@sales_bp.post("/<int:sale_id>/cancel")
@require_auth
def cancel_sale_route(sale_id: int):
    try:
        sale = sales_service.cancel_sale(g.seller_id, sale_id)
    except HANDLED_ERRORS as e:
        return error_response(e)
    return jsonify({"sale": sale.to_dict()}), 200


@sales_bp.delete("/<int:sale_id>")
@require_auth
def delete_sale_route(sale_id: int):
    try:
        sales_service.delete_sale(g.seller_id, sale_id)
    except HANDLED_ERRORS as e:
        return error_response(e)
    return jsonify({"deleted": True, "id": sale_id}), 200


@sales_bp.post("/<int:sale_id>/resend-codes")
@require_auth
def resend_codes_route(sale_id: int):
    try:
        delivered = sales_service.resend_order_codes(g.seller_id, sale_id)
    except HANDLED_ERRORS as e:
        return error_response(e)
    return jsonify({"delivered": delivered}), 200


@sales_bp.post("/<int:sale_id>/pix")
@require_auth
def create_pix_route(sale_id: int):
    """Create a PIX charge for the sale total (Mercado Pago)."""
    try:
        sale, charge = sales_service.attach_payment(g.seller_id, sale_id)
    except HANDLED_ERRORS as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to create PIX charge")
        return jsonify({"error": "Internal server error"}), 500

    return jsonify({"sale": sale.to_dict(), "payment": charge.to_dict()}), 201
