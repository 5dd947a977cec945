# Overview: Provider callback endpoint for PIX payment status.

from flask import Blueprint, request, jsonify, current_app

from ..extensions import db
from ..models import Seller
from ..services import payment_service
from ..services.ownership_service import log_security_event
from . import error_response, HANDLED_ERRORS


payments_bp = Blueprint("payments", __name__, url_prefix="/api/payments")


@payments_bp.post("/webhook/<int:seller_id>")
def webhook_route(seller_id: int):
    """
    Mercado Pago notification for one seller's payments.

    Called by the provider without a session. Unknown sellers get 404. When
    the seller stored a webhook secret, a missing or wrong x-signature gets
    401 and a security event. Malformed payloads are acknowledged with
    updated=0 so the provider does not keep retrying them; a failed status
    lookup at the provider gets 502 so it does.
    """
    seller = db.session.get(Seller, seller_id)
    if seller is None or not seller.is_active:
        return jsonify({"error": "Seller not found"}), 404

    payload = request.get_json(silent=True)

    if seller.mercadopago_webhook:
        data_id = request.args.get("data.id") or payment_service.webhook_data_id(payload)
        if not payment_service.verify_webhook_signature(
            seller.mercadopago_webhook,
            request.headers.get("x-signature"),
            request.headers.get("x-request-id"),
            data_id,
        ):
            current_app.logger.warning("Webhook signature rejected seller_id=%s", seller.id)
            log_security_event(
                seller_id=seller.id,
                event_type="WEBHOOK_SIGNATURE_INVALID",
                success=False,
                reason="x-signature missing or does not match",
            )
            db.session.commit()
            return jsonify({"error": "Invalid signature"}), 401

    try:
        updated = payment_service.handle_webhook(seller.id, payload)
    except HANDLED_ERRORS as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Error processing webhook")
        return jsonify({"error": "Internal server error"}), 500

    return jsonify({"updated": updated}), 200
