# Overview: Flask API routes for seller registration, login and integration settings.

from flask import Blueprint, request, jsonify, g, current_app

from ..services import auth_service, session_service
from ..decorators import require_auth
from . import error_response, HANDLED_ERRORS


auth_bp = Blueprint("auth", __name__, url_prefix="/api/auth")


@auth_bp.post("/register")
def register_route():
    """Create a seller account and open a session for it."""
    data = request.get_json(silent=True) or {}
    try:
        seller = auth_service.register_seller(
            name=data.get("name"),
            email=data.get("email"),
            password=data.get("password") or "",
            phone=data.get("phone"),
        )
        _, token = session_service.create_session(
            seller.id,
            user_agent=request.headers.get("User-Agent"),
            ip_address=request.remote_addr,
        )
    except HANDLED_ERRORS as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to register seller")
        return jsonify({"error": "Internal server error"}), 500

    return jsonify({"seller": seller.to_dict(), "token": token}), 201


@auth_bp.post("/login")
def login_route():
    data = request.get_json(silent=True) or {}
    try:
        seller = auth_service.authenticate(data.get("email"), data.get("password"))
        _, token = session_service.create_session(
            seller.id,
            user_agent=request.headers.get("User-Agent"),
            ip_address=request.remote_addr,
        )
    except HANDLED_ERRORS as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to login seller")
        return jsonify({"error": "Internal server error"}), 500

    return jsonify({"seller": seller.to_dict(), "token": token}), 200


@auth_bp.post("/logout")
@require_auth
def logout_route():
    session_service.revoke_session(g.session_token)
    return jsonify({"message": "Logged out"}), 200


@auth_bp.get("/me")
@require_auth
def me_route():
    return jsonify({"seller": g.current_seller.to_dict()}), 200


@auth_bp.put("/integrations")
@require_auth
def update_integrations_route():
    """
    Store WhatsApp gateway and Mercado Pago credentials.

    Body keys (all optional): whatsapp_secret, whatsapp_account,
    mercadopago_token, mercadopago_webhook.
    """
    data = request.get_json(silent=True) or {}
    try:
        seller = auth_service.update_integrations(g.current_seller, data)
    except HANDLED_ERRORS as e:
        return error_response(e)
    return jsonify({"seller": seller.to_dict()}), 200
