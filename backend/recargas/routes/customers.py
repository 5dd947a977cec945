# Overview: Flask API routes for customer records.

"""
Customer routes. Every operation is scoped to g.seller_id.
"""
from flask import Blueprint, request, jsonify, g

from ..models import Customer
from ..services import customer_service
from ..validation import ModelValidationPolicy, validate_payload
from ..decorators import require_auth
from . import error_response, HANDLED_ERRORS

CUSTOMER_POLICY = ModelValidationPolicy(
    writable_fields={"name", "email", "phone"},
    required_on_create={"name"},
)

customers_bp = Blueprint("customers", __name__, url_prefix="/api/customers")


@customers_bp.get("")
@require_auth
def list_customers_route():
    customers = customer_service.list_customers(g.seller_id)
    return jsonify({"items": [c.to_dict() for c in customers], "count": len(customers)}), 200


@customers_bp.post("")
@require_auth
def create_customer_route():
    payload = request.get_json(silent=True) or {}
    try:
        patch = validate_payload(model=Customer, payload=payload, policy=CUSTOMER_POLICY, partial=False)
        customer = customer_service.create_customer(g.seller_id, patch)
    except HANDLED_ERRORS as e:
        return error_response(e)
    return jsonify({"customer": customer.to_dict()}), 201


@customers_bp.get("/<int:customer_id>")
@require_auth
def get_customer_route(customer_id: int):
    try:
        customer = customer_service.get_customer(g.seller_id, customer_id)
    except HANDLED_ERRORS as e:
        return error_response(e)
    return jsonify({"customer": customer.to_dict()}), 200


@customers_bp.put("/<int:customer_id>")
@require_auth
def update_customer_route(customer_id: int):
    payload = request.get_json(silent=True) or {}
    try:
        patch = validate_payload(model=Customer, payload=payload, policy=CUSTOMER_POLICY, partial=True)
        customer = customer_service.update_customer(g.seller_id, customer_id, patch)
    except HANDLED_ERRORS as e:
        return error_response(e)
    return jsonify({"customer": customer.to_dict()}), 200


@customers_bp.delete("/<int:customer_id>")
@require_auth
def delete_customer_route(customer_id: int):
    try:
        customer_service.delete_customer(g.seller_id, customer_id)
    except HANDLED_ERRORS as e:
        return error_response(e)
    return jsonify({"deleted": True, "id": customer_id}), 200
