# Overview: Flask API routes for catalog apps and their code inventory.

"""
Catalog routes.

codes_available is read-only here: it only changes through code ingestion
and sale confirmation.
"""
from flask import Blueprint, request, jsonify, g, current_app

from ..models import App
from ..services import catalog_service, code_inventory_service
from ..validation import ModelValidationPolicy, ValidationError, validate_payload, enforce_rules_app
from ..decorators import require_auth
from . import error_response, HANDLED_ERRORS

APP_POLICY = ModelValidationPolicy(
    writable_fields={"name", "price_cents"},
    required_on_create={"name", "price_cents"},
)

apps_bp = Blueprint("apps", __name__, url_prefix="/api")


def _parse_used_filter() -> bool | None:
    raw = request.args.get("used")
    if raw is None:
        return None
    lowered = raw.strip().lower()
    if lowered in {"1", "true", "yes"}:
        return True
    if lowered in {"0", "false", "no"}:
        return False
    raise ValidationError("used must be true or false")


@apps_bp.get("/apps")
@require_auth
def list_apps_route():
    apps = catalog_service.list_apps(g.seller_id)
    return jsonify({"items": [a.to_dict() for a in apps], "count": len(apps)}), 200


@apps_bp.post("/apps")
@require_auth
def create_app_route():
    payload = request.get_json(silent=True) or {}
    try:
        patch = validate_payload(model=App, payload=payload, policy=APP_POLICY, partial=False)
        enforce_rules_app(patch)
        app = catalog_service.create_app(g.seller_id, patch)
    except HANDLED_ERRORS as e:
        return error_response(e)
    return jsonify({"app": app.to_dict()}), 201


@apps_bp.get("/apps/<int:app_id>")
@require_auth
def get_app_route(app_id: int):
    try:
        app = catalog_service.get_app(g.seller_id, app_id)
    except HANDLED_ERRORS as e:
        return error_response(e)
    return jsonify({"app": app.to_dict()}), 200


@apps_bp.put("/apps/<int:app_id>")
@require_auth
def update_app_route(app_id: int):
    payload = request.get_json(silent=True) or {}
    try:
        patch = validate_payload(model=App, payload=payload, policy=APP_POLICY, partial=True)
        enforce_rules_app(patch)
        app = catalog_service.update_app(g.seller_id, app_id, patch)
    except HANDLED_ERRORS as e:
        return error_response(e)
    return jsonify({"app": app.to_dict()}), 200


@apps_bp.delete("/apps/<int:app_id>")
@require_auth
def delete_app_route(app_id: int):
    try:
        catalog_service.delete_app(g.seller_id, app_id)
    except HANDLED_ERRORS as e:
        return error_response(e)
    return jsonify({"deleted": True, "id": app_id}), 200


@apps_bp.get("/apps/<int:app_id>/codes")
@require_auth
def list_app_codes_route(app_id: int):
    try:
        codes = code_inventory_service.list_codes(g.seller_id, app_id=app_id, used=_parse_used_filter())
    except HANDLED_ERRORS as e:
        return error_response(e)
    return jsonify({"items": [c.to_dict() for c in codes], "count": len(codes)}), 200


@apps_bp.post("/apps/<int:app_id>/codes")
@require_auth
def add_codes_route(app_id: int):
    """
    Ingest codes for an app.

    Body: {"codes": ["...", ...]} or {"text": "one code per line"}.
    Response: the three buckets, the created code rows, the refreshed app,
    and the per-chunk progress percentages.
    """
    payload = request.get_json(silent=True) or {}
    codes = payload.get("codes")
    if codes is None and "text" in payload:
        codes = code_inventory_service.parse_code_batch(payload.get("text") or "")

    progress: list[int] = []
    try:
        if codes is None:
            raise ValidationError("codes or text is required")
        result = code_inventory_service.add_codes(g.seller_id, app_id, codes, on_progress=progress.append)
        app = catalog_service.get_app(g.seller_id, app_id)
    except HANDLED_ERRORS as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to add codes")
        return jsonify({"error": "Internal server error"}), 500

    body = result.to_dict()
    body.update({
        "codes": [c.to_dict() for c in result.created],
        "app": app.to_dict(),
        "progress": progress,
    })
    return jsonify(body), 201


@apps_bp.get("/codes")
@require_auth
def list_codes_route():
    try:
        codes = code_inventory_service.list_codes(g.seller_id, used=_parse_used_filter())
    except HANDLED_ERRORS as e:
        return error_response(e)
    return jsonify({"items": [c.to_dict() for c in codes], "count": len(codes)}), 200
