# Overview: Health endpoint.

from flask import Blueprint, jsonify, current_app
from sqlalchemy import text

from ..extensions import db
from recargas.time_utils import utcnow, to_utc_z


system_bp = Blueprint("system", __name__, url_prefix="/api")


@system_bp.get("/health")
def health():
    """Liveness plus a trivial database round trip."""
    try:
        db.session.execute(text("SELECT 1"))
        database = "ok"
        status_code = 200
    except Exception:
        current_app.logger.exception("Database health check failed")
        database = "error"
        status_code = 503

    return jsonify({
        "status": "ok" if status_code == 200 else "degraded",
        "database": database,
        "time": to_utc_z(utcnow()),
    }), status_code
