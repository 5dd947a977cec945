# Overview: Request decorators for API routes.

from functools import wraps
from flask import request, jsonify, g

from .services import session_service


def _bearer_token() -> str | None:
    auth_header = request.headers.get("Authorization")
    if not auth_header or not auth_header.startswith("Bearer "):
        return None
    return auth_header.split(" ", 1)[1].strip() or None


def require_auth(f):
    """
    Require authentication and establish the seller scope.

    Sets the following Flask g attributes:
    - g.current_seller: The authenticated Seller object
    - g.seller_id: Ownership scope for every service call
    - g.session_context: The full SessionContext object
    - g.session_token: The plaintext bearer token (for logout)

    Returns 401 if the header is missing, or the token is invalid, expired,
    revoked, or belongs to a deactivated seller.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        token = _bearer_token()
        if not token:
            return jsonify({"error": "Authentication required"}), 401

        context = session_service.validate_session(token)
        if not context:
            return jsonify({"error": "Invalid or expired token"}), 401

        g.current_seller = context.seller
        g.seller_id = context.seller_id
        g.session_context = context
        g.session_token = token

        return f(*args, **kwargs)

    return decorated_function
