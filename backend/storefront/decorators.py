# Overview: Request decorators for admin API routes.

import hmac
from functools import wraps
from flask import current_app, g, jsonify, request


def require_admin(f):
    """
    Require the admin bearer token.

    Sets g.admin_actor from the X-Admin-User header (defaults to "admin"),
    used to stamp approvals and rejections.

    SECURITY: Returns 401 if the token is missing or wrong, 503 if no
    ADMIN_API_TOKEN is configured (admin API disabled).
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        expected = current_app.config.get("ADMIN_API_TOKEN") or ""
        if not expected:
            return jsonify({"error": "Admin API is not configured"}), 503

        auth_header = request.headers.get("Authorization")
        if not auth_header or not auth_header.startswith("Bearer "):
            return jsonify({"error": "Authentication required"}), 401

        token = auth_header.split(" ", 1)[1]
        if not hmac.compare_digest(token.encode(), expected.encode()):
            current_app.logger.warning("Rejected admin request to %s", request.path)
            return jsonify({"error": "Invalid token"}), 401

        g.admin_actor = (request.headers.get("X-Admin-User") or "admin").strip()[:128]
        return f(*args, **kwargs)

    return decorated_function
