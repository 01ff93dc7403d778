# Overview: Request and capability decorators for API routes.

from functools import wraps
from flask import request, jsonify, g, current_app

from .capabilities import VALID_ROLES, has_capability
from .validation import coerce_int
from .errors import ValidationError


def _load_actor() -> bool:
    """
    Populate g.user_id / g.role from upstream identity headers.

    Returns False when identity is missing or malformed.
    """
    raw_user_id = request.headers.get("X-User-Id")
    role = (request.headers.get("X-User-Role") or "").strip().upper()
    if not raw_user_id or role not in VALID_ROLES:
        return False
    try:
        g.user_id = coerce_int(raw_user_id, "X-User-Id")
    except ValidationError:
        return False
    g.role = role
    return True


def require_capability(capability: str):
    """
    Require identity plus a capability granted to the caller's role.

    401 when identity is missing, 403 when the role lacks the capability.
    """
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            if not _load_actor():
                return jsonify({"error": "Authentication required"}), 401

            if not has_capability(g.role, capability):
                current_app.logger.info(
                    "Capability %s denied for user %s (%s) on %s",
                    capability, g.user_id, g.role, request.path,
                )
                return jsonify({
                    "error": "Permission denied",
                    "required_capability": capability,
                }), 403

            return f(*args, **kwargs)

        return decorated_function
    return decorator
