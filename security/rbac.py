import hmac
from functools import wraps
from flask import current_app, jsonify, request

ADMIN_KEY_HEADER = "X-Admin-Key"

def has_admin_key() -> bool:
    expected = current_app.config.get("ADMIN_API_KEY")
    supplied = request.headers.get(ADMIN_KEY_HEADER)
    if not expected or not supplied:
        return False
    return hmac.compare_digest(expected, supplied)

def require_admin(fn):
    """
    Usage: @require_admin
    Admin routes stay closed while ADMIN_API_KEY is unset.
    """
    @wraps(fn)
    def wrapper(*args, **kwargs):
        if not current_app.config.get("ADMIN_API_KEY"):
            return jsonify(error="Admin access not configured"), 403
        if not has_admin_key():
            return jsonify(error="Forbidden"), 403
        return fn(*args, **kwargs)
    return wrapper
