"""
Session and bearer-token guards for page and API routes
"""
from functools import wraps
from flask import session, flash, redirect, url_for, request, jsonify, g
from utils.logger import get_logger


def is_authenticated_or_guest() -> bool:
    return "user_id" in session or bool(session.get("auth_skipped"))


def login_required(f):
    @wraps(f)
    def decorated_function(*args, **kwargs):
        if "user_id" not in session:
            flash("Please sign in first!", "warning")
            return redirect(url_for("auth_page"))
        return f(*args, **kwargs)
    return decorated_function


def bearer_token():
    header = request.headers.get("Authorization", "")
    if header.lower().startswith("bearer "):
        return header[7:].strip() or None
    return None


def api_auth_required(get_client):
    """Resolve the bearer token to a Supabase user and store it on ``g.api_user``.

    ``get_client`` is called per request so tests can swap the module-level client.
    """
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            token = bearer_token()
            if not token:
                return jsonify({"error": "Unauthorized", "message": "Missing bearer token"}), 401
            client = get_client()
            if client is None:
                return jsonify({"error": "Database not configured"}), 500
            try:
                res = client.auth.get_user(token)
            except Exception as err:
                get_logger().warning(f"Token verification failed: {err}")
                return jsonify({"error": "Unauthorized", "message": "Invalid token"}), 401
            user = getattr(res, "user", None)
            if not user:
                return jsonify({"error": "Unauthorized", "message": "Invalid token"}), 401
            g.api_user = {
                "id": user.id,
                "email": getattr(user, "email", None),
                "user_metadata": getattr(user, "user_metadata", None) or {},
            }
            return f(*args, **kwargs)
        return decorated_function
    return decorator
