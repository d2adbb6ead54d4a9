"""Middleware for caller identity."""
from functools import wraps
from flask import session, g, request, jsonify, current_app

USER_ID_HEADER = 'X-User-Id'


def load_caller():
    """
    Load the caller identity into g (Flask's per-request global).

    Called before each request. The identity comes from the Flask session
    (``user_id``) or, for API clients behind the company gateway, from the
    X-User-Id header. Sets g.user_id to None when neither is present.
    """
    g.user_id = None

    user_id = session.get('user_id')
    if user_id is None:
        user_id = (request.headers.get(USER_ID_HEADER) or '').strip() or None

    if user_id is not None:
        g.user_id = str(user_id)


def require_login(f):
    """
    Decorator: Require an identified caller.

    Returns a 401 JSON error when no identity was loaded.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        if g.get('user_id') is None:
            current_app.logger.warning(f"Unauthenticated request to {request.path}")
            return jsonify({
                'status': 'error',
                'message': 'Authentification requise.'
            }), 401
        return f(*args, **kwargs)
    return decorated_function
