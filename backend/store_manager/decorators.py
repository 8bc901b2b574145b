# Overview: Request decorators for API routes.

from functools import wraps

from flask import g, jsonify, request

from .services import session_service


def require_store(f):
    """
    Require a store session and establish tenant context.

    Sets on Flask g:
    - g.store_id: tenant for every service call in the request
    - g.store: the Store row
    - g.session_context: the full SessionContext

    Returns 401 if the Authorization header is missing, or the token is
    unknown, revoked or expired.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        auth_header = request.headers.get("Authorization")
        if not auth_header or not auth_header.startswith("Bearer "):
            return jsonify({"error": "Authentication required"}), 401

        token = auth_header.split(" ", 1)[1].strip()
        context = session_service.validate_session(token)
        if not context:
            return jsonify({"error": "Invalid or expired token"}), 401

        g.store_id = context.store_id
        g.store = context.store
        g.session_context = context

        return f(*args, **kwargs)

    return decorated_function
