# Overview: Request decorators: bearer-token authentication and role gates for API routes.

from functools import wraps

from flask import g, jsonify, request

from .services import token_service


def _bearer_token() -> str | None:
    auth_header = request.headers.get("Authorization")
    if not auth_header or not auth_header.startswith("Bearer "):
        return None
    return auth_header.split(" ", 1)[1].strip() or None


def require_auth(f):
    """
    Require a valid bearer token and resolve the caller.

    Sets the following Flask g attributes:
    - g.actor: the resolved Actor passed explicitly into every service call
    - g.token: the raw bearer token (logout needs it)

    Returns 401 if the header is missing, or the token is invalid, expired,
    idle too long, or belongs to a deactivated account.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        token = _bearer_token()
        if not token:
            return jsonify({"error": "Authentication required", "code": "UNAUTHENTICATED"}), 401

        actor = token_service.validate_token(
            token,
            ip_address=request.remote_addr,
            user_agent=request.headers.get("User-Agent"),
        )
        if not actor:
            return jsonify({"error": "Invalid or expired token", "code": "UNAUTHENTICATED"}), 401

        g.actor = actor
        g.token = token
        return f(*args, **kwargs)

    return decorated_function


def require_roles(*roles):
    """
    Coarse role gate for whole endpoints. Services still enforce the exact
    rules; this only short-circuits obviously disallowed callers.
    """
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            if not hasattr(g, "actor"):
                return jsonify({"error": "Authentication required", "code": "UNAUTHENTICATED"}), 401
            if g.actor.role not in roles:
                return jsonify({
                    "error": "Permission denied",
                    "code": "FORBIDDEN",
                    "required_roles": list(roles),
                }), 403
            return f(*args, **kwargs)

        return decorated_function
    return decorator
