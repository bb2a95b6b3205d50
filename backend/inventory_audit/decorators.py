# Overview: Request and permission decorators for API routes.

from functools import wraps
from flask import request, jsonify, g

from .errors import AuthenticationError
from .permissions import permission_code
from .services import auth_service, permission_service


def _is_authenticated() -> bool:
    return hasattr(g, "current_user")


def require_auth(f):
    """
    Require a valid bearer token.

    Sets g.current_user to the active User behind the token.

    Returns 401 if:
    - No Authorization header
    - Invalid, tampered or expired token
    - User missing or deactivated
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        auth_header = request.headers.get("Authorization")

        if not auth_header or not auth_header.startswith("Bearer "):
            return jsonify({"error": "Authentication required", "kind": AuthenticationError.kind}), 401

        token = auth_header.split(" ", 1)[1].strip()

        try:
            g.current_user = auth_service.load_user_from_token(token)
        except AuthenticationError as e:
            return jsonify(e.to_dict()), 401

        return f(*args, **kwargs)

    return decorated_function


def require_permission(resource: str, action: str):
    """Require the authenticated user to hold (resource, action)."""
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            # Ensure @require_auth was called first
            if not _is_authenticated():
                return jsonify({"error": "Authentication required", "kind": AuthenticationError.kind}), 401

            if not permission_service.has_permission(g.current_user, resource, action):
                return jsonify({
                    "error": "Permission denied",
                    "kind": "FORBIDDEN",
                    "required_permission": permission_code(resource, action),
                }), 403

            return f(*args, **kwargs)

        return decorated_function
    return decorator


def current_user_id() -> int | None:
    user = getattr(g, "current_user", None)
    return user.id if user is not None else None
