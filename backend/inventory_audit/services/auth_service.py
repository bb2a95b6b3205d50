# Overview: Service-layer operations for bearer tokens; signing and verification.

"""
Signed Bearer Tokens

Tokens are itsdangerous URL-safe timed signatures over {"uid": user_id},
signed with SECRET_KEY and valid for TOKEN_MAX_AGE_SECONDS. Nothing is
stored server-side: deactivating a user invalidates every token they hold
because load_user_from_token() re-checks is_active.

Issuing tokens is exposed only through the CLI (`flask users token`).
"""

from __future__ import annotations

from flask import current_app
from itsdangerous import BadSignature, SignatureExpired, URLSafeTimedSerializer

from ..errors import AuthenticationError
from ..extensions import db
from ..models import User

TOKEN_SALT = "inventory-audit-bearer"


def _serializer() -> URLSafeTimedSerializer:
    return URLSafeTimedSerializer(current_app.config["SECRET_KEY"], salt=TOKEN_SALT)


def issue_token(user: User) -> str:
    if not user.is_active:
        raise AuthenticationError("User account is inactive")
    return _serializer().dumps({"uid": user.id})


def load_user_from_token(token: str) -> User:
    """
    Resolve the active user behind a bearer token.

    Raises AuthenticationError when the token is expired, tampered with,
    or names a missing / inactive user.
    """
    max_age = current_app.config.get("TOKEN_MAX_AGE_SECONDS", 86400)
    try:
        payload = _serializer().loads(token, max_age=max_age)
    except SignatureExpired:
        raise AuthenticationError("Token expired")
    except BadSignature:
        raise AuthenticationError("Invalid token")

    user_id = payload.get("uid") if isinstance(payload, dict) else None
    user = db.session.get(User, user_id) if isinstance(user_id, int) else None
    if user is None or not user.is_active:
        raise AuthenticationError("Invalid token")
    return user
