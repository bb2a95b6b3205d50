# Overview: Typed error taxonomy shared by services and the HTTP layer.

"""
Every service failure is raised as an AppError subclass. The HTTP layer turns
it into a JSON body via to_dict() and the status_code; services never build
responses themselves.

- ValidationError: malformed / missing / out-of-range input (400)
- NotFoundError: referenced Room/Item/Audit/User/row absent (404)
- ConflictError: uniqueness or restricted-delete violations (409)
- ForbiddenError: permission gate rejection (403)
- AuditStateError: business-rule rejection on audit state (400, a ForbiddenError)
- AuthenticationError: missing or invalid bearer token (401)
- InternalError: unexpected failure inside a transaction (500)
"""

from __future__ import annotations

from typing import Any


class AppError(Exception):
    """Base class for all service-level failures."""

    status_code = 500
    kind = "ERROR"

    def __init__(self, message: str, details: Any = None, status_code: int | None = None):
        super().__init__(message)
        self.message = message
        self.details = details
        if status_code is not None:
            self.status_code = status_code

    def to_dict(self) -> dict:
        body = {"error": self.message, "kind": self.kind}
        if self.details is not None:
            body["details"] = self.details
        return body


class ValidationError(AppError):
    """400-level input problem."""
    status_code = 400
    kind = "VALIDATION"


class NotFoundError(AppError):
    status_code = 404
    kind = "NOT_FOUND"


class ConflictError(AppError):
    """409-level business rule conflict (e.g., duplicate audit month)."""
    status_code = 409
    kind = "CONFLICT"


class ForbiddenError(AppError):
    status_code = 403
    kind = "FORBIDDEN"


class AuditStateError(ForbiddenError):
    """Operation not allowed for the audit's current status."""
    status_code = 400
    kind = "BAD_REQUEST"


class AuthenticationError(AppError):
    status_code = 401
    kind = "UNAUTHENTICATED"


class InternalError(AppError):
    status_code = 500
    kind = "INTERNAL"
