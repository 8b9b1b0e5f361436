"""
Failure kinds surfaced to API callers.

Every business-rule failure carries a stable ``kind`` and a human-readable
message. Only unexpected failures (``internal``) are logged server-side, and
their details never reach the caller.
"""
from __future__ import annotations

from typing import Any


class ForumError(Exception):
    kind = "internal"
    status_code = 500
    default_message = "An unexpected error occurred."

    def __init__(self, message: str | None = None, *, field: str | None = None) -> None:
        self.message = message or self.default_message
        self.field = field
        super().__init__(self.message)

    def to_response(self) -> dict[str, Any]:
        body: dict[str, Any] = {"error": self.kind, "message": self.message}
        if self.field:
            body["field"] = self.field
        return body


class ValidationError(ForumError):
    kind = "validation"
    status_code = 400
    default_message = "Invalid input."


class Unauthenticated(ForumError):
    kind = "unauthenticated"
    status_code = 401
    default_message = "Authentication required."


class ForbiddenCsrf(ForumError):
    kind = "forbidden_csrf"
    status_code = 403
    default_message = "CSRF token missing or invalid."


class Forbidden(ForumError):
    kind = "forbidden"
    status_code = 403
    default_message = "Insufficient permissions."


class NotFound(ForumError):
    kind = "not_found"
    status_code = 404
    default_message = "Not found."


class Conflict(ForumError):
    kind = "conflict"
    status_code = 409
    default_message = "Conflict."


class Locked(ForumError):
    kind = "locked"
    status_code = 423
    default_message = "This thread is locked."


class Internal(ForumError):
    pass
