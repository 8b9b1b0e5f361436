"""
Central constants for the forum application.
"""
from __future__ import annotations

import enum


class Role(str, enum.Enum):
    NEW_MEMBER = "new_member"
    MEMBER = "member"
    MODERATOR = "moderator"
    ADMINISTRATOR = "administrator"

    @property
    def rank(self) -> int:
        return _ROLE_RANK[self]

    @classmethod
    def parse(cls, value: str | None) -> "Role | None":
        try:
            return cls((value or "").strip().lower())
        except ValueError:
            return None


_ROLE_RANK = {
    Role.NEW_MEMBER: 0,
    Role.MEMBER: 1,
    Role.MODERATOR: 2,
    Role.ADMINISTRATOR: 3,
}


class RequestStatus(str, enum.Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class ModerationAction(str, enum.Enum):
    DELETE_POST = "delete_post"
    DELETE_THREAD = "delete_thread"
    LOCK_THREAD = "lock_thread"
    UNLOCK_THREAD = "unlock_thread"
    PIN_THREAD = "pin_thread"
    UNPIN_THREAD = "unpin_thread"
    BAN_USER = "ban_user"
    BAN_IP = "ban_ip"
    CHANGE_ROLE = "change_role"
    APPROVE_REQUEST = "approve_request"
    REJECT_REQUEST = "reject_request"
    RECONCILE_COUNTERS = "reconcile_counters"


def enum_values(enum_cls: type[enum.Enum]) -> list[str]:
    """Persist enum values (not member names) in string columns."""
    return [m.value for m in enum_cls]


# Private access requests
MIN_JUSTIFICATION_LENGTH = 50

# Registration
USERNAME_MIN_LENGTH = 3
USERNAME_MAX_LENGTH = 50
PASSWORD_MIN_LENGTH = 8

# Content
THREAD_TITLE_MAX_LENGTH = 255
MODERATION_LOG_DEFAULT_LIMIT = 50
MODERATION_LOG_MAX_LIMIT = 200
RECENT_THREADS_LIMIT = 10
TRENDING_THREADS_LIMIT = 5

# Mutating HTTP methods that require the anti-forgery header.
UNSAFE_METHODS = frozenset({"POST", "PUT", "PATCH", "DELETE"})
