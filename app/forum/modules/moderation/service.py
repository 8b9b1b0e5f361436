from __future__ import annotations

import ipaddress
import json
import logging
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any

from flask import g, has_request_context, request
from sqlalchemy import func, select

from app.forum import identity
from app.forum.constants import (
    MODERATION_LOG_DEFAULT_LIMIT,
    MODERATION_LOG_MAX_LIMIT,
    ModerationAction,
    RequestStatus,
    Role,
)
from app.forum.errors import Forbidden, NotFound, ValidationError
from app.forum.models import User
from app.forum.modules.moderation.models import BannedIp, ModerationLogEntry
from app.forum.policy import can_elevate, can_moderate

if TYPE_CHECKING:
    from sqlalchemy.orm import Session

logger = logging.getLogger(__name__)


def record_action(
    s: "Session",
    *,
    actor: User,
    action: ModerationAction,
    target: User | None = None,
    reason: str | None = None,
    details: dict[str, Any] | None = None,
    request_id: str | None = None,
) -> ModerationLogEntry:
    """
    Append-only moderation log helper. Joins the caller's unit of work.
    """
    rid = request_id
    client_ip = None
    if has_request_context():
        rid = rid or getattr(g, "request_id", None)
        client_ip = request.remote_addr
    entry = ModerationLogEntry(
        request_id=rid,
        client_ip=client_ip,
        actor_id=actor.id,
        action=action,
        target_user_id=target.id if target else None,
        reason=(reason or "").strip() or None,
        details=json.dumps(details, sort_keys=True) if details else None,
    )
    s.add(entry)
    logger.info(
        "moderation action=%s actor=%s target=%s request_id=%s",
        action.value, actor.id, target.id if target else None, rid,
    )
    return entry


def list_recent(s: "Session", viewer: User | None, limit: int | None = None) -> list[ModerationLogEntry]:
    if not can_moderate(viewer):
        raise Forbidden("Only moderators can read the moderation log.")
    limit = limit or MODERATION_LOG_DEFAULT_LIMIT
    limit = max(1, min(int(limit), MODERATION_LOG_MAX_LIMIT))
    return (
        s.query(ModerationLogEntry)
        .order_by(ModerationLogEntry.created_at.desc(), ModerationLogEntry.id.desc())
        .limit(limit)
        .all()
    )


def list_users(s: "Session", viewer: User | None) -> list[User]:
    if not can_moderate(viewer):
        raise Forbidden("Only moderators can list members.")
    return s.query(User).order_by(User.created_at.desc(), User.id.desc()).all()


def _get_user_or_404(s: "Session", user_id: int) -> User:
    user = identity.find_by_id(s, user_id)
    if user is None:
        raise NotFound("User not found.")
    return user


def set_user_role(s: "Session", actor: User, user_id: int, role_value: str | None) -> User:
    role = Role.parse(role_value)
    if role is None:
        raise ValidationError(
            f"Invalid role. Must be one of: {', '.join(r.value for r in Role)}",
            field="role",
        )
    if not can_elevate(actor, role):
        raise Forbidden("You cannot assign this role.")
    user = _get_user_or_404(s, user_id)
    old_role = user.role
    identity.set_role(user, role)
    record_action(
        s,
        actor=actor,
        action=ModerationAction.CHANGE_ROLE,
        target=user,
        details={"old": old_role.value, "new": role.value},
    )
    return user


def ban_user(s: "Session", actor: User, user_id: int, reason: str | None) -> User:
    user = _get_user_or_404(s, user_id)
    # Live sessions are left in place: the guard destroys each one, and answers
    # Forbidden, the next time it is presented.
    identity.set_banned(user, reason)
    record_action(
        s,
        actor=actor,
        action=ModerationAction.BAN_USER,
        target=user,
        reason=reason,
    )
    return user


def parse_expiry(raw: str | None) -> datetime | None:
    raw = (raw or "").strip()
    if not raw:
        return None
    try:
        value = datetime.fromisoformat(raw)
    except ValueError:
        raise ValidationError("expires_at must be an ISO-8601 timestamp.", field="expires_at")
    return _naive_utc(value)


def _naive_utc(value: datetime) -> datetime:
    # Timestamps are stored as naive UTC.
    if value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def ban_ip(
    s: "Session",
    actor: User,
    address: str | None,
    reason: str | None = None,
    expires_at: datetime | None = None,
) -> BannedIp:
    if not can_moderate(actor):
        raise Forbidden("Only moderators can ban addresses.")
    try:
        normalized = str(ipaddress.ip_address((address or "").strip()))
    except ValueError:
        raise ValidationError("Invalid IP address.", field="address")
    if expires_at is not None:
        expires_at = _naive_utc(expires_at)
    if expires_at is not None and expires_at <= datetime.utcnow():
        raise ValidationError("expires_at must be in the future.", field="expires_at")
    ban = BannedIp(
        address=normalized,
        reason=(reason or "").strip() or None,
        banned_by_id=actor.id,
        expires_at=expires_at,
    )
    s.add(ban)
    s.flush()
    record_action(
        s,
        actor=actor,
        action=ModerationAction.BAN_IP,
        reason=reason,
        details={"address": normalized, "expires_at": expires_at.isoformat() if expires_at else None},
    )
    return ban


def is_ip_banned(s: "Session", address: str | None) -> bool:
    if not address:
        return False
    now = datetime.utcnow()
    hit = (
        s.query(BannedIp.id)
        .filter(BannedIp.address == address)
        .filter((BannedIp.expires_at.is_(None)) | (BannedIp.expires_at > now))
        .first()
    )
    return hit is not None


def admin_stats(s: "Session") -> dict[str, int]:
    from app.forum.modules.content.models import Post, Thread
    from app.forum.modules.private_access.models import PrivateAccessRequest

    return {
        "total_users": s.scalar(select(func.count(User.id))) or 0,
        "total_threads": s.scalar(select(func.count(Thread.id))) or 0,
        "total_posts": s.scalar(select(func.count(Post.id))) or 0,
        "banned_users": s.scalar(select(func.count(User.id)).where(User.is_banned.is_(True))) or 0,
        "pending_requests": s.scalar(
            select(func.count(PrivateAccessRequest.id)).where(PrivateAccessRequest.status == RequestStatus.PENDING)
        ) or 0,
    }
