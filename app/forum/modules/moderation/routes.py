from __future__ import annotations

from flask import Blueprint, request

from app.forum.constants import ModerationAction, Role
from app.forum.db import db_session
from app.forum.errors import ValidationError
from app.forum.modules.content.counters import reconcile_counters
from app.forum.modules.moderation import service
from app.forum.policy import current_user, require_role
from app.forum.utils import json_payload

bp = Blueprint("moderation", __name__)


@bp.get("/moderation-logs")
@require_role(Role.MODERATOR)
def moderation_logs():
    raw_limit = (request.args.get("limit") or "").strip()
    try:
        limit = int(raw_limit) if raw_limit else None
    except ValueError:
        raise ValidationError("limit must be an integer.", field="limit")
    entries = service.list_recent(db_session(), current_user(), limit)
    return {"entries": [e.to_dict() for e in entries]}


@bp.get("/stats")
@require_role(Role.MODERATOR)
def admin_stats():
    return service.admin_stats(db_session())


@bp.get("/users")
@require_role(Role.MODERATOR)
def users_list():
    users = service.list_users(db_session(), current_user())
    return {"users": [u.to_dict() for u in users]}


@bp.patch("/users/<int:user_id>/role")
@require_role(Role.ADMINISTRATOR)
def user_set_role(user_id: int):
    s = db_session()
    payload = json_payload()
    user = service.set_user_role(s, current_user(), user_id, payload.get("role"))
    s.commit()
    return {"user": user.to_dict()}


@bp.post("/users/<int:user_id>/ban")
@require_role(Role.ADMINISTRATOR)
def user_ban(user_id: int):
    s = db_session()
    payload = json_payload()
    user = service.ban_user(s, current_user(), user_id, payload.get("reason"))
    s.commit()
    return {"user": user.to_dict()}


@bp.post("/banned-ips")
@require_role(Role.MODERATOR)
def ip_ban():
    s = db_session()
    payload = json_payload()
    ban = service.ban_ip(
        s,
        current_user(),
        payload.get("address"),
        reason=payload.get("reason"),
        expires_at=service.parse_expiry(payload.get("expires_at")),
    )
    s.commit()
    return {"banned_ip": ban.to_dict()}, 201


@bp.post("/reconcile")
@require_role(Role.ADMINISTRATOR)
def reconcile():
    s = db_session()
    fixed = reconcile_counters(s)
    service.record_action(s, actor=current_user(), action=ModerationAction.RECONCILE_COUNTERS, details=fixed)
    s.commit()
    return {"corrected": fixed}
