from __future__ import annotations

from flask import Blueprint

from app.forum.constants import Role
from app.forum.db import db_session
from app.forum.modules.private_access import service
from app.forum.policy import current_user, login_required, require_role
from app.forum.utils import json_payload

bp = Blueprint("private_access", __name__)


@bp.get("/private-access")
@login_required
def my_request():
    req = service.my_latest_request(db_session(), current_user())
    return {"request": req.to_dict() if req else None}


@bp.post("/private-access")
@login_required
def submit_request():
    s = db_session()
    payload = json_payload()
    req = service.submit(s, current_user(), payload.get("justification") or payload.get("reason"))
    s.commit()
    return {"request": req.to_dict()}, 201


@bp.get("/admin/private-access/pending")
@require_role(Role.MODERATOR)
def pending_requests():
    reqs = service.list_pending(db_session(), current_user())
    return {"requests": [r.to_dict() for r in reqs]}


@bp.patch("/admin/private-access/<int:request_id>")
@require_role(Role.MODERATOR)
def decide_request(request_id: int):
    s = db_session()
    payload = json_payload()
    req = service.decide(s, current_user(), request_id, payload.get("status"))
    s.commit()
    return {"request": req.to_dict()}
