from __future__ import annotations

from flask import Blueprint

from app.forum.constants import Role
from app.forum.db import db_session
from app.forum.modules.content import service
from app.forum.policy import current_user, login_required, require_role
from app.forum.utils import json_payload, optional_bool, optional_int

bp = Blueprint("content", __name__)


# ---------- Categories ----------
@bp.get("/categories")
def categories_list():
    return {"categories": [c.to_dict() for c in service.list_categories(db_session())]}


@bp.get("/categories/<slug>")
def category_detail(slug: str):
    category = service.get_category(db_session(), current_user(), slug)
    return {"category": category.to_dict()}


@bp.get("/categories/<slug>/threads")
def category_threads(slug: str):
    threads = service.list_threads(db_session(), current_user(), slug)
    return {"threads": [t.to_dict() for t in threads]}


# ---------- Threads ----------
@bp.get("/threads/recent")
def threads_recent():
    threads = service.recent_threads(db_session(), current_user())
    return {"threads": [t.to_dict() for t in threads]}


@bp.get("/threads/trending")
def threads_trending():
    threads = service.trending_threads(db_session(), current_user())
    return {"threads": [t.to_dict() for t in threads]}


@bp.get("/threads/<int:thread_id>")
def thread_detail(thread_id: int):
    s = db_session()
    thread = service.get_thread(s, current_user(), thread_id)
    s.commit()
    return {"thread": thread.to_dict()}


@bp.post("/threads")
@login_required
def thread_create():
    s = db_session()
    payload = json_payload()
    thread = service.create_thread(
        s,
        current_user(),
        payload.get("category_id"),
        payload.get("title"),
        payload.get("body"),
    )
    s.commit()
    return {"thread": thread.to_dict()}, 201


@bp.patch("/threads/<int:thread_id>")
@require_role(Role.MODERATOR)
def thread_update_flags(thread_id: int):
    s = db_session()
    payload = json_payload()
    thread = service.set_thread_flags(
        s,
        current_user(),
        thread_id,
        locked=optional_bool(payload, "locked"),
        pinned=optional_bool(payload, "pinned"),
    )
    s.commit()
    return {"thread": thread.to_dict()}


@bp.delete("/threads/<int:thread_id>")
@require_role(Role.MODERATOR)
def thread_delete(thread_id: int):
    s = db_session()
    payload = json_payload()
    service.delete_thread(s, current_user(), thread_id, reason=payload.get("reason"))
    s.commit()
    return {"message": "Thread deleted."}


# ---------- Posts ----------
@bp.get("/threads/<int:thread_id>/posts")
def thread_posts(thread_id: int):
    posts = service.list_posts(db_session(), current_user(), thread_id)
    return {"posts": [p.to_dict() for p in posts]}


@bp.post("/threads/<int:thread_id>/posts")
@login_required
def post_create(thread_id: int):
    s = db_session()
    payload = json_payload()
    post = service.create_post(
        s,
        current_user(),
        thread_id,
        payload.get("body"),
        parent_id=optional_int(payload, "parent_id"),
    )
    s.commit()
    return {"post": post.to_dict()}, 201


@bp.patch("/posts/<int:post_id>")
@login_required
def post_edit(post_id: int):
    s = db_session()
    payload = json_payload()
    post = service.edit_post(s, current_user(), post_id, payload.get("body"))
    s.commit()
    return {"post": post.to_dict()}


@bp.delete("/posts/<int:post_id>")
@require_role(Role.MODERATOR)
def post_delete(post_id: int):
    s = db_session()
    payload = json_payload()
    service.delete_post(s, current_user(), post_id, reason=payload.get("reason"))
    s.commit()
    return {"message": "Post deleted."}
