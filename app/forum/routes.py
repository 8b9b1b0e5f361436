from flask import Blueprint, g

from app.forum import sessions
from app.forum.db import db_session
from app.forum.modules.content.service import forum_stats

bp = Blueprint("routes", __name__)


@bp.get("/health")
def health():
    """Health check endpoint. Returns JSON."""
    return {"ok": True}


@bp.get("/healthz")
def healthz():
    """
    Liveness check for the orchestrator. No DB access.
    """
    return "ok", 200


@bp.get("/api/csrf-token")
def csrf_token():
    """Return the anti-forgery token bound to the caller's session (issued lazily by the guard)."""
    return {"csrf_token": g.auth_session.csrf_token}


@bp.post("/api/csrf-token")
def csrf_token_rotate():
    s = db_session()
    token = sessions.rotate_csrf(g.auth_session)
    s.commit()
    return {"csrf_token": token}


@bp.get("/api/stats")
def stats():
    return forum_stats(db_session())
