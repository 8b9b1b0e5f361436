from __future__ import annotations

import logging
import uuid

from flask import Blueprint, current_app, g, request

from app.forum import identity, sessions
from app.forum.constants import UNSAFE_METHODS
from app.forum.db import db_session
from app.forum.errors import Forbidden, ForbiddenCsrf, Unauthenticated, ValidationError
from app.forum.modules.moderation.service import is_ip_banned
from app.forum.policy import current_user, login_required
from app.forum.utils import json_payload

bp = Blueprint("auth", __name__)
logger = logging.getLogger(__name__)


def load_current_user() -> None:
    """
    Per-request guard, in order:
    - assign g.request_id (log/audit correlation)
    - reject banned client addresses
    - resolve the session cookie to a user; a missing user drops the session,
      a banned user drops it and fails Forbidden
    - lazily issue a session and anti-forgery token
    - require the anti-forgery header on state-changing requests
    """
    if not getattr(g, "request_id", None):
        g.request_id = uuid.uuid4().hex
    g.current_user = None
    g.auth_session = None
    if request.path.startswith(("/static/", "/health", "/healthz")):
        return

    s = db_session()
    if is_ip_banned(s, request.remote_addr):
        logger.warning("blocked request from banned address %s request_id=%s", request.remote_addr, g.request_id)
        raise Forbidden("Access from this address has been blocked.")

    auth = sessions.load(s)
    if auth is not None and auth.user_id is not None:
        user = identity.find_by_id(s, auth.user_id)
        if user is None:
            sessions.destroy(s, auth)
            auth = None
        elif user.is_banned:
            sessions.destroy(s, auth)
            s.commit()
            logger.warning("destroyed session of banned user %s request_id=%s", user.id, g.request_id)
            raise Forbidden("Your account has been banned.")
        else:
            g.current_user = user

    auth = sessions.ensure(s, auth)
    if s.new or s.deleted:
        s.commit()
    g.auth_session = auth

    if request.method in UNSAFE_METHODS and request.endpoint is not None:
        header = current_app.config.get("CSRF_HEADER") or "X-CSRF-Token"
        if not sessions.csrf_matches(auth, request.headers.get(header)):
            raise ForbiddenCsrf()


def _session_response(user, status: int = 200):
    auth = g.auth_session
    return {"user": user.to_dict(), "csrf_token": auth.csrf_token if auth else None}, status


@bp.post("/register")
def register():
    payload = json_payload()
    password = payload.get("password") or ""
    confirm = payload.get("confirm_password")
    if confirm is not None and confirm != password:
        raise ValidationError("Passwords do not match.", field="confirm_password")

    s = db_session()
    user = identity.create_user(s, payload.get("username"), payload.get("email"), password)
    g.auth_session = sessions.bind_user(s, g.auth_session, user)
    s.commit()
    logger.info("registered and logged in user %s request_id=%s", user.id, g.request_id)
    return _session_response(user, 201)


@bp.post("/login")
def login():
    payload = json_payload()
    email = identity.normalize_email(payload.get("email"))
    password = payload.get("password") or ""
    if not email or not password:
        raise ValidationError("Email and password are required.")

    s = db_session()
    user = identity.find_by_email(s, email)
    if not identity.verify_credential(user, password):
        logger.info("login failed email=%s request_id=%s", email, g.request_id)
        raise Unauthenticated("Invalid email or password.")
    if user.is_banned:
        raise Forbidden("Your account has been banned.")

    identity.touch_last_active(user)
    g.auth_session = sessions.bind_user(s, g.auth_session, user)
    s.commit()
    logger.info("login user=%s request_id=%s", user.id, g.request_id)
    return _session_response(user)


@bp.post("/logout")
@login_required
def logout():
    s = db_session()
    user = current_user()
    sessions.destroy(s, g.auth_session)
    s.commit()
    g.auth_session = None
    logger.info("logout user=%s request_id=%s", user.id, g.request_id)
    return {"message": "Logged out."}


@bp.get("/me")
@login_required
def me():
    return {"user": current_user().to_dict()}
