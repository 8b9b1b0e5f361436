"""
Server-side session lifecycle.

A session row binds an opaque ``sid`` (carried in the signed Flask cookie) to an
optional user and a per-session anti-forgery token. Creating, rotating and
destroying a session always moves the token with it.
"""
from __future__ import annotations

import hmac
import logging
import secrets
from datetime import datetime, timedelta
from typing import TYPE_CHECKING

from flask import current_app, session
from sqlalchemy import delete

from app.forum.models import AuthSession

if TYPE_CHECKING:
    from sqlalchemy.orm import Session

    from app.forum.models import User

logger = logging.getLogger(__name__)

COOKIE_KEY = "sid"


def _new_sid() -> str:
    return secrets.token_urlsafe(32)


def _new_csrf_token() -> str:
    return secrets.token_urlsafe(32)


def _lifetime() -> timedelta:
    return timedelta(hours=int(current_app.config.get("SESSION_LIFETIME_HOURS") or 24 * 7))


def create(s: "Session", user: "User | None" = None) -> AuthSession:
    now = datetime.utcnow()
    auth = AuthSession(
        sid=_new_sid(),
        user_id=user.id if user else None,
        csrf_token=_new_csrf_token(),
        created_at=now,
        expires_at=now + _lifetime(),
    )
    s.add(auth)
    session[COOKIE_KEY] = auth.sid
    session.permanent = True
    return auth


def load(s: "Session") -> AuthSession | None:
    """Resolve the cookie's sid to a live session row; expired rows are removed."""
    sid = session.get(COOKIE_KEY)
    if not sid:
        return None
    auth = s.get(AuthSession, sid)
    if auth is None:
        session.pop(COOKIE_KEY, None)
        return None
    if auth.expires_at <= datetime.utcnow():
        destroy(s, auth)
        return None
    return auth


def ensure(s: "Session", auth: AuthSession | None) -> AuthSession:
    """Lazy issuance: return the current session, creating an anonymous one if absent."""
    if auth is not None:
        return auth
    return create(s)


def bind_user(s: "Session", auth: AuthSession | None, user: "User") -> AuthSession:
    """
    Log ``user`` in. The previous session (anonymous or not) is discarded and a
    fresh sid + token are issued, so a pre-login sid cannot be fixated.
    """
    if auth is not None:
        s.delete(auth)
    return create(s, user)


def destroy(s: "Session", auth: AuthSession | None) -> None:
    if auth is not None:
        s.delete(auth)
    session.pop(COOKIE_KEY, None)


def rotate_csrf(auth: AuthSession) -> str:
    """Issue a fresh anti-forgery token for the same session; the old one stops matching."""
    auth.csrf_token = _new_csrf_token()
    return auth.csrf_token


def csrf_matches(auth: AuthSession | None, presented: str | None) -> bool:
    if auth is None or not presented or not auth.csrf_token:
        return False
    return hmac.compare_digest(presented.encode("utf-8"), auth.csrf_token.encode("utf-8"))


def purge_expired(s: "Session", now: datetime | None = None) -> int:
    now = now or datetime.utcnow()
    res = s.execute(delete(AuthSession).where(AuthSession.expires_at <= now))
    count = res.rowcount or 0
    if count:
        logger.info("purged %s expired sessions", count)
    return count
