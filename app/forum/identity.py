"""
User identity records: lookup, registration, credential checks, role/ban/grant
state and the per-user aggregate counters.
"""
from __future__ import annotations

import logging
import re
from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError
from werkzeug.security import check_password_hash, generate_password_hash

from app.forum.constants import PASSWORD_MIN_LENGTH, USERNAME_MAX_LENGTH, USERNAME_MIN_LENGTH, Role
from app.forum.errors import Conflict, ValidationError
from app.forum.models import User

if TYPE_CHECKING:
    from sqlalchemy.orm import Session

logger = logging.getLogger(__name__)

_EMAIL_RE = re.compile(r"[^@\s]+@[^@\s]+\.[^@\s]+")
_USERNAME_RE = re.compile(r"[\w.\-]+")


def normalize_email(email: str | None) -> str:
    return (email or "").strip().lower()


def find_by_id(s: "Session", user_id: int | None) -> User | None:
    if user_id is None:
        return None
    return s.get(User, int(user_id))


def find_by_email(s: "Session", email: str | None) -> User | None:
    email = normalize_email(email)
    if not email:
        return None
    return s.query(User).filter(User.email == email).one_or_none()


def find_by_username(s: "Session", username: str | None) -> User | None:
    username = (username or "").strip()
    if not username:
        return None
    return s.query(User).filter(User.username == username).one_or_none()


def validate_registration(username: str, email: str, password: str) -> None:
    if not (USERNAME_MIN_LENGTH <= len(username) <= USERNAME_MAX_LENGTH):
        raise ValidationError(
            f"Username must be between {USERNAME_MIN_LENGTH} and {USERNAME_MAX_LENGTH} characters.",
            field="username",
        )
    if not _USERNAME_RE.fullmatch(username):
        raise ValidationError("Username may only contain letters, digits, '.', '_' and '-'.", field="username")
    if not _EMAIL_RE.fullmatch(email):
        raise ValidationError("Invalid email address.", field="email")
    if len(password) < PASSWORD_MIN_LENGTH:
        raise ValidationError(f"Password must be at least {PASSWORD_MIN_LENGTH} characters.", field="password")


def create_user(
    s: "Session",
    username: str | None,
    email: str | None,
    password: str | None,
    *,
    role: Role = Role.NEW_MEMBER,
) -> User:
    """Register a new user. Fails Conflict on duplicate email or username."""
    username = (username or "").strip()
    email = normalize_email(email)
    password = password or ""
    validate_registration(username, email, password)

    if find_by_email(s, email):
        raise Conflict("This email is already registered.", field="email")
    if find_by_username(s, username):
        raise Conflict("This username is already taken.", field="username")

    user = User(
        username=username,
        email=email,
        password_hash=generate_password_hash(password),
        role=role,
    )
    s.add(user)
    try:
        # Concurrent registrations race past the lookups above; the unique
        # constraints are the final arbiter.
        s.flush()
    except IntegrityError:
        s.rollback()
        raise Conflict("This email or username is already registered.")
    logger.info("user registered id=%s username=%s", user.id, user.username)
    return user


def verify_credential(user: User | None, plaintext: str | None) -> bool:
    """Constant-time comparison against the stored hash."""
    if user is None or not user.password_hash:
        return False
    return check_password_hash(user.password_hash, plaintext or "")


def set_password(user: User, plaintext: str) -> None:
    user.password_hash = generate_password_hash(plaintext)


def set_role(user: User, role: Role) -> None:
    user.role = role


def set_banned(user: User, reason: str | None) -> None:
    user.is_banned = True
    user.ban_reason = (reason or "").strip() or None


def grant_private_access(user: User) -> None:
    user.has_private_access = True


def touch_last_active(user: User) -> None:
    user.last_active_at = datetime.utcnow()


def adjust_counters(s: "Session", user_id: int, *, threads: int = 0, posts: int = 0) -> None:
    """
    Increment/decrement a user's aggregates in SQL (``col = col + n``) so that
    concurrent writers never lose updates.
    """
    values = {}
    if threads:
        values["thread_count"] = User.thread_count + threads
    if posts:
        values["post_count"] = User.post_count + posts
    if not values:
        return
    s.execute(
        update(User).where(User.id == user_id).values(**values).execution_options(synchronize_session="fetch")
    )


def recount_user(s: "Session", user_id: int) -> bool:
    """Recompute a user's aggregates from source rows. Returns True if anything changed."""
    from app.forum.modules.content.models import Post, Thread

    user = s.get(User, user_id)
    if user is None:
        return False
    threads = s.scalar(select(func.count(Thread.id)).where(Thread.author_id == user_id)) or 0
    posts = s.scalar(select(func.count(Post.id)).where(Post.author_id == user_id)) or 0
    changed = user.thread_count != threads or user.post_count != posts
    if changed:
        logger.warning(
            "user %s counters drifted (threads %s->%s, posts %s->%s)",
            user_id, user.thread_count, threads, user.post_count, posts,
        )
        user.thread_count = threads
        user.post_count = posts
    return changed
