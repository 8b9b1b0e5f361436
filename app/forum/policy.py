"""
Access decisions.

The ``can_*`` predicates are pure and total: they never raise and never touch
the database. Callers translate a negative answer into the failure kind that
fits the operation (Forbidden, Locked, ...).
"""
from collections.abc import Callable
from functools import wraps
from typing import TYPE_CHECKING, Any

from flask import g

from app.forum.constants import Role
from app.forum.errors import Forbidden, Unauthenticated
from app.forum.models import User

if TYPE_CHECKING:
    from app.forum.modules.content.models import Category, Post, Thread


def _active(user: User | None) -> bool:
    return user is not None and not user.is_banned


def has_role(user: User | None, minimum: Role) -> bool:
    if not _active(user):
        return False
    return user.role.rank >= minimum.rank


def can_view(user: User | None, category: "Category") -> bool:
    if not category.is_private:
        return True
    return _active(user) and user.has_private_access


def can_post(user: User | None, category: "Category", thread: "Thread | None" = None) -> bool:
    if not has_role(user, Role.MEMBER):
        return False
    if not can_view(user, category):
        return False
    # Locking blocks every poster, moderators included.
    if thread is not None and thread.is_locked:
        return False
    return True


def can_moderate(user: User | None) -> bool:
    return has_role(user, Role.MODERATOR)


def can_elevate(actor: User | None, new_role: Role) -> bool:
    """Moderators may assign roles up to moderator; anything above needs an administrator."""
    if not can_moderate(actor):
        return False
    if new_role.rank > Role.MODERATOR.rank:
        return actor.role is Role.ADMINISTRATOR
    return True


def can_edit_post(user: User | None, post: "Post", thread: "Thread") -> bool:
    if can_moderate(user):
        return True
    if not _active(user) or post.author_id != user.id:
        return False
    return can_post(user, thread.category, thread)


def current_user() -> User | None:
    return getattr(g, "current_user", None)


def login_required(fn: Callable[..., Any]) -> Callable[..., Any]:
    @wraps(fn)
    def wrapped(*args: Any, **kwargs: Any):
        if current_user() is None:
            raise Unauthenticated()
        return fn(*args, **kwargs)

    return wrapped


def require_role(minimum: Role) -> Callable[[Callable[..., Any]], Callable[..., Any]]:
    def decorator(fn: Callable[..., Any]) -> Callable[..., Any]:
        @wraps(fn)
        def wrapped(*args: Any, **kwargs: Any):
            user = current_user()
            # Unauthenticated → 401, authenticated but unauthorized → 403
            if user is None:
                raise Unauthenticated()
            if not has_role(user, minimum):
                g.missing_role = minimum.value
                raise Forbidden(f"This action requires the {minimum.value} role.")
            return fn(*args, **kwargs)

        return wrapped

    return decorator
