from __future__ import annotations

import logging
from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import delete, func, select, update

from app.forum import identity
from app.forum.constants import (
    RECENT_THREADS_LIMIT,
    THREAD_TITLE_MAX_LENGTH,
    TRENDING_THREADS_LIMIT,
    ModerationAction,
)
from app.forum.errors import Forbidden, Locked, NotFound, ValidationError
from app.forum.models import User
from app.forum.modules.content import counters
from app.forum.modules.content.models import Category, Post, Thread
from app.forum.modules.moderation.service import record_action
from app.forum.policy import can_edit_post, can_moderate, can_post, can_view

if TYPE_CHECKING:
    from sqlalchemy.orm import Session

logger = logging.getLogger(__name__)

BODY_MAX_LENGTH = 50_000


def _clean_title(title: str | None) -> str:
    title = (title or "").strip()
    if not title:
        raise ValidationError("Title is required.", field="title")
    if len(title) > THREAD_TITLE_MAX_LENGTH:
        raise ValidationError(f"Title must be at most {THREAD_TITLE_MAX_LENGTH} characters.", field="title")
    return title


def _clean_body(body: str | None) -> str:
    # Stored as typed; output encoding happens where the content is rendered.
    body = (body or "").strip()
    if not body:
        raise ValidationError("Content is required.", field="body")
    if len(body) > BODY_MAX_LENGTH:
        raise ValidationError(f"Content must be at most {BODY_MAX_LENGTH} characters.", field="body")
    return body


def _visible_or_raise(viewer: User | None, category: Category) -> None:
    if can_view(viewer, category):
        return
    if viewer is None:
        raise Forbidden("This section is reserved for members.")
    raise Forbidden("You do not have access to this section.")


def _require_moderator(user: User | None) -> None:
    if not can_moderate(user):
        raise Forbidden("Only moderators can perform this action.")


def _get_thread(s: "Session", thread_id: int) -> Thread:
    thread = s.get(Thread, thread_id)
    if thread is None:
        raise NotFound("Thread not found.")
    return thread


# ---------- Reads ----------
def list_categories(s: "Session") -> list[Category]:
    return s.query(Category).order_by(Category.sort_order.asc(), Category.id.asc()).all()


def get_category(s: "Session", viewer: User | None, slug: str) -> Category:
    category = s.query(Category).filter(Category.slug == (slug or "").strip()).one_or_none()
    if category is None:
        raise NotFound("Category not found.")
    _visible_or_raise(viewer, category)
    return category


def list_threads(s: "Session", viewer: User | None, slug: str) -> list[Thread]:
    category = get_category(s, viewer, slug)
    return (
        s.query(Thread)
        .filter(Thread.category_id == category.id)
        .order_by(
            Thread.is_pinned.desc(),
            Thread.last_reply_at.desc().nulls_last(),
            Thread.created_at.desc(),
        )
        .all()
    )


def _visible_threads(s: "Session", viewer: User | None):
    q = s.query(Thread).join(Category, Thread.category_id == Category.id)
    if viewer is None or viewer.is_banned or not viewer.has_private_access:
        q = q.filter(Category.is_private.is_(False))
    return q


def recent_threads(s: "Session", viewer: User | None, limit: int = RECENT_THREADS_LIMIT) -> list[Thread]:
    return _visible_threads(s, viewer).order_by(Thread.created_at.desc(), Thread.id.desc()).limit(limit).all()


def trending_threads(s: "Session", viewer: User | None, limit: int = TRENDING_THREADS_LIMIT) -> list[Thread]:
    """Most-replied threads first, then most-viewed; private sections only for granted viewers."""
    return (
        _visible_threads(s, viewer)
        .order_by(Thread.reply_count.desc(), Thread.view_count.desc(), Thread.id.desc())
        .limit(limit)
        .all()
    )


def get_thread(s: "Session", viewer: User | None, thread_id: int, *, count_view: bool = True) -> Thread:
    thread = _get_thread(s, thread_id)
    _visible_or_raise(viewer, thread.category)
    if count_view:
        increment_view_count(s, thread.id)
        s.refresh(thread)
    return thread


def list_posts(s: "Session", viewer: User | None, thread_id: int) -> list[Post]:
    thread = _get_thread(s, thread_id)
    _visible_or_raise(viewer, thread.category)
    return (
        s.query(Post)
        .filter(Post.thread_id == thread.id)
        .order_by(Post.created_at.asc(), Post.id.asc())
        .all()
    )


def increment_view_count(s: "Session", thread_id: int) -> None:
    """Monotonic, unauthenticated-safe; touches nothing but view_count."""
    s.execute(
        update(Thread)
        .where(Thread.id == thread_id)
        .values(view_count=Thread.view_count + 1)
        .execution_options(synchronize_session=False)
    )


def forum_stats(s: "Session") -> dict[str, int]:
    return {
        "total_users": s.scalar(select(func.count(User.id))) or 0,
        "total_threads": s.scalar(select(func.count(Thread.id))) or 0,
        "total_posts": s.scalar(select(func.count(Post.id))) or 0,
    }


# ---------- Writes ----------
def create_thread(s: "Session", author: User, category_id, title: str | None, body: str | None) -> Thread:
    """
    Insert a thread, then bump the author's and the category's thread_count.
    All three writes share the caller's transaction.
    """
    category = None
    if not isinstance(category_id, bool):
        try:
            category = s.get(Category, int(category_id))
        except (TypeError, ValueError):
            category = None
    if category is None:
        raise ValidationError("Invalid category.", field="category_id")
    if not can_post(author, category):
        if not can_view(author, category):
            raise Forbidden("You do not have access to this section.")
        raise Forbidden("New members cannot create threads yet.")

    now = datetime.utcnow()
    thread = Thread(
        title=_clean_title(title),
        body=_clean_body(body),
        category_id=category.id,
        author_id=author.id,
        created_at=now,
        updated_at=now,
    )
    s.add(thread)
    s.flush()

    identity.adjust_counters(s, author.id, threads=1)
    counters.bump_category(s, category.id, threads=1)
    logger.info("thread created id=%s category=%s author=%s", thread.id, category.id, author.id)
    return thread


def create_post(
    s: "Session",
    author: User,
    thread_id: int,
    body: str | None,
    parent_id: int | None = None,
) -> Post:
    """
    Insert a reply, then update thread counters and last-reply pointer, the
    author's post_count and the category's post_count, in that order.
    """
    thread = _get_thread(s, thread_id)
    if thread.is_locked:
        raise Locked()
    if not can_post(author, thread.category, thread):
        if not can_view(author, thread.category):
            raise Forbidden("You do not have access to this section.")
        raise Forbidden("New members cannot reply yet.")

    clean = _clean_body(body)
    if parent_id is not None:
        parent = s.get(Post, parent_id)
        if parent is None or parent.thread_id != thread.id:
            raise ValidationError("Reply target must be a post in the same thread.", field="parent_id")

    now = datetime.utcnow()
    post = Post(
        body=clean,
        thread_id=thread.id,
        author_id=author.id,
        parent_id=parent_id,
        created_at=now,
        updated_at=now,
    )
    s.add(post)
    s.flush()

    counters.bump_thread_replies(s, thread.id, 1)
    counters.advance_last_reply(s, thread.id, now, author.id)
    identity.adjust_counters(s, author.id, posts=1)
    counters.bump_category(s, thread.category_id, posts=1)
    logger.info("post created id=%s thread=%s author=%s", post.id, thread.id, author.id)
    return post


def edit_post(s: "Session", user: User, post_id: int, body: str | None) -> Post:
    post = s.get(Post, post_id)
    if post is None:
        raise NotFound("Post not found.")
    thread = _get_thread(s, post.thread_id)
    if thread.is_locked and not can_moderate(user):
        raise Locked()
    if not can_edit_post(user, post, thread):
        raise Forbidden("You cannot edit this post.")
    post.body = _clean_body(body)
    post.is_edited = True
    post.updated_at = datetime.utcnow()
    return post


def delete_post(s: "Session", moderator: User, post_id: int, reason: str | None = None) -> None:
    """
    Remove a post and decrement thread, author and category counters.
    The last-reply pointer is recomputed from the newest remaining post.
    """
    _require_moderator(moderator)
    post = s.get(Post, post_id)
    if post is None:
        raise NotFound("Post not found.")
    thread = _get_thread(s, post.thread_id)
    author_id = post.author_id
    author = identity.find_by_id(s, author_id)
    details = {"post_id": post.id, "thread_id": thread.id}

    s.delete(post)
    s.flush()

    counters.bump_thread_replies(s, thread.id, -1)
    counters.refresh_last_reply(s, thread)
    identity.adjust_counters(s, author_id, posts=-1)
    counters.bump_category(s, thread.category_id, posts=-1)

    record_action(
        s,
        actor=moderator,
        action=ModerationAction.DELETE_POST,
        target=author,
        reason=reason,
        details=details,
    )


def delete_thread(s: "Session", moderator: User, thread_id: int, reason: str | None = None) -> None:
    """
    Remove a thread and all of its posts. Category and author aggregates are
    rebuilt by full recount rather than incrementally.
    """
    _require_moderator(moderator)
    thread = _get_thread(s, thread_id)
    category = thread.category
    author = thread.author
    affected = {thread.author_id}
    affected.update(s.scalars(select(Post.author_id).where(Post.thread_id == thread.id).distinct()).all())
    details = {"thread_id": thread.id, "title": thread.title, "posts_removed": thread.reply_count}

    s.execute(delete(Post).where(Post.thread_id == thread.id).execution_options(synchronize_session="fetch"))
    s.delete(thread)
    s.flush()

    counters.recount_category(s, category)
    for user_id in sorted(affected):
        identity.recount_user(s, user_id)

    record_action(
        s,
        actor=moderator,
        action=ModerationAction.DELETE_THREAD,
        target=author,
        reason=reason,
        details=details,
    )


def set_thread_flags(
    s: "Session",
    moderator: User,
    thread_id: int,
    *,
    locked: bool | None = None,
    pinned: bool | None = None,
) -> Thread:
    _require_moderator(moderator)
    thread = _get_thread(s, thread_id)
    changes: list[ModerationAction] = []
    if locked is not None and bool(locked) != thread.is_locked:
        thread.is_locked = bool(locked)
        changes.append(ModerationAction.LOCK_THREAD if locked else ModerationAction.UNLOCK_THREAD)
    if pinned is not None and bool(pinned) != thread.is_pinned:
        thread.is_pinned = bool(pinned)
        changes.append(ModerationAction.PIN_THREAD if pinned else ModerationAction.UNPIN_THREAD)
    if changes:
        thread.updated_at = datetime.utcnow()
    for action in changes:
        record_action(
            s,
            actor=moderator,
            action=action,
            target=thread.author,
            details={"thread_id": thread.id},
        )
    return thread
