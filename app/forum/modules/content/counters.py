"""
Aggregate counter maintenance.

Hot-path writers use the ``bump_*``/``advance_*`` helpers, which issue SQL-side
increments so concurrent requests cannot lose updates. The ``recount_*``
helpers rebuild a row's aggregates from source records; reconcile_counters()
runs them over everything to repair drift out of band.
"""
from __future__ import annotations

import logging
from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import func, or_, select, update

from app.forum.identity import recount_user
from app.forum.models import User
from app.forum.modules.content.models import Category, Post, Thread

if TYPE_CHECKING:
    from sqlalchemy.orm import Session

logger = logging.getLogger(__name__)

_SYNC = {"synchronize_session": "fetch"}


def bump_category(s: "Session", category_id: int, *, threads: int = 0, posts: int = 0) -> None:
    values = {}
    if threads:
        values["thread_count"] = Category.thread_count + threads
    if posts:
        values["post_count"] = Category.post_count + posts
    if values:
        s.execute(update(Category).where(Category.id == category_id).values(**values).execution_options(**_SYNC))


def bump_thread_replies(s: "Session", thread_id: int, delta: int) -> None:
    s.execute(
        update(Thread)
        .where(Thread.id == thread_id)
        .values(reply_count=Thread.reply_count + delta)
        .execution_options(**_SYNC)
    )


def advance_last_reply(s: "Session", thread_id: int, at: datetime, by_user_id: int) -> None:
    """Move the last-reply pointer forward; a slower concurrent reply never moves it back."""
    s.execute(
        update(Thread)
        .where(Thread.id == thread_id)
        .where(or_(Thread.last_reply_at.is_(None), Thread.last_reply_at <= at))
        .values(last_reply_at=at, last_reply_by_id=by_user_id)
        .execution_options(**_SYNC)
    )


def latest_post(s: "Session", thread_id: int) -> Post | None:
    return (
        s.query(Post)
        .filter(Post.thread_id == thread_id)
        .order_by(Post.created_at.desc(), Post.id.desc())
        .first()
    )


def refresh_last_reply(s: "Session", thread: Thread) -> None:
    """Point last_reply_* at the newest remaining post, or clear it when none remain."""
    s.flush()
    latest = latest_post(s, thread.id)
    thread.last_reply_at = latest.created_at if latest else None
    thread.last_reply_by_id = latest.author_id if latest else None


def recount_category(s: "Session", category: Category) -> bool:
    s.flush()
    threads = s.scalar(select(func.count(Thread.id)).where(Thread.category_id == category.id)) or 0
    posts = s.scalar(
        select(func.count(Post.id)).join(Thread, Post.thread_id == Thread.id).where(Thread.category_id == category.id)
    ) or 0
    changed = category.thread_count != threads or category.post_count != posts
    if changed:
        category.thread_count = threads
        category.post_count = posts
    return changed


def recount_thread(s: "Session", thread: Thread) -> bool:
    s.flush()
    replies = s.scalar(select(func.count(Post.id)).where(Post.thread_id == thread.id)) or 0
    latest = latest_post(s, thread.id)
    last_at = latest.created_at if latest else None
    last_by = latest.author_id if latest else None
    changed = (
        thread.reply_count != replies
        or thread.last_reply_at != last_at
        or thread.last_reply_by_id != last_by
    )
    if changed:
        thread.reply_count = replies
        thread.last_reply_at = last_at
        thread.last_reply_by_id = last_by
    return changed


def reconcile_counters(s: "Session") -> dict[str, int]:
    """
    Recompute every aggregate from source rows. Idempotent: a second run on a
    quiet database corrects nothing.
    """
    fixed = {"categories": 0, "threads": 0, "users": 0}
    for category in s.query(Category).order_by(Category.id).all():
        if recount_category(s, category):
            fixed["categories"] += 1
    for thread in s.query(Thread).order_by(Thread.id).all():
        if recount_thread(s, thread):
            fixed["threads"] += 1
    for user_id in s.scalars(select(User.id).order_by(User.id)).all():
        if recount_user(s, user_id):
            fixed["users"] += 1
    s.flush()
    if any(fixed.values()):
        logger.warning("reconcile_counters corrected drift: %s", fixed)
    else:
        logger.info("reconcile_counters: no drift")
    return fixed
