from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING, Any

from sqlalchemy import Boolean, DateTime, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.forum.models import Base

if TYPE_CHECKING:
    from app.forum.models import User


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


class Category(Base):
    __tablename__ = "categories"
    __table_args__ = (
        Index("idx_categories_sort_order", "sort_order"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    slug: Mapped[str] = mapped_column(String(100), nullable=False, unique=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    sort_order: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    is_private: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    # Aggregates (live threads / live posts whose thread is in this category)
    thread_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    post_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "slug": self.slug,
            "description": self.description,
            "sort_order": self.sort_order,
            "is_private": self.is_private,
            "thread_count": self.thread_count,
            "post_count": self.post_count,
        }


class Thread(Base):
    __tablename__ = "threads"
    __table_args__ = (
        Index("idx_threads_category_id", "category_id"),
        Index("idx_threads_author_id", "author_id"),
        Index("idx_threads_created_at", "created_at"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    body: Mapped[str] = mapped_column(Text, nullable=False)
    category_id: Mapped[int] = mapped_column(ForeignKey("categories.id", ondelete="CASCADE"), nullable=False)
    author_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), nullable=False)

    is_pinned: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    is_locked: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    view_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    reply_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    # Null when the thread has no replies.
    last_reply_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=False), nullable=True)
    last_reply_by_id: Mapped[int | None] = mapped_column(ForeignKey("users.id", ondelete="SET NULL"), nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)

    category: Mapped[Category] = relationship(lazy="joined")
    author: Mapped["User"] = relationship(foreign_keys=[author_id], lazy="joined")
    last_reply_by: Mapped["User | None"] = relationship(foreign_keys=[last_reply_by_id], lazy="joined")

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "body": self.body,
            "category_id": self.category_id,
            "category_slug": self.category.slug if self.category else None,
            "author": self.author.to_public_dict() if self.author else None,
            "is_pinned": self.is_pinned,
            "is_locked": self.is_locked,
            "view_count": self.view_count,
            "reply_count": self.reply_count,
            "last_reply_at": _iso(self.last_reply_at),
            "last_reply_by": self.last_reply_by.to_public_dict() if self.last_reply_by else None,
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
        }


class Post(Base):
    __tablename__ = "posts"
    __table_args__ = (
        Index("idx_posts_thread_created", "thread_id", "created_at"),
        Index("idx_posts_author_id", "author_id"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    body: Mapped[str] = mapped_column(Text, nullable=False)
    thread_id: Mapped[int] = mapped_column(ForeignKey("threads.id", ondelete="CASCADE"), nullable=False)
    author_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    parent_id: Mapped[int | None] = mapped_column(ForeignKey("posts.id", ondelete="SET NULL"), nullable=True)
    is_edited: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)

    author: Mapped["User"] = relationship(lazy="joined")

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "body": self.body,
            "thread_id": self.thread_id,
            "parent_id": self.parent_id,
            "author": self.author.to_public_dict() if self.author else None,
            "is_edited": self.is_edited,
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
        }
