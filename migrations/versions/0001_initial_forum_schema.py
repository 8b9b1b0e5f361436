"""Initial forum schema: users, sessions, content, private access, moderation.

Revision ID: 0001_initial
Revises:
Create Date: 2026-10-19
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy import inspect


# revision identifiers, used by Alembic.
revision: str = "0001_initial"
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _has_table(name: str) -> bool:
    return inspect(op.get_bind()).has_table(name)


def upgrade() -> None:
    if not _has_table("users"):
        op.create_table(
            "users",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("username", sa.String(50), nullable=False),
            sa.Column("email", sa.String(320), nullable=False),
            sa.Column("password_hash", sa.String(255), nullable=False),
            sa.Column("role", sa.String(32), nullable=False, server_default="new_member"),
            sa.Column("bio", sa.Text(), nullable=True),
            sa.Column("is_banned", sa.Boolean(), nullable=False, server_default=sa.text("false")),
            sa.Column("ban_reason", sa.Text(), nullable=True),
            sa.Column("has_private_access", sa.Boolean(), nullable=False, server_default=sa.text("false")),
            sa.Column("thread_count", sa.Integer(), nullable=False, server_default="0"),
            sa.Column("post_count", sa.Integer(), nullable=False, server_default="0"),
            sa.Column("created_at", sa.DateTime(), nullable=False),
            sa.Column("last_active_at", sa.DateTime(), nullable=False),
            sa.UniqueConstraint("username"),
            sa.UniqueConstraint("email"),
        )

    if not _has_table("auth_sessions"):
        op.create_table(
            "auth_sessions",
            sa.Column("sid", sa.String(64), primary_key=True),
            sa.Column("user_id", sa.Integer(), nullable=True),
            sa.Column("csrf_token", sa.String(128), nullable=False),
            sa.Column("created_at", sa.DateTime(), nullable=False),
            sa.Column("expires_at", sa.DateTime(), nullable=False),
            sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
        )
        op.create_index("idx_auth_sessions_user_id", "auth_sessions", ["user_id"])
        op.create_index("idx_auth_sessions_expires_at", "auth_sessions", ["expires_at"])

    if not _has_table("categories"):
        op.create_table(
            "categories",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("name", sa.String(100), nullable=False),
            sa.Column("slug", sa.String(100), nullable=False),
            sa.Column("description", sa.Text(), nullable=True),
            sa.Column("sort_order", sa.Integer(), nullable=False, server_default="0"),
            sa.Column("is_private", sa.Boolean(), nullable=False, server_default=sa.text("false")),
            sa.Column("thread_count", sa.Integer(), nullable=False, server_default="0"),
            sa.Column("post_count", sa.Integer(), nullable=False, server_default="0"),
            sa.UniqueConstraint("slug"),
        )
        op.create_index("idx_categories_sort_order", "categories", ["sort_order"])

    if not _has_table("threads"):
        op.create_table(
            "threads",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("title", sa.String(255), nullable=False),
            sa.Column("body", sa.Text(), nullable=False),
            sa.Column("category_id", sa.Integer(), nullable=False),
            sa.Column("author_id", sa.Integer(), nullable=False),
            sa.Column("is_pinned", sa.Boolean(), nullable=False, server_default=sa.text("false")),
            sa.Column("is_locked", sa.Boolean(), nullable=False, server_default=sa.text("false")),
            sa.Column("view_count", sa.Integer(), nullable=False, server_default="0"),
            sa.Column("reply_count", sa.Integer(), nullable=False, server_default="0"),
            sa.Column("last_reply_at", sa.DateTime(), nullable=True),
            sa.Column("last_reply_by_id", sa.Integer(), nullable=True),
            sa.Column("created_at", sa.DateTime(), nullable=False),
            sa.Column("updated_at", sa.DateTime(), nullable=False),
            sa.ForeignKeyConstraint(["category_id"], ["categories.id"], ondelete="CASCADE"),
            sa.ForeignKeyConstraint(["author_id"], ["users.id"], ondelete="CASCADE"),
            sa.ForeignKeyConstraint(["last_reply_by_id"], ["users.id"], ondelete="SET NULL"),
        )
        op.create_index("idx_threads_category_id", "threads", ["category_id"])
        op.create_index("idx_threads_author_id", "threads", ["author_id"])
        op.create_index("idx_threads_created_at", "threads", ["created_at"])

    if not _has_table("posts"):
        op.create_table(
            "posts",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("body", sa.Text(), nullable=False),
            sa.Column("thread_id", sa.Integer(), nullable=False),
            sa.Column("author_id", sa.Integer(), nullable=False),
            sa.Column("parent_id", sa.Integer(), nullable=True),
            sa.Column("is_edited", sa.Boolean(), nullable=False, server_default=sa.text("false")),
            sa.Column("created_at", sa.DateTime(), nullable=False),
            sa.Column("updated_at", sa.DateTime(), nullable=False),
            sa.ForeignKeyConstraint(["thread_id"], ["threads.id"], ondelete="CASCADE"),
            sa.ForeignKeyConstraint(["author_id"], ["users.id"], ondelete="CASCADE"),
            sa.ForeignKeyConstraint(["parent_id"], ["posts.id"], ondelete="SET NULL"),
        )
        op.create_index("idx_posts_thread_created", "posts", ["thread_id", "created_at"])
        op.create_index("idx_posts_author_id", "posts", ["author_id"])

    if not _has_table("private_access_requests"):
        op.create_table(
            "private_access_requests",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("user_id", sa.Integer(), nullable=False),
            sa.Column("justification", sa.Text(), nullable=False),
            sa.Column("status", sa.String(16), nullable=False, server_default="pending"),
            sa.Column("reviewed_by_id", sa.Integer(), nullable=True),
            sa.Column("reviewed_at", sa.DateTime(), nullable=True),
            sa.Column("created_at", sa.DateTime(), nullable=False),
            sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
            sa.ForeignKeyConstraint(["reviewed_by_id"], ["users.id"], ondelete="SET NULL"),
        )
        op.create_index("idx_private_access_user_id", "private_access_requests", ["user_id"])
        op.create_index("idx_private_access_status", "private_access_requests", ["status"])
        op.create_index(
            "uq_private_access_one_pending",
            "private_access_requests",
            ["user_id"],
            unique=True,
            sqlite_where=sa.text("status = 'pending'"),
            postgresql_where=sa.text("status = 'pending'"),
        )

    if not _has_table("moderation_logs"):
        op.create_table(
            "moderation_logs",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("created_at", sa.DateTime(), nullable=False),
            sa.Column("request_id", sa.String(64), nullable=True),
            sa.Column("client_ip", sa.String(45), nullable=True),
            sa.Column("actor_id", sa.Integer(), nullable=False),
            sa.Column("action", sa.String(32), nullable=False),
            sa.Column("target_user_id", sa.Integer(), nullable=True),
            sa.Column("reason", sa.Text(), nullable=True),
            sa.Column("details", sa.Text(), nullable=True),
            sa.ForeignKeyConstraint(["actor_id"], ["users.id"], ondelete="CASCADE"),
            sa.ForeignKeyConstraint(["target_user_id"], ["users.id"], ondelete="SET NULL"),
        )
        op.create_index("idx_moderation_logs_created_at", "moderation_logs", ["created_at"])
        op.create_index("idx_moderation_logs_target_user_id", "moderation_logs", ["target_user_id"])

    if not _has_table("banned_ips"):
        op.create_table(
            "banned_ips",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("address", sa.String(45), nullable=False),
            sa.Column("reason", sa.Text(), nullable=True),
            sa.Column("banned_by_id", sa.Integer(), nullable=False),
            sa.Column("expires_at", sa.DateTime(), nullable=True),
            sa.Column("created_at", sa.DateTime(), nullable=False),
            sa.ForeignKeyConstraint(["banned_by_id"], ["users.id"], ondelete="CASCADE"),
        )
        op.create_index("idx_banned_ips_address", "banned_ips", ["address"])


def downgrade() -> None:
    for table in (
        "banned_ips",
        "moderation_logs",
        "private_access_requests",
        "posts",
        "threads",
        "categories",
        "auth_sessions",
        "users",
    ):
        if _has_table(table):
            op.drop_table(table)
