from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING, Any

from sqlalchemy import DateTime, Enum, ForeignKey, Index, Integer, String, Text, event
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.forum.constants import ModerationAction, enum_values
from app.forum.models import Base

if TYPE_CHECKING:
    from app.forum.models import User


class AppendOnlyViolation(RuntimeError):
    pass


class ModerationLogEntry(Base):
    """
    Append-only record of a privileged action.
    Rows are inserted by record_action() and never updated or deleted.
    """

    __tablename__ = "moderation_logs"
    __table_args__ = (
        Index("idx_moderation_logs_created_at", "created_at"),
        Index("idx_moderation_logs_target_user_id", "target_user_id"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)
    request_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    client_ip: Mapped[str | None] = mapped_column(String(45), nullable=True)

    actor_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    action: Mapped[ModerationAction] = mapped_column(
        Enum(ModerationAction, name="moderation_action", native_enum=False, values_callable=enum_values),
        nullable=False,
    )
    target_user_id: Mapped[int | None] = mapped_column(ForeignKey("users.id", ondelete="SET NULL"), nullable=True)

    reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    details: Mapped[str | None] = mapped_column(Text, nullable=True)  # small JSON string

    actor: Mapped["User"] = relationship(foreign_keys=[actor_id], lazy="joined")
    target_user: Mapped["User | None"] = relationship(foreign_keys=[target_user_id], lazy="joined")

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "request_id": self.request_id,
            "actor": self.actor.to_public_dict() if self.actor else None,
            "action": self.action.value,
            "target_user": self.target_user.to_public_dict() if self.target_user else None,
            "reason": self.reason,
            "details": self.details,
        }


@event.listens_for(ModerationLogEntry, "before_update")
def _reject_log_update(mapper, connection, target):  # type: ignore[no-redef]
    raise AppendOnlyViolation(f"moderation log entry {target.id} is append-only")


@event.listens_for(ModerationLogEntry, "before_delete")
def _reject_log_delete(mapper, connection, target):  # type: ignore[no-redef]
    raise AppendOnlyViolation(f"moderation log entry {target.id} is append-only")


class BannedIp(Base):
    __tablename__ = "banned_ips"
    __table_args__ = (
        Index("idx_banned_ips_address", "address"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    address: Mapped[str] = mapped_column(String(45), nullable=False)
    reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    banned_by_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    expires_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=False), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)

    def is_active(self, now: datetime | None = None) -> bool:
        now = now or datetime.utcnow()
        return self.expires_at is None or self.expires_at > now

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "address": self.address,
            "reason": self.reason,
            "banned_by_id": self.banned_by_id,
            "expires_at": self.expires_at.isoformat() if self.expires_at else None,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }
