"""
models/notification.py — Notification table definition.

(entity_type, entity_id) points at the entity that triggered the
notification. Rows are created and removed only by
services/notification_service.py.
"""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import Boolean, DateTime, Enum, ForeignKey, Index, Integer, String, Text, false, func
from sqlalchemy.orm import Mapped, mapped_column

from backend.app.extensions import db
from backend.app.models.kinds import NotificationType, enum_values


class Notification(db.Model):
    __tablename__ = "notifications"

    __table_args__ = (
        Index("idx_notifications_entity", "entity_type", "entity_id"),
        Index("idx_notifications_recipient", "recipient_user_id"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)

    recipient_user_id: Mapped[int] = mapped_column(
        ForeignKey("users.id", ondelete="RESTRICT"),
        nullable=False,
    )

    actor_user_id: Mapped[int] = mapped_column(
        ForeignKey("users.id", ondelete="RESTRICT"),
        nullable=False,
    )

    notification_type: Mapped[NotificationType] = mapped_column(
        Enum(
            NotificationType,
            name="notification_type_enum",
            native_enum=False,
            values_callable=enum_values,
        ),
        nullable=False,
    )

    entity_type: Mapped[str] = mapped_column(String(20), nullable=False)
    entity_id: Mapped[int] = mapped_column(Integer, nullable=False)

    message: Mapped[str | None] = mapped_column(Text, nullable=True)

    is_read: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=False,
        server_default=false(),
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )

    def __repr__(self) -> str:  # pragma: no cover
        return (
            f"<Notification id={self.id} {self.notification_type.value} "
            f"{self.entity_type}:{self.entity_id} → user {self.recipient_user_id}>"
        )
