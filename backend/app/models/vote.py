"""
models/vote.py — Vote table definition.

Polymorphic reference: (entity_type, entity_id) → post, review or comment.
"""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import DateTime, Enum, ForeignKey, Index, Integer, String, UniqueConstraint, func
from sqlalchemy.orm import Mapped, mapped_column

from backend.app.extensions import db
from backend.app.models.kinds import VoteType, enum_values


class Vote(db.Model):
    __tablename__ = "votes"

    __table_args__ = (
        # One vote per user per target.
        UniqueConstraint("user_id", "entity_type", "entity_id", name="uq_votes_user_entity"),
        Index("idx_votes_entity", "entity_type", "entity_id"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)

    user_id: Mapped[int] = mapped_column(
        ForeignKey("users.id", ondelete="RESTRICT"),
        nullable=False,
    )

    entity_type: Mapped[str] = mapped_column(String(20), nullable=False)
    entity_id: Mapped[int] = mapped_column(Integer, nullable=False)

    vote_type: Mapped[VoteType] = mapped_column(
        Enum(
            VoteType,
            name="vote_type_enum",
            native_enum=False,
            values_callable=enum_values,
        ),
        nullable=False,
        default=VoteType.UP,
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )

    def __repr__(self) -> str:  # pragma: no cover
        return f"<Vote id={self.id} user_id={self.user_id} {self.entity_type}:{self.entity_id}>"
