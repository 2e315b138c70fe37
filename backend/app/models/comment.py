"""
models/comment.py — Comment table definition.

A comment is three things at once:
  - a primary entity (votes, reports and notifications reference it as
    ('comment', id));
  - a polymorphic reference to the thread it belongs to via
    (entity_type, entity_id) — a post, review or catalog item;
  - a node in the reply tree via parent_comment_id.

Replies carry the same (entity_type, entity_id) as their thread. The
parent FK has no ON DELETE action: the cascade engine deletes descendants
deepest level first, then the comment itself.
"""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import DateTime, ForeignKey, Index, Integer, String, Text, func
from sqlalchemy.orm import Mapped, mapped_column

from backend.app.extensions import db


class Comment(db.Model):
    __tablename__ = "comments"

    __table_args__ = (
        Index("idx_comments_entity", "entity_type", "entity_id"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)

    user_id: Mapped[int] = mapped_column(
        ForeignKey("users.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )

    comment_text: Mapped[str] = mapped_column(Text, nullable=False)

    entity_type: Mapped[str] = mapped_column(String(20), nullable=False)
    entity_id: Mapped[int] = mapped_column(Integer, nullable=False)

    # NULL = top-level comment. Drives the comment-vs-reply notification rule.
    parent_comment_id: Mapped[int | None] = mapped_column(
        ForeignKey("comments.id"),
        nullable=True,
        index=True,
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )

    @property
    def is_reply(self) -> bool:
        return self.parent_comment_id is not None

    def __repr__(self) -> str:  # pragma: no cover
        return (
            f"<Comment id={self.id} {self.entity_type}:{self.entity_id} "
            f"parent={self.parent_comment_id}>"
        )
