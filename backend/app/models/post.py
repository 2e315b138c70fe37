"""
models/post.py — Post table definition.

`average_rating`, `total_ratings` and `ratingpoint` are cached aggregates
owned by services/rating_service.py. They must always equal the aggregate
over the post's current rows in post_ratings; nothing else writes them.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal

from sqlalchemy import Boolean, DateTime, ForeignKey, Integer, Numeric, Text, func, true
from sqlalchemy.orm import Mapped, mapped_column

from backend.app.extensions import db


class Post(db.Model):
    __tablename__ = "posts"

    id: Mapped[int] = mapped_column(primary_key=True)

    user_id: Mapped[int] = mapped_column(
        ForeignKey("users.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )

    post_text: Mapped[str] = mapped_column(Text, nullable=False)

    # "Rate my work" posts accept ratings; ordinary posts do not.
    is_rate_enabled: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=True,
        server_default=true(),
    )

    # NULL while unrated — never 0.
    average_rating: Mapped[Decimal | None] = mapped_column(
        Numeric(3, 2),
        nullable=True,
    )

    total_ratings: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=0,
        server_default="0",
    )

    # average_rating rounded half-up to one place; NULL while unrated.
    ratingpoint: Mapped[Decimal | None] = mapped_column(
        Numeric(2, 1),
        nullable=True,
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )

    def __repr__(self) -> str:  # pragma: no cover
        return (
            f"<Post id={self.id} user_id={self.user_id} "
            f"average_rating={self.average_rating} total_ratings={self.total_ratings}>"
        )
