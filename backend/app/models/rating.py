"""
models/rating.py — Post and review rating tables.

One rating per (user, rated entity), enforced by a UNIQUE constraint.
Scores are 0–5 in half steps; the step rule lives in rating_service.py,
the range is also a CHECK here.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal

from sqlalchemy import CheckConstraint, DateTime, ForeignKey, Numeric, UniqueConstraint, func
from sqlalchemy.orm import Mapped, mapped_column

from backend.app.extensions import db


class PostRating(db.Model):
    __tablename__ = "post_ratings"

    __table_args__ = (
        UniqueConstraint("user_id", "post_id", name="uq_post_ratings_user_post"),
        CheckConstraint("rating >= 0 AND rating <= 5", name="ck_post_ratings_range"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)

    post_id: Mapped[int] = mapped_column(
        ForeignKey("posts.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    user_id: Mapped[int] = mapped_column(
        ForeignKey("users.id", ondelete="RESTRICT"),
        nullable=False,
    )

    rating: Mapped[Decimal] = mapped_column(Numeric(2, 1), nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )

    updated_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    def __repr__(self) -> str:  # pragma: no cover
        return f"<PostRating post_id={self.post_id} user_id={self.user_id} rating={self.rating}>"


class ReviewRating(db.Model):
    __tablename__ = "review_ratings"

    __table_args__ = (
        UniqueConstraint("user_id", "review_id", name="uq_review_ratings_user_review"),
        CheckConstraint("rating >= 0 AND rating <= 5", name="ck_review_ratings_range"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)

    review_id: Mapped[int] = mapped_column(
        ForeignKey("reviews.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    user_id: Mapped[int] = mapped_column(
        ForeignKey("users.id", ondelete="RESTRICT"),
        nullable=False,
    )

    rating: Mapped[Decimal] = mapped_column(Numeric(2, 1), nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )

    updated_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    def __repr__(self) -> str:  # pragma: no cover
        return f"<ReviewRating review_id={self.review_id} user_id={self.user_id} rating={self.rating}>"
