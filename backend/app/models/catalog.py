"""
models/catalog.py — Reviewable catalog items and their reviews.

A Review belongs to a ReviewableEntity through a typed FK (item_id). When
the item is deleted every review of it goes through its own full cascade
before the item row is removed.

`ratingpoint` is the reviewer's score for the item. `average_rating` /
`total_ratings` are the cached aggregate of other users rating the review
itself (review_ratings), owned by services/rating_service.py.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal

from sqlalchemy import DateTime, ForeignKey, Integer, Numeric, String, Text, func
from sqlalchemy.orm import Mapped, mapped_column

from backend.app.extensions import db


class ReviewableEntity(db.Model):
    __tablename__ = "reviewable_entities"

    id: Mapped[int] = mapped_column(primary_key=True)

    name: Mapped[str] = mapped_column(String(255), nullable=False)

    category: Mapped[str | None] = mapped_column(String(100), nullable=True)

    # Catalog items outlive their creator; cleared when the user is deleted.
    created_by: Mapped[int | None] = mapped_column(
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )

    def __repr__(self) -> str:  # pragma: no cover
        return f"<ReviewableEntity id={self.id} name={self.name!r}>"


class Review(db.Model):
    __tablename__ = "reviews"

    id: Mapped[int] = mapped_column(primary_key=True)

    user_id: Mapped[int] = mapped_column(
        ForeignKey("users.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )

    item_id: Mapped[int] = mapped_column(
        ForeignKey("reviewable_entities.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )

    title: Mapped[str | None] = mapped_column(String(255), nullable=True)

    review_text: Mapped[str] = mapped_column(Text, nullable=False)

    ratingpoint: Mapped[Decimal | None] = mapped_column(Numeric(2, 1), nullable=True)

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

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )

    def __repr__(self) -> str:  # pragma: no cover
        return f"<Review id={self.id} item_id={self.item_id} user_id={self.user_id}>"
