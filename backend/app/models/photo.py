"""
models/photo.py — Photo metadata table definition.

Polymorphic reference with its own column pair: (type, source_id).
Profile photos are stored with type = 'profile' and source_id = user id.
File storage itself lives outside this service.
"""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import DateTime, ForeignKey, Index, Integer, String, func
from sqlalchemy.orm import Mapped, mapped_column

from backend.app.extensions import db


class Photo(db.Model):
    __tablename__ = "photos"

    __table_args__ = (
        Index("idx_photos_source", "type", "source_id"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)

    # Uploader.
    user_id: Mapped[int] = mapped_column(
        ForeignKey("users.id", ondelete="RESTRICT"),
        nullable=False,
    )

    type: Mapped[str] = mapped_column(String(20), nullable=False)
    source_id: Mapped[int] = mapped_column(Integer, nullable=False)

    photo_name: Mapped[str] = mapped_column(String(255), nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )

    def __repr__(self) -> str:  # pragma: no cover
        return f"<Photo id={self.id} {self.type}:{self.source_id}>"
