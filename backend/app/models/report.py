"""
models/report.py — Report table definition.

Polymorphic reference with its own column pair:
(reported_item_type, reported_item_id). Do not assume entity_type/entity_id.
"""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import DateTime, ForeignKey, Index, Integer, String, Text, func
from sqlalchemy.orm import Mapped, mapped_column

from backend.app.extensions import db


class Report(db.Model):
    __tablename__ = "reports"

    __table_args__ = (
        Index("idx_reports_item", "reported_item_type", "reported_item_id"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)

    reporter_id: Mapped[int] = mapped_column(
        ForeignKey("users.id", ondelete="RESTRICT"),
        nullable=False,
    )

    reported_item_type: Mapped[str] = mapped_column(String(20), nullable=False)
    reported_item_id: Mapped[int] = mapped_column(Integer, nullable=False)

    reason: Mapped[str | None] = mapped_column(Text, nullable=True)

    status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default="pending",
        server_default="pending",
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )

    def __repr__(self) -> str:  # pragma: no cover
        return f"<Report id={self.id} {self.reported_item_type}:{self.reported_item_id}>"
