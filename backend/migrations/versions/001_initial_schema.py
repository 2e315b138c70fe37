"""Initial schema — all tables, constraints, and reference indexes.

Revision: 001_initial_schema
Created:  2026-10-19

Append-only:
  This file must NEVER be edited after it has been applied to any database.
  If a schema change is required, create a NEW migration file.

Creation order:
  1. Tables in FK dependency order (users → reviewable_entities → posts,
     reviews → comments → votes, reports, photos, notifications →
     post_ratings, review_ratings → follows)
  2. Indexes on every polymorphic (type, id) pair

Polymorphic reference columns are NOT uniform and must match
app/services/reference_index.py exactly:
  votes, comments, notifications   (entity_type, entity_id)
  photos                           (type, source_id)
  reports                          (reported_item_type, reported_item_id)

ON DELETE policies:
  post_ratings.post_id        → CASCADE   (rating owned by post)
  review_ratings.review_id    → CASCADE   (rating owned by review)
  comments.parent_comment_id  → NO ACTION (engine deletes deepest level first)
  reviewable_entities.created_by → SET NULL
  everything else naming users → RESTRICT (user deletion goes through the engine)

Enum-like columns (vote_type, notification_type) are VARCHAR; the models
map them with Enum(native_enum=False), so no PostgreSQL enum types exist.
"""

from __future__ import annotations

import sqlalchemy as sa
from alembic import op

# ── Alembic revision identifiers ──────────────────────────────────────────
revision: str = "001_initial_schema"
down_revision: str | None = None      # first migration — no parent
branch_labels: tuple | None = None
depends_on: tuple | None = None


def _created_at() -> sa.Column:
    return sa.Column(
        "created_at",
        sa.DateTime(timezone=True),
        nullable=False,
        server_default=sa.func.now(),
    )


def _user_fk(name: str, table: str, nullable: bool = False) -> sa.Column:
    return sa.Column(
        name,
        sa.Integer(),
        sa.ForeignKey("users.id", ondelete="RESTRICT", name=f"fk_{table}_{name}"),
        nullable=nullable,
    )


def upgrade() -> None:
    """Apply the full initial schema."""

    # ── Step 1: users ──────────────────────────────────────────────────────

    op.create_table(
        "users",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("username", sa.String(50), nullable=False),
        sa.Column("is_admin", sa.Boolean(), nullable=False, server_default=sa.false()),
        _created_at(),
        sa.PrimaryKeyConstraint("id", name="pk_users"),
        sa.UniqueConstraint("username", name="uq_users_username"),
        sa.CheckConstraint(
            "LENGTH(TRIM(username)) > 0",
            name="ck_users_username_nonempty",
        ),
    )

    # ── Step 2: reviewable_entities (catalog) ──────────────────────────────

    op.create_table(
        "reviewable_entities",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("category", sa.String(100), nullable=True),
        sa.Column(
            "created_by",
            sa.Integer(),
            sa.ForeignKey("users.id", ondelete="SET NULL", name="fk_reviewable_entities_created_by"),
            nullable=True,
        ),
        _created_at(),
        sa.PrimaryKeyConstraint("id", name="pk_reviewable_entities"),
    )

    # ── Step 3: posts, reviews ─────────────────────────────────────────────
    # average_rating NULL = no ratings yet (never 0). posts.ratingpoint is the
    # same average at one decimal place.

    op.create_table(
        "posts",
        sa.Column("id", sa.Integer(), nullable=False),
        _user_fk("user_id", "posts"),
        sa.Column("post_text", sa.Text(), nullable=False),
        sa.Column("is_rate_enabled", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("average_rating", sa.Numeric(3, 2), nullable=True),
        sa.Column("total_ratings", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("ratingpoint", sa.Numeric(2, 1), nullable=True),
        _created_at(),
        sa.PrimaryKeyConstraint("id", name="pk_posts"),
    )

    op.create_table(
        "reviews",
        sa.Column("id", sa.Integer(), nullable=False),
        _user_fk("user_id", "reviews"),
        sa.Column(
            "item_id",
            sa.Integer(),
            sa.ForeignKey("reviewable_entities.id", ondelete="RESTRICT", name="fk_reviews_item"),
            nullable=False,
        ),
        sa.Column("title", sa.String(255), nullable=True),
        sa.Column("review_text", sa.Text(), nullable=False),
        sa.Column("ratingpoint", sa.Numeric(2, 1), nullable=True),
        sa.Column("average_rating", sa.Numeric(3, 2), nullable=True),
        sa.Column("total_ratings", sa.Integer(), nullable=False, server_default="0"),
        _created_at(),
        sa.PrimaryKeyConstraint("id", name="pk_reviews"),
    )

    # ── Step 4: comments ───────────────────────────────────────────────────
    # Thread via (entity_type, entity_id); reply tree via parent_comment_id.

    op.create_table(
        "comments",
        sa.Column("id", sa.Integer(), nullable=False),
        _user_fk("user_id", "comments"),
        sa.Column("comment_text", sa.Text(), nullable=False),
        sa.Column("entity_type", sa.String(20), nullable=False),
        sa.Column("entity_id", sa.Integer(), nullable=False),
        sa.Column(
            "parent_comment_id",
            sa.Integer(),
            sa.ForeignKey("comments.id", name="fk_comments_parent"),
            nullable=True,
        ),
        _created_at(),
        sa.PrimaryKeyConstraint("id", name="pk_comments"),
    )

    # ── Step 5: polymorphic dependents ─────────────────────────────────────

    op.create_table(
        "votes",
        sa.Column("id", sa.Integer(), nullable=False),
        _user_fk("user_id", "votes"),
        sa.Column("entity_type", sa.String(20), nullable=False),
        sa.Column("entity_id", sa.Integer(), nullable=False),
        sa.Column("vote_type", sa.String(4), nullable=False, server_default="up"),
        _created_at(),
        sa.PrimaryKeyConstraint("id", name="pk_votes"),
        sa.UniqueConstraint("user_id", "entity_type", "entity_id", name="uq_votes_user_entity"),
        sa.CheckConstraint("vote_type IN ('up', 'down')", name="ck_votes_type"),
    )

    op.create_table(
        "reports",
        sa.Column("id", sa.Integer(), nullable=False),
        _user_fk("reporter_id", "reports"),
        sa.Column("reported_item_type", sa.String(20), nullable=False),
        sa.Column("reported_item_id", sa.Integer(), nullable=False),
        sa.Column("reason", sa.Text(), nullable=True),
        sa.Column("status", sa.String(20), nullable=False, server_default="pending"),
        _created_at(),
        sa.PrimaryKeyConstraint("id", name="pk_reports"),
    )

    op.create_table(
        "photos",
        sa.Column("id", sa.Integer(), nullable=False),
        _user_fk("user_id", "photos"),
        sa.Column("type", sa.String(20), nullable=False),
        sa.Column("source_id", sa.Integer(), nullable=False),
        sa.Column("photo_name", sa.String(255), nullable=False),
        _created_at(),
        sa.PrimaryKeyConstraint("id", name="pk_photos"),
    )

    op.create_table(
        "notifications",
        sa.Column("id", sa.Integer(), nullable=False),
        _user_fk("recipient_user_id", "notifications"),
        _user_fk("actor_user_id", "notifications"),
        sa.Column("notification_type", sa.String(7), nullable=False),
        sa.Column("entity_type", sa.String(20), nullable=False),
        sa.Column("entity_id", sa.Integer(), nullable=False),
        sa.Column("message", sa.Text(), nullable=True),
        sa.Column("is_read", sa.Boolean(), nullable=False, server_default=sa.false()),
        _created_at(),
        sa.PrimaryKeyConstraint("id", name="pk_notifications"),
    )

    # ── Step 6: ratings ────────────────────────────────────────────────────
    # One rating per (user, rated entity).

    op.create_table(
        "post_ratings",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column(
            "post_id",
            sa.Integer(),
            sa.ForeignKey("posts.id", ondelete="CASCADE", name="fk_post_ratings_post"),
            nullable=False,
        ),
        _user_fk("user_id", "post_ratings"),
        sa.Column("rating", sa.Numeric(2, 1), nullable=False),
        _created_at(),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint("id", name="pk_post_ratings"),
        sa.UniqueConstraint("user_id", "post_id", name="uq_post_ratings_user_post"),
        sa.CheckConstraint("rating >= 0 AND rating <= 5", name="ck_post_ratings_range"),
    )

    op.create_table(
        "review_ratings",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column(
            "review_id",
            sa.Integer(),
            sa.ForeignKey("reviews.id", ondelete="CASCADE", name="fk_review_ratings_review"),
            nullable=False,
        ),
        _user_fk("user_id", "review_ratings"),
        sa.Column("rating", sa.Numeric(2, 1), nullable=False),
        _created_at(),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint("id", name="pk_review_ratings"),
        sa.UniqueConstraint("user_id", "review_id", name="uq_review_ratings_user_review"),
        sa.CheckConstraint("rating >= 0 AND rating <= 5", name="ck_review_ratings_range"),
    )

    # ── Step 7: follows ────────────────────────────────────────────────────

    op.create_table(
        "follows",
        sa.Column("id", sa.Integer(), nullable=False),
        _user_fk("follower_id", "follows"),
        _user_fk("followed_id", "follows"),
        _created_at(),
        sa.PrimaryKeyConstraint("id", name="pk_follows"),
        sa.UniqueConstraint("follower_id", "followed_id", name="uq_follows_pair"),
        sa.CheckConstraint("follower_id <> followed_id", name="ck_follows_not_self"),
    )

    # ── Step 8: Indexes ────────────────────────────────────────────────────
    # Every (type, id) pair the cascade deletes by, plus the reply tree.

    op.create_index("ix_posts_user_id", "posts", ["user_id"])
    op.create_index("ix_reviews_user_id", "reviews", ["user_id"])
    op.create_index("ix_reviews_item_id", "reviews", ["item_id"])
    op.create_index("idx_comments_entity", "comments", ["entity_type", "entity_id"])
    op.create_index("ix_comments_parent_comment_id", "comments", ["parent_comment_id"])
    op.create_index("ix_comments_user_id", "comments", ["user_id"])
    op.create_index("idx_votes_entity", "votes", ["entity_type", "entity_id"])
    op.create_index("idx_reports_item", "reports", ["reported_item_type", "reported_item_id"])
    op.create_index("idx_photos_source", "photos", ["type", "source_id"])
    op.create_index("idx_notifications_entity", "notifications", ["entity_type", "entity_id"])
    op.create_index("idx_notifications_recipient", "notifications", ["recipient_user_id"])
    op.create_index("ix_post_ratings_post_id", "post_ratings", ["post_id"])
    op.create_index("ix_review_ratings_review_id", "review_ratings", ["review_id"])
    op.create_index("ix_follows_follower_id", "follows", ["follower_id"])
    op.create_index("ix_follows_followed_id", "follows", ["followed_id"])


def downgrade() -> None:
    """
    Drop everything created by upgrade(), in reverse dependency order.
    Indexes are dropped with their tables.
    """
    op.drop_table("follows")
    op.drop_table("review_ratings")
    op.drop_table("post_ratings")
    op.drop_table("notifications")
    op.drop_table("photos")
    op.drop_table("reports")
    op.drop_table("votes")
    op.drop_table("comments")
    op.drop_table("reviews")
    op.drop_table("posts")
    op.drop_table("reviewable_entities")
    op.drop_table("users")
