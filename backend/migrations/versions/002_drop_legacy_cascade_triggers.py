"""Drop legacy cascade/notification/rating triggers.

Revision: 002_drop_legacy_cascade_triggers
Created:  2026-10-19

Databases migrated from the previous platform still carry store-level
triggers that deleted dependents, created vote/rating notifications and
recomputed post averages. Every one of those effects is now a step of the
cascade executor, the notification propagator or the aggregate
recalculator. Left in place, the triggers would run a second, divergent
cascade (several versions disagreed on table and column names) and
double-count notifications.

PostgreSQL only; a no-op on any other dialect. IF EXISTS everywhere, so a
fresh database created by 001 passes through unchanged.

Append-only:
  This file must NEVER be edited after it has been applied to any database.

downgrade() does not recreate the triggers: their bodies were never a
single consistent version.
"""

from __future__ import annotations

from alembic import op

# ── Alembic revision identifiers ──────────────────────────────────────────
revision: str = "002_drop_legacy_cascade_triggers"
down_revision: str | None = "001_initial_schema"
branch_labels: tuple | None = None
depends_on: tuple | None = None


# (trigger, table) pairs found on legacy databases.
_LEGACY_TRIGGERS = (
    ("post_deletion_cascade", "posts"),
    ("cleanup_post_notifications_trigger", "posts"),
    ("trigger_cleanup_post_notifications", "posts"),
    ("trigger_cleanup_review_notifications", "reviews"),
    ("trigger_vote_notification", "votes"),
    ("trigger_post_rating_notification", "post_ratings"),
    ("update_post_rating_on_insert", "post_ratings"),
    ("update_post_rating_on_update", "post_ratings"),
    ("update_post_rating_on_delete", "post_ratings"),
    ("update_rating_on_insert", "post_ratings"),
    ("update_rating_on_update", "post_ratings"),
    ("update_rating_on_delete", "post_ratings"),
)

_LEGACY_FUNCTIONS = (
    "handle_post_deletion",
    "cleanup_post_notifications",
    "cleanup_review_notifications",
    "notify_vote",
    "notify_post_rating",
    "update_post_rating_average",
    "calculate_post_average_rating",
    "calculate_post_average_rating_manual",
    "recalculate_all_post_ratings",
)


def upgrade() -> None:
    if op.get_bind().dialect.name != "postgresql":
        return

    for trigger, table in _LEGACY_TRIGGERS:
        op.execute(f"DROP TRIGGER IF EXISTS {trigger} ON {table}")

    # CASCADE: some legacy functions were overloaded with different arg lists.
    for function in _LEGACY_FUNCTIONS:
        op.execute(f"DROP FUNCTION IF EXISTS {function} CASCADE")


def downgrade() -> None:
    pass
