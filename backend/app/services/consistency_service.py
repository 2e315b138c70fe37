"""
services/consistency_service.py — Orphan sweep (repair tool).

The cascade executor keeps references consistent as long as every delete
goes through it. Anything that bypasses it (manual SQL, an old script) can
leave orphans behind; sweep_orphans() finds and removes them:

  - polymorphic references whose (kind, id) target no longer exists
    (notifications, reports, votes, photos, comments)
  - replies whose parent comment is gone
  - typed extras whose owner is gone (ratings of a missing post/review,
    ratings/votes/photos/reports/follows of a missing user)
  - notifications whose recipient or actor is gone
  - primaries whose typed owner is gone (reviews of a missing catalog item;
    posts, reviews and comments of a missing user). Their own dependents
    are picked up by the next pass

Removing one orphan can orphan something else (a vote on an orphaned
comment), so passes repeat until a pass removes nothing. The result is a
fixed point: a second sweep with no writes in between removes 0 rows.

Transaction rules (the one exception to "routes commit"):
  - Every step commits on its own, so one failing step cannot undo the
    repairs of the others.
  - A failing step is rolled back, logged with its traceback, and skipped.
    The sweep never raises for an individual step.
"""

from __future__ import annotations

import logging
from collections import Counter
from typing import Callable, Iterator

import sqlalchemy as sa
from sqlalchemy import delete, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from backend.app.models.kinds import EntityKind
from backend.app.services import rating_service
from backend.app.services.reference_index import (
    CASCADE_ORDER,
    CHILD_PRIMARIES,
    COMMENT_TREE,
    NOTIFICATION_USER_COLUMNS,
    NOTIFICATIONS,
    OWNED_RECORDS,
    ChildDescriptor,
    OwnedDescriptor,
    ReferenceDescriptor,
    primary_table,
)

logger = logging.getLogger(__name__)

SweepStep = tuple[str, str, Callable[[Session], int]]


# ── Steps ──────────────────────────────────────────────────────────────────

def _dangling_references(descriptor: ReferenceDescriptor, kind: EntityKind, tag: str):
    def run(session: Session) -> int:
        table = descriptor.table
        target = primary_table(kind)
        result = session.execute(
            delete(table).where(
                table.c[descriptor.type_column] == tag,
                table.c[descriptor.id_column].not_in(select(target.c.id)),
            )
        )
        return result.rowcount or 0
    return run


def _orphaned_replies(session: Session) -> int:
    tree = COMMENT_TREE.table
    parent = tree.c[COMMENT_TREE.parent_column]
    parents = primary_table(EntityKind.COMMENT)
    result = session.execute(
        delete(tree).where(
            parent.is_not(None),
            parent.not_in(select(parents.c.id)),
        )
    )
    return result.rowcount or 0


def _orphaned_primaries(child: ChildDescriptor, owner_kind: EntityKind):
    def run(session: Session) -> int:
        table = child.table
        owner = primary_table(owner_kind)
        result = session.execute(
            delete(table).where(table.c[child.owner_column].not_in(select(owner.c.id)))
        )
        return result.rowcount or 0
    return run


def _owner_kind(owned: OwnedDescriptor) -> EntityKind:
    for kind, descriptors in OWNED_RECORDS.items():
        if owned in descriptors:
            return kind
    raise LookupError(f"{owned.table_name}.{owned.owner_column} has no owner kind")


def _orphaned_owned(owned: OwnedDescriptor):
    owner_kind = _owner_kind(owned)

    def run(session: Session) -> int:
        table = owned.table
        owner = primary_table(owner_kind)
        orphaned = table.c[owned.owner_column].not_in(select(owner.c.id))

        rated_ids: list[int] = []
        if owned.rated is not None:
            rated_ids = session.execute(
                select(table.c[owned.rated[1]]).where(orphaned).distinct()
            ).scalars().all()

        removed = session.execute(delete(table).where(orphaned)).rowcount or 0

        if owned.rated is not None:
            for rated_id in rated_ids:
                rating_service.recompute_if_present(owned.rated[0], rated_id, session)
        return removed
    return run


def _orphaned_notification_users(column: str):
    def run(session: Session) -> int:
        table = sa.table(NOTIFICATIONS.table_name, sa.column("id"), sa.column(column))
        users = primary_table(EntityKind.USER)
        result = session.execute(
            delete(table).where(table.c[column].not_in(select(users.c.id)))
        )
        return result.rowcount or 0
    return run


def sweep_steps() -> Iterator[SweepStep]:
    """(record_kind, label, step) for one pass, in cascade order."""
    for owner_kind, children in CHILD_PRIMARIES.items():
        for child in children:
            yield (
                child.kind.value,
                f"{child.table_name}.{child.owner_column}",
                _orphaned_primaries(child, owner_kind),
            )

    for descriptor in CASCADE_ORDER:
        for kind, tag in descriptor.tags.items():
            yield (
                descriptor.record_kind,
                f"{descriptor.table_name}.{descriptor.type_column}='{tag}'",
                _dangling_references(descriptor, kind, tag),
            )
    yield "comment", f"{COMMENT_TREE.table_name}.{COMMENT_TREE.parent_column}", _orphaned_replies

    seen: set[tuple[str, str]] = set()
    for descriptors in OWNED_RECORDS.values():
        for owned in descriptors:
            key = (owned.table_name, owned.owner_column)
            if key in seen:
                continue
            seen.add(key)
            yield owned.record_kind, f"{owned.table_name}.{owned.owner_column}", _orphaned_owned(owned)

    for column in NOTIFICATION_USER_COLUMNS:
        yield "notification", f"{NOTIFICATIONS.table_name}.{column}", _orphaned_notification_users(column)


# ── Public service function ────────────────────────────────────────────────

def _run_step(label: str, step: Callable[[Session], int], session: Session) -> int:
    try:
        removed = step(session)
        session.commit()
    except SQLAlchemyError:
        session.rollback()
        logger.exception("Orphan sweep step %s failed; skipped", label)
        return 0
    if removed:
        logger.info("Orphan sweep removed %s rows (%s)", removed, label)
    return removed


def sweep_orphans(session: Session) -> dict[str, int]:
    """
    Removes orphaned records until a full pass removes nothing.

    Returns:
        Rows removed per record kind, non-zero kinds only.
    """
    totals: Counter = Counter()
    passes = 0
    while True:
        passes += 1
        removed_this_pass = 0
        for record_kind, label, step in sweep_steps():
            removed = _run_step(label, step, session)
            totals[record_kind] += removed
            removed_this_pass += removed
        if not removed_this_pass:
            break

    result = {kind: count for kind, count in sorted(totals.items()) if count}
    logger.info("Orphan sweep finished after %s passes: %s", passes, result or "nothing to do")
    return result
