"""
services/cascade_service.py — Cascade executor.

delete_primary_entity() removes a post, review, comment, catalog item or
user together with everything that references it, as one unit of work:

    1. lock the primary row (a concurrent second delete sees NotFound)
    2. cascade nested primaries first (reviews of a catalog item; posts,
       reviews and comments authored by a user)
    3. resolve the comment closure, before anything is deleted
    4. delete dependents in CASCADE_ORDER:
         notifications → reports → votes → photos → comments
       each for the primary and for every comment in the closure
    5. delete kind-specific extras (ratings, follows, ...) and recompute
       the aggregate of every rated entity that survives
    6. clear nullified references
    7. delete the primary row

Any failure rolls the whole unit back. Nothing is partially applied.

Comment closure:
    For a comment: its replies, their replies, and so on.
    For a thread owner (post, review, catalog item): every comment whose
    (entity_type, entity_id) points at it, plus all their descendants.
    Computed breadth-first, level by level. Comments are deleted deepest
    level first so the parent FK never sees a dangling child.

Result:
    {record_kind: rows_deleted}, non-zero kinds only. The primary row is
    not counted; nested primaries are counted under their own kind.

Layer rules:
  - No Flask imports. Pure Python with a SQLAlchemy session parameter.
  - Commits are the route's responsibility — only flush here.
  - Dependent tables and columns come from reference_index only.
"""

from __future__ import annotations

import logging
from collections import Counter

from sqlalchemy import delete, select, update
from sqlalchemy.orm import Session

from backend.app.errors import AppError, ErrorCode
from backend.app.models.follow import Follow
from backend.app.models.kinds import EntityKind
from backend.app.models.vote import Vote
from backend.app.services import notification_service, rating_service
from backend.app.services.reference_index import (
    CASCADE_ORDER,
    COMMENT_TREE,
    COMMENTS,
    NOTIFICATIONS,
    ReferenceDescriptor,
    child_primaries_of,
    coerce_kind,
    nullified_references_of,
    owned_records_of,
    primary_table,
)
from backend.app.services.unit_of_work import unit_of_work

logger = logging.getLogger(__name__)


# ── Private helpers ────────────────────────────────────────────────────────

def _not_found(kind: EntityKind, entity_id: int) -> AppError:
    return AppError(
        ErrorCode.ENTITY_NOT_FOUND,
        f"{kind.value.capitalize()} {entity_id} does not exist.",
        404,
    )


def _lock_primary(kind: EntityKind, entity_id: int, session: Session) -> None:
    table = primary_table(kind)
    row = session.execute(
        select(table.c.id).where(table.c.id == entity_id).with_for_update()
    ).first()
    if row is None:
        raise _not_found(kind, entity_id)


def _exists(kind: EntityKind, entity_id: int, session: Session) -> bool:
    table = primary_table(kind)
    return session.execute(
        select(table.c.id).where(table.c.id == entity_id)
    ).first() is not None


def _comment_levels(kind: EntityKind, entity_id: int, session: Session) -> list[list[int]]:
    """
    Breadth-first comment closure below the primary, one list per depth.

    For a comment the primary itself is not included; it is deleted as
    the primary row.
    """
    tree = COMMENT_TREE.table
    parent = tree.c[COMMENT_TREE.parent_column]

    if kind is EntityKind.COMMENT:
        frontier = session.execute(
            select(tree.c.id).where(parent == entity_id)
        ).scalars().all()
    else:
        tag = COMMENTS.tag_for(kind)
        if tag is None:
            return []
        comments = COMMENTS.table
        frontier = session.execute(
            select(comments.c.id).where(
                comments.c[COMMENTS.type_column] == tag,
                comments.c[COMMENTS.id_column] == entity_id,
            )
        ).scalars().all()

    seen = {entity_id} if kind is EntityKind.COMMENT else set()
    levels: list[list[int]] = []
    while frontier:
        level = [cid for cid in frontier if cid not in seen]
        if not level:
            break
        seen.update(level)
        levels.append(level)
        frontier = session.execute(
            select(tree.c.id).where(parent.in_(level))
        ).scalars().all()
    return levels


def _delete_references(
        descriptor: ReferenceDescriptor,
        kind: EntityKind,
        entity_id: int,
        comment_ids: list[int],
        session: Session,
) -> int:
    """Deletes descriptor rows pointing at the primary or at any closure comment."""
    table = descriptor.table
    type_col = table.c[descriptor.type_column]
    id_col = table.c[descriptor.id_column]
    deleted = 0

    tag = descriptor.tag_for(kind)
    if tag is not None:
        result = session.execute(
            delete(table).where(type_col == tag, id_col == entity_id)
        )
        deleted += result.rowcount or 0

    comment_tag = descriptor.tag_for(EntityKind.COMMENT)
    if comment_tag is not None and comment_ids:
        result = session.execute(
            delete(table).where(type_col == comment_tag, id_col.in_(comment_ids))
        )
        deleted += result.rowcount or 0

    return deleted


def _delete_comment_levels(levels: list[list[int]], session: Session) -> int:
    tree = COMMENT_TREE.table
    deleted = 0
    for level in reversed(levels):
        result = session.execute(delete(tree).where(tree.c.id.in_(level)))
        deleted += result.rowcount or 0
    return deleted


def _delete_owned(kind: EntityKind, entity_id: int, session: Session, counts: Counter) -> None:
    for owned in owned_records_of(kind):
        table = owned.table
        owner_col = table.c[owned.owner_column]

        rated_ids: list[int] = []
        if owned.rated is not None:
            rated_col = table.c[owned.rated[1]]
            rated_ids = session.execute(
                select(rated_col).where(owner_col == entity_id).distinct()
            ).scalars().all()

        result = session.execute(delete(table).where(owner_col == entity_id))
        counts[owned.record_kind] += result.rowcount or 0

        if owned.rated is not None:
            rated_kind = owned.rated[0]
            for rated_id in rated_ids:
                rating_service.recompute_if_present(rated_kind, rated_id, session)


def _nullify_references(kind: EntityKind, entity_id: int, session: Session) -> None:
    for ref in nullified_references_of(kind):
        table = ref.table
        column = table.c[ref.column]
        result = session.execute(
            update(table).where(column == entity_id).values({ref.column: None})
        )
        if result.rowcount:
            logger.debug(
                "Cleared %s.%s on %s rows for %s %s",
                ref.table_name, ref.column, result.rowcount, kind.value, entity_id,
            )


def _cascade(kind: EntityKind, entity_id: int, session: Session, counts: Counter) -> None:
    """Full cascade for one primary row. Assumes the row exists."""
    for child in child_primaries_of(kind):
        table = child.table
        child_ids = session.execute(
            select(table.c.id).where(table.c[child.owner_column] == entity_id)
        ).scalars().all()
        for child_id in child_ids:
            # An earlier cascade in this call may already have removed it.
            if not _exists(child.kind, child_id, session):
                continue
            _cascade(child.kind, child_id, session, counts)
            counts[child.kind.value] += 1

    levels = _comment_levels(kind, entity_id, session)
    comment_ids = [cid for level in levels for cid in level]

    for descriptor in CASCADE_ORDER:
        if descriptor is NOTIFICATIONS:
            deleted = notification_service.purge_for_entity(kind, entity_id, comment_ids, session)
        elif descriptor is COMMENTS:
            deleted = _delete_comment_levels(levels, session)
        else:
            deleted = _delete_references(descriptor, kind, entity_id, comment_ids, session)
        counts[descriptor.record_kind] += deleted

    _delete_owned(kind, entity_id, session, counts)
    _nullify_references(kind, entity_id, session)

    table = primary_table(kind)
    session.execute(delete(table).where(table.c.id == entity_id))


def _nonzero(counts: Counter) -> dict[str, int]:
    return {kind: count for kind, count in sorted(counts.items()) if count}


# ── Public service functions ───────────────────────────────────────────────

def delete_primary_entity(
        kind: EntityKind | str,
        entity_id: int,
        session: Session,
        timeout_ms: int | None = None,
) -> dict[str, int]:
    """
    Deletes a primary entity and every record that depends on it.

    Args:
        kind:       post, review, comment, entity or user.
        entity_id:  Primary key of the row to delete.
        session:    SQLAlchemy session. Flushed, not committed.
        timeout_ms: Statement timeout for the whole unit (PostgreSQL only).

    Returns:
        Deleted row counts per dependent kind, non-zero kinds only.

    Raises:
        UNKNOWN_KIND (400), ENTITY_NOT_FOUND (404),
        STORE_UNAVAILABLE (503), INTEGRITY_VIOLATION (500).
    """
    kind = coerce_kind(kind)
    counts: Counter = Counter()

    with unit_of_work(session, timeout_ms):
        _lock_primary(kind, entity_id, session)
        _cascade(kind, entity_id, session, counts)

    result = _nonzero(counts)
    logger.info("Deleted %s %s with dependents %s", kind.value, entity_id, result)
    return result


def delete_vote(vote_id: int, session: Session) -> dict[str, int]:
    """Deletes a vote and the notification it produced."""
    with unit_of_work(session):
        vote = session.execute(
            select(Vote).where(Vote.id == vote_id).with_for_update()
        ).scalar_one_or_none()
        if vote is None:
            raise AppError(ErrorCode.ENTITY_NOT_FOUND, f"Vote {vote_id} does not exist.", 404)

        removed = notification_service.purge_for_vote(vote, session)
        session.delete(vote)

    logger.info("Deleted vote %s (%s notifications)", vote_id, removed)
    return _nonzero(Counter(vote=1, notification=removed))


def delete_follow(follower_id: int, followed_id: int, session: Session) -> dict[str, int]:
    """Deletes the follower → followed edge and its follow notification."""
    with unit_of_work(session):
        follow = session.execute(
            select(Follow).where(
                Follow.follower_id == follower_id,
                Follow.followed_id == followed_id,
            ).with_for_update()
        ).scalar_one_or_none()
        if follow is None:
            raise AppError(
                ErrorCode.ENTITY_NOT_FOUND,
                f"User {follower_id} does not follow user {followed_id}.",
                404,
            )

        removed = notification_service.purge_for_follow(follow, session)
        session.delete(follow)

    logger.info("User %s unfollowed user %s", follower_id, followed_id)
    return _nonzero(Counter(follow=1, notification=removed))


# ── Lookups for the HTTP adapter ───────────────────────────────────────────

def entity_exists(kind: EntityKind | str, entity_id: int, session: Session) -> bool:
    return _exists(coerce_kind(kind), entity_id, session)


def vote_owner(vote_id: int, session: Session) -> int | None:
    """The voter's user id, or None when the vote does not exist."""
    return session.execute(
        select(Vote.user_id).where(Vote.id == vote_id)
    ).scalar_one_or_none()
