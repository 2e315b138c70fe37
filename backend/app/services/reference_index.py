"""
services/reference_index.py — Polymorphic reference index.

This file is the SINGLE SOURCE OF TRUTH for which records depend on which
primary entity, and through which columns. The cascade executor, the
notification propagator and the consistency verifier all read it; none of
them may name a dependent table or column on their own.

The column pairs are NOT uniform across record kinds:

    votes, comments, notifications   (entity_type, entity_id)
    photos                           (type, source_id)
    reports                          (reported_item_type, reported_item_id)

and neither are the tag values (a user's photos are tagged 'profile').
Using the wrong pair deletes nothing and raises nothing, so every pair is
spelled out per kind below and checked against the live schema by
verify_reference_index().

Layer rules:
  - No Flask imports. Static configuration, built once at import time.
  - Descriptors are frozen; nothing mutates the index at runtime.
"""

from __future__ import annotations

from dataclasses import dataclass
from types import MappingProxyType
from typing import Mapping

import sqlalchemy as sa
from sqlalchemy.sql.expression import TableClause

from backend.app.errors import AppError, ErrorCode
from backend.app.models.kinds import EntityKind


# ── Descriptor types ───────────────────────────────────────────────────────

@dataclass(frozen=True)
class ReferenceDescriptor:
    """
    A record kind that points at primary entities through a (type, id)
    column pair instead of a typed foreign key.

    `tags` maps every primary kind this record kind may reference to the
    value stored in `type_column` for it.
    """
    record_kind: str
    table_name: str
    type_column: str
    id_column: str
    tags: Mapping[EntityKind, str]

    def tag_for(self, kind: EntityKind) -> str | None:
        return self.tags.get(kind)

    @property
    def table(self) -> TableClause:
        return sa.table(
            self.table_name,
            sa.column("id"),
            sa.column(self.type_column),
            sa.column(self.id_column),
        )

    @property
    def columns(self) -> tuple[str, ...]:
        return ("id", self.type_column, self.id_column)


@dataclass(frozen=True)
class OwnedDescriptor:
    """
    A record kind owned through a typed column, deleted as a kind-specific
    extra once the polymorphic dependents are gone.

    When `rated` is set, the rows are ratings: `rated` names the rated
    entity kind and the column holding its id, so the aggregate of every
    surviving rated entity is recomputed after the delete.
    """
    record_kind: str
    table_name: str
    owner_column: str
    rated: tuple[EntityKind, str] | None = None

    @property
    def table(self) -> TableClause:
        columns = [sa.column("id"), sa.column(self.owner_column)]
        if self.rated is not None and self.rated[1] != self.owner_column:
            columns.append(sa.column(self.rated[1]))
        return sa.table(self.table_name, *columns)

    @property
    def columns(self) -> tuple[str, ...]:
        cols = ("id", self.owner_column)
        if self.rated is not None and self.rated[1] != self.owner_column:
            cols += (self.rated[1],)
        return cols


@dataclass(frozen=True)
class ChildDescriptor:
    """A nested primary entity that gets its own full cascade first."""
    kind: EntityKind
    table_name: str
    owner_column: str

    @property
    def table(self) -> TableClause:
        return sa.table(self.table_name, sa.column("id"), sa.column(self.owner_column))

    @property
    def columns(self) -> tuple[str, ...]:
        return ("id", self.owner_column)


@dataclass(frozen=True)
class NullifiedDescriptor:
    """A reference that is cleared (set to NULL) rather than deleted."""
    table_name: str
    column: str

    @property
    def table(self) -> TableClause:
        return sa.table(self.table_name, sa.column("id"), sa.column(self.column))

    @property
    def columns(self) -> tuple[str, ...]:
        return ("id", self.column)


@dataclass(frozen=True)
class CommentTree:
    """The reply tree: arena of comments keyed by id with an optional parent."""
    table_name: str
    parent_column: str

    @property
    def table(self) -> TableClause:
        return sa.table(self.table_name, sa.column("id"), sa.column(self.parent_column))

    @property
    def columns(self) -> tuple[str, ...]:
        return ("id", self.parent_column)


# ── Primary entity tables ──────────────────────────────────────────────────

PRIMARY_TABLES: Mapping[EntityKind, str] = MappingProxyType({
    EntityKind.POST:    "posts",
    EntityKind.REVIEW:  "reviews",
    EntityKind.COMMENT: "comments",
    EntityKind.ENTITY:  "reviewable_entities",
    EntityKind.USER:    "users",
})


def primary_table(kind: EntityKind) -> TableClause:
    return sa.table(PRIMARY_TABLES[kind], sa.column("id"))


# ── Polymorphic dependents ─────────────────────────────────────────────────

NOTIFICATIONS = ReferenceDescriptor(
    record_kind="notification",
    table_name="notifications",
    type_column="entity_type",
    id_column="entity_id",
    tags=MappingProxyType({
        EntityKind.POST:    "post",
        EntityKind.REVIEW:  "review",
        EntityKind.COMMENT: "comment",
        EntityKind.ENTITY:  "entity",
        EntityKind.USER:    "user",
    }),
)

REPORTS = ReferenceDescriptor(
    record_kind="report",
    table_name="reports",
    type_column="reported_item_type",
    id_column="reported_item_id",
    tags=MappingProxyType({
        EntityKind.POST:    "post",
        EntityKind.REVIEW:  "review",
        EntityKind.COMMENT: "comment",
        EntityKind.ENTITY:  "entity",
        EntityKind.USER:    "user",
    }),
)

VOTES = ReferenceDescriptor(
    record_kind="vote",
    table_name="votes",
    type_column="entity_type",
    id_column="entity_id",
    tags=MappingProxyType({
        EntityKind.POST:    "post",
        EntityKind.REVIEW:  "review",
        EntityKind.COMMENT: "comment",
    }),
)

PHOTOS = ReferenceDescriptor(
    record_kind="photo",
    table_name="photos",
    type_column="type",
    id_column="source_id",
    tags=MappingProxyType({
        EntityKind.POST:   "post",
        EntityKind.REVIEW: "review",
        EntityKind.ENTITY: "entity",
        EntityKind.USER:   "profile",
    }),
)

COMMENTS = ReferenceDescriptor(
    record_kind="comment",
    table_name="comments",
    type_column="entity_type",
    id_column="entity_id",
    tags=MappingProxyType({
        EntityKind.POST:   "post",
        EntityKind.REVIEW: "review",
        EntityKind.ENTITY: "entity",
    }),
)

COMMENT_TREE = CommentTree(table_name="comments", parent_column="parent_comment_id")

# Deletion order within one cascade. Do not reorder.
CASCADE_ORDER: tuple[ReferenceDescriptor, ...] = (
    NOTIFICATIONS,
    REPORTS,
    VOTES,
    PHOTOS,
    COMMENTS,
)


# ── Kind-specific extras ───────────────────────────────────────────────────

POST_RATINGS_BY_POST = OwnedDescriptor("rating", "post_ratings", "post_id")
REVIEW_RATINGS_BY_REVIEW = OwnedDescriptor("rating", "review_ratings", "review_id")

OWNED_RECORDS: Mapping[EntityKind, tuple[OwnedDescriptor, ...]] = MappingProxyType({
    EntityKind.POST:   (POST_RATINGS_BY_POST,),
    EntityKind.REVIEW: (REVIEW_RATINGS_BY_REVIEW,),
    EntityKind.USER: (
        OwnedDescriptor("report", "reports", "reporter_id"),
        OwnedDescriptor("vote", "votes", "user_id"),
        OwnedDescriptor("photo", "photos", "user_id"),
        OwnedDescriptor("rating", "post_ratings", "user_id",
                        rated=(EntityKind.POST, "post_id")),
        OwnedDescriptor("rating", "review_ratings", "user_id",
                        rated=(EntityKind.REVIEW, "review_id")),
        OwnedDescriptor("follow", "follows", "follower_id"),
        OwnedDescriptor("follow", "follows", "followed_id"),
    ),
})

CHILD_PRIMARIES: Mapping[EntityKind, tuple[ChildDescriptor, ...]] = MappingProxyType({
    EntityKind.ENTITY: (
        ChildDescriptor(EntityKind.REVIEW, "reviews", "item_id"),
    ),
    EntityKind.USER: (
        ChildDescriptor(EntityKind.POST, "posts", "user_id"),
        ChildDescriptor(EntityKind.REVIEW, "reviews", "user_id"),
        ChildDescriptor(EntityKind.COMMENT, "comments", "user_id"),
    ),
})

NULLIFIED_REFERENCES: Mapping[EntityKind, tuple[NullifiedDescriptor, ...]] = MappingProxyType({
    EntityKind.USER: (
        NullifiedDescriptor("reviewable_entities", "created_by"),
    ),
})

# Columns on notifications that name users directly (not polymorphically).
NOTIFICATION_USER_COLUMNS: tuple[str, ...] = ("recipient_user_id", "actor_user_id")


# ── Lookups ────────────────────────────────────────────────────────────────

def coerce_kind(value: EntityKind | str) -> EntityKind:
    """Parses a kind tag. Raises UNKNOWN_KIND (400) for anything else."""
    if isinstance(value, EntityKind):
        return value
    try:
        return EntityKind(value)
    except ValueError:
        raise AppError(
            ErrorCode.UNKNOWN_KIND,
            f"'{value}' is not a known entity kind. "
            f"Valid kinds: {', '.join(k.value for k in EntityKind)}.",
            400,
            field="kind",
        )


def dependents_of(kind: EntityKind) -> tuple[ReferenceDescriptor, ...]:
    """Polymorphic dependent kinds of `kind`, in cascade order."""
    return tuple(d for d in CASCADE_ORDER if kind in d.tags)


def owned_records_of(kind: EntityKind) -> tuple[OwnedDescriptor, ...]:
    return OWNED_RECORDS.get(kind, ())


def child_primaries_of(kind: EntityKind) -> tuple[ChildDescriptor, ...]:
    return CHILD_PRIMARIES.get(kind, ())


def nullified_references_of(kind: EntityKind) -> tuple[NullifiedDescriptor, ...]:
    return NULLIFIED_REFERENCES.get(kind, ())


# ── Schema verification ────────────────────────────────────────────────────

def required_columns() -> dict[str, set[str]]:
    """Every table the index names, with every column it relies on."""
    required: dict[str, set[str]] = {}

    def need(table_name: str, columns) -> None:
        required.setdefault(table_name, set()).update(columns)

    for table_name in PRIMARY_TABLES.values():
        need(table_name, ("id",))
    for descriptor in CASCADE_ORDER:
        need(descriptor.table_name, descriptor.columns)
    need(COMMENT_TREE.table_name, COMMENT_TREE.columns)
    need(NOTIFICATIONS.table_name, NOTIFICATION_USER_COLUMNS)
    for group in (OWNED_RECORDS, CHILD_PRIMARIES, NULLIFIED_REFERENCES):
        for descriptors in group.values():
            for descriptor in descriptors:
                need(descriptor.table_name, descriptor.columns)
    return required


def verify_reference_index(bind) -> None:
    """
    Checks every configured table/column against the live schema.

    Args:
        bind: An Engine or Connection.

    Raises:
        AppError(INTEGRITY_VIOLATION, 500) listing everything missing.
        This is a configuration bug; the process should not start.
    """
    inspector = sa.inspect(bind)
    existing_tables = set(inspector.get_table_names())
    problems: list[str] = []

    for table_name, columns in sorted(required_columns().items()):
        if table_name not in existing_tables:
            problems.append(f"table '{table_name}' does not exist")
            continue
        present = {col["name"] for col in inspector.get_columns(table_name)}
        for column in sorted(columns - present):
            problems.append(f"column '{table_name}.{column}' does not exist")

    if problems:
        raise AppError(
            ErrorCode.INTEGRITY_VIOLATION,
            "Reference index does not match the store schema: " + "; ".join(problems) + ".",
            500,
        )
