"""
services/rating_service.py — Aggregate recalculator and rating writes.

Invariants enforced here:
  INVALID_SCORE (400)   — score must be 0–5 in half steps
  RATING_DISABLED (422) — a post with is_rate_enabled = false takes no ratings
  SELF_RATING (422)     — nobody rates their own post or review
  One rating per (user, rated entity) — a second upsert updates, never inserts

Aggregate rules:
  average = arithmetic mean of the ratings that exist right now, rounded
            half-up to 2 decimal places
  count   = number of those ratings
  no ratings → average is NULL ("unset", never 0) and count is 0
  posts also carry ratingpoint = average rounded half-up to 1 place

The ratings query is always scoped to the exact (kind, id) pair: post
ratings for a post, review ratings for a review. Nothing else is read.

Layer rules:
  - No Flask imports. Pure Python with a SQLAlchemy session parameter.
  - Commits are the route's responsibility — only flush here.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Iterable

from sqlalchemy import delete, select
from sqlalchemy.orm import Session

from backend.app.errors import AppError, ErrorCode
from backend.app.models.catalog import Review
from backend.app.models.kinds import EntityKind
from backend.app.models.post import Post
from backend.app.models.rating import PostRating, ReviewRating
from backend.app.services import notification_service
from backend.app.services.reference_index import coerce_kind
from backend.app.services.unit_of_work import unit_of_work

logger = logging.getLogger(__name__)

SCORE_MIN = Decimal("0")
SCORE_MAX = Decimal("5")
SCORE_STEP = Decimal("0.5")
AVERAGE_PLACES = Decimal("0.01")
RATING_POINT_PLACES = Decimal("0.1")

# Rated kind → (entity model, rating model, rating column holding the entity id)
_RATED = {
    EntityKind.POST:   (Post, PostRating, "post_id"),
    EntityKind.REVIEW: (Review, ReviewRating, "review_id"),
}


# ── Pure helpers ───────────────────────────────────────────────────────────

def validate_score(score) -> Decimal:
    """
    Parses and checks a score. Accepts Decimal, int, float or numeric str.

    Raises:
        AppError(INVALID_SCORE, 400) if it is not a number in 0–5 on a
        half step.
    """
    if isinstance(score, bool) or score is None:
        raise _invalid_score(score)
    try:
        value = Decimal(str(score))
    except (InvalidOperation, ValueError):
        raise _invalid_score(score)

    if not value.is_finite() or value < SCORE_MIN or value > SCORE_MAX:
        raise _invalid_score(score)
    if value % SCORE_STEP != 0:
        raise _invalid_score(score)
    return value.quantize(Decimal("0.1"))


def _invalid_score(score) -> AppError:
    return AppError(
        ErrorCode.INVALID_SCORE,
        f"Score {score!r} is invalid. Scores range from {SCORE_MIN} to {SCORE_MAX} "
        f"in steps of {SCORE_STEP}.",
        400,
        field="score",
    )


def compute_aggregate(scores: Iterable[Decimal]) -> tuple[Decimal | None, int]:
    """
    Mean and count of `scores`.

    >>> compute_aggregate([Decimal("4.5"), Decimal("3.0")])
    (Decimal('3.75'), 2)
    >>> compute_aggregate([])
    (None, 0)
    """
    values = [Decimal(str(score)) for score in scores]
    if not values:
        return None, 0
    average = (sum(values) / len(values)).quantize(AVERAGE_PLACES, rounding=ROUND_HALF_UP)
    return average, len(values)


# ── Private helpers ────────────────────────────────────────────────────────

def _rated_target(kind: EntityKind | str):
    kind = coerce_kind(kind)
    if kind not in _RATED:
        raise AppError(
            ErrorCode.UNKNOWN_KIND,
            f"Only posts and reviews can be rated, not '{kind.value}'.",
            400,
            field="kind",
        )
    return kind, _RATED[kind]


def _lock_rated_entity(kind: EntityKind, model, entity_id: int, session: Session):
    """Loads the rated entity under a row lock. Raises ENTITY_NOT_FOUND (404)."""
    entity = session.execute(
        select(model).where(model.id == entity_id).with_for_update()
    ).scalar_one_or_none()
    if entity is None:
        raise AppError(
            ErrorCode.ENTITY_NOT_FOUND,
            f"{kind.value.capitalize()} {entity_id} does not exist.",
            404,
        )
    return entity


def _refresh_aggregate(entity, rating_model, rating_column: str, session: Session) -> dict:
    scores = session.execute(
        select(rating_model.rating).where(getattr(rating_model, rating_column) == entity.id)
    ).scalars().all()

    average, count = compute_aggregate(scores)
    entity.average_rating = average
    entity.total_ratings = count
    if isinstance(entity, Post):
        entity.ratingpoint = (
            None if average is None
            else average.quantize(RATING_POINT_PLACES, rounding=ROUND_HALF_UP)
        )
    session.flush()
    return {"average": average, "count": count}


def recompute_if_present(kind: EntityKind | str, entity_id: int, session: Session) -> dict | None:
    """
    Recomputes the cached aggregate when the rated entity still exists.
    Returns None (no-op) when it is gone. Used inside cascades, so it opens
    no unit of work of its own.
    """
    kind, (model, rating_model, rating_column) = _rated_target(kind)
    # Query, not session.get(): the identity map may still hold a row the
    # cascade has already deleted.
    entity = session.execute(
        select(model).where(model.id == entity_id)
    ).scalar_one_or_none()
    if entity is None:
        return None
    return _refresh_aggregate(entity, rating_model, rating_column, session)


# ── Public service functions ───────────────────────────────────────────────

def recompute_rating(kind: EntityKind | str, entity_id: int, session: Session) -> dict:
    """
    Recomputes and stores average_rating / total_ratings for one post or
    review from its current ratings. Idempotent.

    Returns:
        {"average": Decimal | None, "count": int}
    """
    kind, (model, rating_model, rating_column) = _rated_target(kind)
    with unit_of_work(session):
        entity = _lock_rated_entity(kind, model, entity_id, session)
        return _refresh_aggregate(entity, rating_model, rating_column, session)


def upsert_rating(
        kind: EntityKind | str,
        entity_id: int,
        user_id: int,
        score,
        session: Session,
) -> dict:
    """
    Inserts or updates `user_id`'s rating of (kind, entity_id), recomputes
    the aggregate and notifies the owner.

    Returns:
        {"average": Decimal | None, "count": int}

    Raises:
        INVALID_SCORE (400), UNKNOWN_KIND (400), ENTITY_NOT_FOUND (404),
        RATING_DISABLED (422), SELF_RATING (422), STORE_UNAVAILABLE (503).
    """
    value = validate_score(score)
    kind, (model, rating_model, rating_column) = _rated_target(kind)

    with unit_of_work(session):
        entity = _lock_rated_entity(kind, model, entity_id, session)

        if kind is EntityKind.POST and not entity.is_rate_enabled:
            raise AppError(
                ErrorCode.RATING_DISABLED,
                f"Rating is disabled for post {entity_id}.",
                422,
            )
        if entity.user_id == user_id:
            raise AppError(
                ErrorCode.SELF_RATING,
                f"You cannot rate your own {kind.value}.",
                422,
            )

        rating = session.execute(
            select(rating_model).where(
                rating_model.user_id == user_id,
                getattr(rating_model, rating_column) == entity_id,
            )
        ).scalar_one_or_none()

        if rating is None:
            rating = rating_model(user_id=user_id, rating=value)
            setattr(rating, rating_column, entity_id)
            session.add(rating)
        else:
            rating.rating = value
            rating.updated_at = datetime.now(timezone.utc)
        session.flush()

        aggregate = _refresh_aggregate(entity, rating_model, rating_column, session)
        notification_service.notify_rating(
            kind, entity_id, user_id, entity.user_id, value, session,
        )

    logger.info(
        "User %s rated %s %s with %s (average=%s, count=%s)",
        user_id, kind.value, entity_id, value, aggregate["average"], aggregate["count"],
    )
    return aggregate


def remove_rating(
        kind: EntityKind | str,
        entity_id: int,
        user_id: int,
        session: Session,
) -> dict:
    """
    Deletes `user_id`'s rating of (kind, entity_id), removes the rating
    notification and recomputes the aggregate.

    Raises:
        ENTITY_NOT_FOUND (404), RATING_NOT_FOUND (404).
    """
    kind, (model, rating_model, rating_column) = _rated_target(kind)

    with unit_of_work(session):
        entity = _lock_rated_entity(kind, model, entity_id, session)

        result = session.execute(
            delete(rating_model).where(
                rating_model.user_id == user_id,
                getattr(rating_model, rating_column) == entity_id,
            )
        )
        if not result.rowcount:
            raise AppError(
                ErrorCode.RATING_NOT_FOUND,
                f"You have not rated {kind.value} {entity_id}.",
                404,
            )

        notification_service.purge_for_rating(kind, entity_id, user_id, session)
        aggregate = _refresh_aggregate(entity, rating_model, rating_column, session)

    logger.info(
        "User %s removed rating of %s %s (average=%s, count=%s)",
        user_id, kind.value, entity_id, aggregate["average"], aggregate["count"],
    )
    return aggregate
