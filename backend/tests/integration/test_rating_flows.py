"""
tests/integration/test_rating_flows.py — Aggregate recalculator against a real store.

Rules verified:
  - One rating per (user, rated entity): a second upsert updates in place
  - average/count always match the ratings that exist right now
  - Removing the last rating leaves average NULL and count 0
  - Recompute is idempotent
  - Post ratings never leak into review aggregates (or the reverse)
  - Self-rating and rating a post with ratings disabled are rejected
  - A post's ratingpoint follows its average, rounded to one place
"""

from __future__ import annotations

from decimal import Decimal

import pytest
from sqlalchemy import select

from backend.app.errors import AppError, ErrorCode
from backend.app.models.catalog import Review
from backend.app.models.kinds import NotificationType
from backend.app.models.notification import Notification
from backend.app.models.post import Post
from backend.app.models.rating import PostRating, ReviewRating
from backend.app.services import rating_service

from .conftest import (
    count_rows,
    load,
    make_entity,
    make_post,
    make_post_rating,
    make_review,
    make_review_rating,
    make_user,
)


@pytest.fixture
def rated_post(session):
    """Returns (owner_id, rater_id, post_id)."""
    owner = make_user("owner")
    rater = make_user("rater")
    return owner, rater, make_post(owner)


def _upsert(session, kind, entity_id, user_id, score):
    aggregate = rating_service.upsert_rating(kind, entity_id, user_id, score, session)
    session.commit()
    return aggregate


class TestUpsert:

    def test_second_upsert_updates_not_inserts(self, session, rated_post):
        _, rater, post_id = rated_post

        _upsert(session, "post", post_id, rater, "4.5")
        aggregate = _upsert(session, "post", post_id, rater, "3.0")

        assert aggregate == {"average": Decimal("3.00"), "count": 1}
        assert count_rows(PostRating, post_id=post_id) == 1

        post = load(Post, post_id)
        assert post.average_rating == Decimal("3.00")
        assert post.total_ratings == 1

    def test_average_over_several_raters(self, session, rated_post):
        _, rater, post_id = rated_post
        second = make_user("second")
        third = make_user("third")

        _upsert(session, "post", post_id, rater, 5)
        _upsert(session, "post", post_id, second, 4)
        aggregate = _upsert(session, "post", post_id, third, "0.5")

        # (5 + 4 + 0.5) / 3 = 3.1666... → 3.17
        assert aggregate == {"average": Decimal("3.17"), "count": 3}

    def test_owner_is_notified_once(self, session, rated_post):
        owner, rater, post_id = rated_post

        _upsert(session, "post", post_id, rater, "2.5")
        _upsert(session, "post", post_id, rater, "3.5")

        assert count_rows(
            Notification,
            recipient_user_id=owner,
            notification_type=NotificationType.RATING,
        ) == 1

    def test_notification_shows_the_current_score(self, session, rated_post):
        owner, rater, post_id = rated_post

        _upsert(session, "post", post_id, rater, "4.5")
        _upsert(session, "post", post_id, rater, "3.0")

        session.expire_all()
        (message,) = session.execute(
            select(Notification.message).where(Notification.recipient_user_id == owner)
        ).scalars().all()
        assert message == "rater rated your post (3.0 stars)"

    def test_rating_point_is_the_average_to_one_place(self, session, rated_post):
        _, rater, post_id = rated_post
        second = make_user("second")
        third = make_user("third")

        _upsert(session, "post", post_id, rater, 5)
        _upsert(session, "post", post_id, second, 4)
        _upsert(session, "post", post_id, third, "0.5")

        # average 3.17 → 3.2
        assert load(Post, post_id).ratingpoint == Decimal("3.2")

    def test_self_rating_is_rejected(self, session, rated_post):
        owner, _, post_id = rated_post

        with pytest.raises(AppError) as exc_info:
            rating_service.upsert_rating("post", post_id, owner, "4.0", session)

        assert exc_info.value.code == ErrorCode.SELF_RATING
        assert count_rows(PostRating) == 0

    def test_disabled_post_is_rejected(self, session):
        owner = make_user("owner")
        rater = make_user("rater")
        post_id = make_post(owner, is_rate_enabled=False)

        with pytest.raises(AppError) as exc_info:
            rating_service.upsert_rating("post", post_id, rater, "4.0", session)

        assert exc_info.value.code == ErrorCode.RATING_DISABLED
        assert exc_info.value.http_status == 422
        assert count_rows(PostRating) == 0

    def test_invalid_score_touches_nothing(self, session, rated_post):
        _, rater, post_id = rated_post

        with pytest.raises(AppError) as exc_info:
            rating_service.upsert_rating("post", post_id, rater, "4.25", session)

        assert exc_info.value.code == ErrorCode.INVALID_SCORE
        assert count_rows(PostRating) == 0

    def test_missing_post_is_not_found(self, session):
        rater = make_user("rater")

        with pytest.raises(AppError) as exc_info:
            rating_service.upsert_rating("post", 4040, rater, "4.0", session)

        assert exc_info.value.code == ErrorCode.ENTITY_NOT_FOUND

    def test_comments_cannot_be_rated(self, session, rated_post):
        _, rater, post_id = rated_post

        with pytest.raises(AppError) as exc_info:
            rating_service.upsert_rating("comment", post_id, rater, "4.0", session)

        assert exc_info.value.code == ErrorCode.UNKNOWN_KIND


class TestRemoveAndRecompute:

    def test_removing_last_rating_unsets_average(self, session, rated_post):
        owner, rater, post_id = rated_post
        _upsert(session, "post", post_id, rater, "4.5")

        aggregate = rating_service.remove_rating("post", post_id, rater, session)
        session.commit()

        assert aggregate == {"average": None, "count": 0}
        post = load(Post, post_id)
        assert post.average_rating is None
        assert post.total_ratings == 0
        assert post.ratingpoint is None
        assert count_rows(Notification, recipient_user_id=owner) == 0

    def test_removing_a_missing_rating_is_not_found(self, session, rated_post):
        _, rater, post_id = rated_post

        with pytest.raises(AppError) as exc_info:
            rating_service.remove_rating("post", post_id, rater, session)

        assert exc_info.value.code == ErrorCode.RATING_NOT_FOUND
        assert exc_info.value.http_status == 404

    def test_recompute_is_idempotent(self, session, rated_post):
        owner, rater, post_id = rated_post
        make_post_rating(rater, post_id, "4.0")
        make_post_rating(make_user("second"), post_id, "1.5")

        first = rating_service.recompute_rating("post", post_id, session)
        session.commit()
        second = rating_service.recompute_rating("post", post_id, session)
        session.commit()

        assert first == second == {"average": Decimal("2.75"), "count": 2}

    def test_recompute_repairs_a_stale_cache(self, session, rated_post):
        _, rater, post_id = rated_post
        make_post_rating(rater, post_id, "5.0")

        post = load(Post, post_id)
        post.average_rating = Decimal("1.00")
        post.total_ratings = 9
        session.commit()

        aggregate = rating_service.recompute_rating("post", post_id, session)
        session.commit()

        assert aggregate == {"average": Decimal("5.00"), "count": 1}

    def test_recompute_missing_entity_is_not_found(self, session):
        with pytest.raises(AppError) as exc_info:
            rating_service.recompute_rating("review", 777, session)

        assert exc_info.value.code == ErrorCode.ENTITY_NOT_FOUND

    def test_recompute_if_present_is_a_noop_for_missing(self, session):
        assert rating_service.recompute_if_present("post", 777, session) is None


class TestKindScoping:

    def test_no_cross_kind_leakage(self, session):
        """A post and a review sharing an id keep their ratings apart."""
        owner = make_user("owner")
        rater = make_user("rater")
        review_id = make_review(owner, make_entity(owner))
        post_id = make_post(owner, post_id=review_id)

        make_post_rating(rater, post_id, "5.0")
        make_review_rating(rater, review_id, "1.0")

        post_aggregate = rating_service.recompute_rating("post", post_id, session)
        review_aggregate = rating_service.recompute_rating("review", review_id, session)
        session.commit()

        assert post_aggregate == {"average": Decimal("5.00"), "count": 1}
        assert review_aggregate == {"average": Decimal("1.00"), "count": 1}

    def test_review_rating_roundtrip(self, session):
        owner = make_user("owner")
        rater = make_user("rater")
        review_id = make_review(owner, make_entity(owner))

        _upsert(session, "review", review_id, rater, "3.5")

        review = load(Review, review_id)
        assert review.average_rating == Decimal("3.50")
        assert review.total_ratings == 1
        assert count_rows(ReviewRating, review_id=review_id) == 1
