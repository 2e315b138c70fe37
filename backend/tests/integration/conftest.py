"""
tests/integration/conftest.py — Fixtures and helpers for all integration tests.

Design:
  - Tests run against a real database: in-memory SQLite by default, or
    PostgreSQL when TEST_DATABASE_URL points at one.
  - The app is created once per session using create_app("testing").
  - All tables are created once via db.create_all() at session start.
  - Every test runs inside a pushed app context. The Flask test client
    reuses that context, so service calls, HTTP requests and assertions all
    share one db.session.
  - Between tests, all rows are deleted (children before parents) so tests
    are isolated.

Helper functions (not fixtures) are provided for building rows:
  - make_user / make_post / make_entity / make_review / make_comment
  - make_vote / make_report / make_photo / make_notification / make_follow
  - make_post_rating / make_review_rating
  - token_for(user_id, is_admin) / auth_headers(token)
  - count_rows(model, **filters) / row_exists(model, id)

Every make_* helper commits and returns the new row's id (an int), never
the ORM object: cascades delete through Core statements, so a held ORM
object can outlive its row. Assertions go through count_rows / row_exists,
which always query the database.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from decimal import Decimal

import jwt
import pytest
from flask import current_app
from sqlalchemy import func, select

from backend.app import create_app
from backend.app.extensions import db as _db
from backend.app.models.catalog import Review, ReviewableEntity
from backend.app.models.comment import Comment
from backend.app.models.follow import Follow
from backend.app.models.kinds import NotificationType, VoteType
from backend.app.models.notification import Notification
from backend.app.models.photo import Photo
from backend.app.models.post import Post
from backend.app.models.rating import PostRating, ReviewRating
from backend.app.models.report import Report
from backend.app.models.user import User
from backend.app.models.vote import Vote


# ═══════════════════════════════════════════════════════════════════════════
# Session-scoped app fixture
# ═══════════════════════════════════════════════════════════════════════════

@pytest.fixture(scope="session")
def app():
    """
    Creates the Flask application in 'testing' mode once for the entire test session.

    Steps:
      1. Create app with TestingConfig.
      2. Run db.create_all() to create all tables.
      3. Yield the app for the test session.
      4. Drop all tables at teardown.
    """
    flask_app = create_app("testing")

    with flask_app.app_context():
        _db.create_all()

    yield flask_app

    with flask_app.app_context():
        _db.drop_all()


# ═══════════════════════════════════════════════════════════════════════════
# Function-scoped test isolation
# ═══════════════════════════════════════════════════════════════════════════

@pytest.fixture(autouse=True)
def app_ctx(app):
    """
    Pushes an app context around every test and empties every table after it.

    autouse=True means this runs for every test in the integration suite
    without needing to be declared in each test function.
    """
    ctx = app.app_context()
    ctx.push()

    yield

    _db.session.rollback()  # discard any uncommitted state from a failed test
    for table in reversed(_db.metadata.sorted_tables):
        _db.session.execute(table.delete())
    _db.session.commit()
    _db.session.remove()
    ctx.pop()


@pytest.fixture
def client(app):
    """Flask test client. Each test gets a fresh client (function-scoped)."""
    return app.test_client()


@pytest.fixture
def session():
    """The Flask-SQLAlchemy session of the current app context."""
    return _db.session


# ═══════════════════════════════════════════════════════════════════════════
# Shared helper functions (not fixtures)
# ═══════════════════════════════════════════════════════════════════════════

def _save(instance) -> int:
    _db.session.add(instance)
    _db.session.commit()
    return instance.id


def make_user(username: str = "alice", is_admin: bool = False, user_id: int | None = None) -> int:
    return _save(User(id=user_id, username=username, is_admin=is_admin))


def make_post(
        user_id: int,
        text: str = "A post",
        post_id: int | None = None,
        is_rate_enabled: bool = True,
) -> int:
    return _save(Post(
        id=post_id,
        user_id=user_id,
        post_text=text,
        is_rate_enabled=is_rate_enabled,
        total_ratings=0,
    ))


def make_entity(created_by: int | None, name: str = "Espresso machine") -> int:
    return _save(ReviewableEntity(name=name, category="kitchen", created_by=created_by))


def make_review(user_id: int, item_id: int, text: str = "Solid.") -> int:
    return _save(Review(
        user_id=user_id,
        item_id=item_id,
        title="Review",
        review_text=text,
        ratingpoint=Decimal("4.0"),
        total_ratings=0,
    ))


def make_comment(
        user_id: int,
        entity_type: str,
        entity_id: int,
        parent_comment_id: int | None = None,
        text: str = "A comment",
) -> int:
    return _save(Comment(
        user_id=user_id,
        comment_text=text,
        entity_type=entity_type,
        entity_id=entity_id,
        parent_comment_id=parent_comment_id,
    ))


def make_vote(user_id: int, entity_type: str, entity_id: int, vote_type: VoteType = VoteType.UP) -> int:
    return _save(Vote(user_id=user_id, entity_type=entity_type, entity_id=entity_id, vote_type=vote_type))


def make_report(reporter_id: int, item_type: str, item_id: int, reason: str = "spam") -> int:
    return _save(Report(
        reporter_id=reporter_id,
        reported_item_type=item_type,
        reported_item_id=item_id,
        reason=reason,
    ))


def make_photo(user_id: int, photo_type: str, source_id: int, name: str = "photo.jpg") -> int:
    return _save(Photo(user_id=user_id, type=photo_type, source_id=source_id, photo_name=name))


def make_notification(
        recipient_id: int,
        actor_id: int,
        entity_type: str,
        entity_id: int,
        notification_type: NotificationType = NotificationType.VOTE,
) -> int:
    return _save(Notification(
        recipient_user_id=recipient_id,
        actor_user_id=actor_id,
        notification_type=notification_type,
        entity_type=entity_type,
        entity_id=entity_id,
        message="test notification",
    ))


def make_follow(follower_id: int, followed_id: int) -> int:
    return _save(Follow(follower_id=follower_id, followed_id=followed_id))


def make_post_rating(user_id: int, post_id: int, rating: str) -> int:
    return _save(PostRating(user_id=user_id, post_id=post_id, rating=Decimal(rating)))


def make_review_rating(user_id: int, review_id: int, rating: str) -> int:
    return _save(ReviewRating(user_id=user_id, review_id=review_id, rating=Decimal(rating)))


def token_for(user_id: int, is_admin: bool = False, expires_in: int = 900) -> str:
    """Issues an HS256 access token the way the identity service does."""
    payload = {
        "sub": str(user_id),
        "is_admin": is_admin,
        "exp": datetime.now(timezone.utc) + timedelta(seconds=expires_in),
    }
    return jwt.encode(payload, current_app.config["JWT_SECRET_KEY"], algorithm="HS256")


def auth_headers(token: str) -> dict:
    return {"Authorization": f"Bearer {token}"}


def count_rows(model, **filters) -> int:
    """Counts rows in the database (never the identity map)."""
    stmt = select(func.count()).select_from(model)
    for column, value in filters.items():
        stmt = stmt.where(getattr(model, column) == value)
    return _db.session.execute(stmt).scalar_one()


def row_exists(model, row_id: int) -> bool:
    return count_rows(model, id=row_id) == 1


def load(model, row_id: int):
    """Fresh copy of a row, bypassing anything cached in the session."""
    _db.session.expire_all()
    return _db.session.execute(select(model).where(model.id == row_id)).scalar_one_or_none()
