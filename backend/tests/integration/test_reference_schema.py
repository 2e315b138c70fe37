"""
tests/integration/test_reference_schema.py — Reference index vs. the live schema.

A dependent table or column named in the index but missing from the store
must fail loudly (INTEGRITY_VIOLATION), both at startup verification and
inside a cascade. It must never look like "nothing to delete".
"""

from __future__ import annotations

import pytest
from sqlalchemy import create_engine, func, select
from sqlalchemy.orm import Session
from sqlalchemy.pool import StaticPool

from backend.app.errors import AppError, ErrorCode
from backend.app.extensions import db as _db
from backend.app.models.post import Post
from backend.app.models.user import User
from backend.app.services import cascade_service
from backend.app.services.reference_index import required_columns, verify_reference_index


@pytest.fixture
def engine_without_photos():
    """A private in-memory store with every table except photos."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    tables = [table for table in _db.metadata.sorted_tables if table.name != "photos"]
    _db.metadata.create_all(engine, tables=tables)
    yield engine
    engine.dispose()


def test_full_schema_verifies(app):
    verify_reference_index(_db.engine)


def test_every_indexed_table_is_mapped():
    mapped = set(_db.metadata.tables)
    assert set(required_columns()) <= mapped


def test_missing_table_fails_verification(engine_without_photos):
    with pytest.raises(AppError) as exc_info:
        verify_reference_index(engine_without_photos)

    error = exc_info.value
    assert error.code == ErrorCode.INTEGRITY_VIOLATION
    assert error.http_status == 500
    assert "photos" in error.message


def test_missing_table_fails_the_cascade_and_rolls_back(engine_without_photos):
    with Session(engine_without_photos) as session:
        user = User(username="owner")
        session.add(user)
        session.flush()
        post = Post(user_id=user.id, post_text="Doomed", total_ratings=0)
        session.add(post)
        session.commit()
        post_id = post.id

        with pytest.raises(AppError) as exc_info:
            cascade_service.delete_primary_entity("post", post_id, session)

        assert exc_info.value.code == ErrorCode.INTEGRITY_VIOLATION
        remaining = session.execute(
            select(func.count()).select_from(Post).where(Post.id == post_id)
        ).scalar_one()
        assert remaining == 1
