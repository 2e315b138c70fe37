"""
routes/ratings.py — Rating route handlers.

Registered at url_prefix=/api/v1. Posts and reviews share the handlers;
the <any(...)> converter picks the collection.

Layer rules:
  - Parse, validate, call ONE service, commit, return envelope.
  - Averages are Decimal and serialised as strings by DecimalJSONProvider.

Endpoints:
  PUT    /posts/:id/rating | /reviews/:id/rating  → 200  rate (insert or update)
  DELETE /posts/:id/rating | /reviews/:id/rating  → 200  remove own rating
  GET    /posts/:id/rating | /reviews/:id/rating  → 200  recomputed aggregate
"""

from __future__ import annotations

from flask import Blueprint, g, jsonify, request

from backend.app.extensions import db
from backend.app.middleware.auth_middleware import require_auth
from backend.app.models.kinds import EntityKind
from backend.app.schemas.rating_schema import RatingSchema
from backend.app.services import rating_service

ratings_bp = Blueprint("ratings", __name__)

_RATED_COLLECTIONS = {
    "posts":   EntityKind.POST,
    "reviews": EntityKind.REVIEW,
}

RATING_PATH = "/<any(posts, reviews):collection>/<int:entity_id>/rating"


def _envelope(kind: EntityKind, entity_id: int, aggregate: dict):
    return jsonify({
        "data": {
            "kind": kind.value,
            "id": entity_id,
            "average_rating": aggregate["average"],
            "total_ratings": aggregate["count"],
        },
        "warnings": [],
    })


@ratings_bp.route(RATING_PATH, methods=["PUT"])
@require_auth
def put_rating(collection: str, entity_id: int):
    """PUT /<posts|reviews>/:id/rating — Rate, or change an existing rating."""
    data = RatingSchema().load(request.get_json(force=True) or {})
    kind = _RATED_COLLECTIONS[collection]
    aggregate = rating_service.upsert_rating(
        kind=kind,
        entity_id=entity_id,
        user_id=g.user_id,
        score=data["score"],
        session=db.session,
    )
    db.session.commit()
    return _envelope(kind, entity_id, aggregate), 200


@ratings_bp.route(RATING_PATH, methods=["DELETE"])
@require_auth
def delete_rating(collection: str, entity_id: int):
    """DELETE /<posts|reviews>/:id/rating — Remove the caller's rating."""
    kind = _RATED_COLLECTIONS[collection]
    aggregate = rating_service.remove_rating(
        kind=kind,
        entity_id=entity_id,
        user_id=g.user_id,
        session=db.session,
    )
    db.session.commit()
    return _envelope(kind, entity_id, aggregate), 200


@ratings_bp.route(RATING_PATH, methods=["GET"])
@require_auth
def get_rating(collection: str, entity_id: int):
    """
    GET /<posts|reviews>/:id/rating — Recompute from the ratings that exist
    and return the aggregate. Also repairs the cached columns.
    """
    kind = _RATED_COLLECTIONS[collection]
    aggregate = rating_service.recompute_rating(kind, entity_id, db.session)
    db.session.commit()
    return _envelope(kind, entity_id, aggregate), 200
