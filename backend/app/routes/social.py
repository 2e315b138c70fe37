"""
routes/social.py — Vote and follow removal.

Registered at url_prefix=/api/v1. Creating votes and follows belongs to
the content service; removing them goes through the engine so their
notifications disappear with them.

Endpoints:
  DELETE /votes/:id            → 200  remove a vote (vote owner or admin)
  DELETE /follows/:followed_id → 200  unfollow, as the caller
"""

from __future__ import annotations

from flask import Blueprint, g, jsonify

from backend.app.errors import AppError, ErrorCode
from backend.app.extensions import db
from backend.app.middleware.auth_middleware import require_auth
from backend.app.services import cascade_service

social_bp = Blueprint("social", __name__)


@social_bp.route("/votes/<int:vote_id>", methods=["DELETE"])
@require_auth
def delete_vote(vote_id: int):
    """DELETE /votes/:id — Only the voter or an admin may remove a vote."""
    if not g.is_admin:
        voter_id = cascade_service.vote_owner(vote_id, db.session)
        if voter_id is not None and voter_id != g.user_id:
            raise AppError(
                ErrorCode.FORBIDDEN,
                f"You are not allowed to delete vote {vote_id}.",
                403,
            )

    counts = cascade_service.delete_vote(vote_id, db.session)
    db.session.commit()
    return jsonify({
        "data": {"deleted": True, "vote_id": vote_id, "deleted_counts": counts},
        "warnings": [],
    }), 200


@social_bp.route("/follows/<int:followed_id>", methods=["DELETE"])
@require_auth
def unfollow(followed_id: int):
    """DELETE /follows/:followed_id — The caller stops following a user."""
    counts = cascade_service.delete_follow(g.user_id, followed_id, db.session)
    db.session.commit()
    return jsonify({
        "data": {"deleted": True, "followed_id": followed_id, "deleted_counts": counts},
        "warnings": [],
    }), 200
