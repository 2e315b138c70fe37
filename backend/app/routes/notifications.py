"""
routes/notifications.py — Qualifying-action endpoint.

Lets the content routes (owned by other services) report an action that
should notify an owner. The actor is always the authenticated caller, and
the action must match a record the caller created (their comment, vote,
follow or rating).

Endpoints:
  POST /notifications/actions → 200  notification id, or null when nobody is notified
"""

from __future__ import annotations

from flask import Blueprint, g, jsonify, request

from backend.app.extensions import db
from backend.app.middleware.auth_middleware import require_auth
from backend.app.schemas.notification_schema import RecordActionSchema
from backend.app.services import notification_service

notifications_bp = Blueprint("notifications", __name__)


@notifications_bp.route("/actions", methods=["POST"])
@require_auth
def record_action():
    """
    POST /notifications/actions

    The recipient is derived from the caller's record. For a comment the
    parent_comment_id decides between 'comment' (thread owner) and 'reply'
    (parent-comment author). A supplied owner_id must name that recipient.
    """
    data = RecordActionSchema().load(request.get_json(force=True) or {})

    notification_id = notification_service.record_reported_action(
        action=data["action"],
        actor_id=g.user_id,
        referenced_kind=data["referenced_kind"],
        referenced_id=data["referenced_id"],
        session=db.session,
        owner_id=data["owner_id"],
    )
    db.session.commit()
    return jsonify({
        "data": {"notification_id": notification_id},
        "warnings": [],
    }), 200
