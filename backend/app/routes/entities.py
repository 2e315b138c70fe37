"""
routes/entities.py — Primary entity deletion.

Registered at url_prefix=/api/v1. One DELETE rule per collection, all
served by the same view; the rule's default supplies the kind.

Layer rules:
  - Authorize, call ONE service, commit, return envelope.
  - Authorization lives here, not in the engine: the caller must own the
    entity (a user may delete their own account) or be an admin.

Endpoints:
  DELETE /posts/:id      → 200  cascade-delete a post
  DELETE /reviews/:id    → 200  cascade-delete a review
  DELETE /comments/:id   → 200  cascade-delete a comment and its replies
  DELETE /entities/:id   → 200  cascade-delete a catalog item and its reviews
  DELETE /users/:id      → 200  cascade-delete a user and everything they made
"""

from __future__ import annotations

from flask import Blueprint, current_app, g, jsonify

from backend.app.errors import AppError, ErrorCode
from backend.app.extensions import db
from backend.app.middleware.auth_middleware import require_auth
from backend.app.models.kinds import EntityKind
from backend.app.services import cascade_service, notification_service

entities_bp = Blueprint("entities", __name__)

COLLECTIONS = {
    "posts":    EntityKind.POST,
    "reviews":  EntityKind.REVIEW,
    "comments": EntityKind.COMMENT,
    "entities": EntityKind.ENTITY,
    "users":    EntityKind.USER,
}


def _require_owner_or_admin(kind: EntityKind, entity_id: int) -> None:
    """
    Raises ENTITY_NOT_FOUND (404) or FORBIDDEN (403).
    Admins skip the ownership check; the engine reports a missing row.
    """
    if g.is_admin:
        return

    owner_id = notification_service.resolve_owner(kind, entity_id, db.session)
    if owner_id == g.user_id:
        return
    if owner_id is None and not cascade_service.entity_exists(kind, entity_id, db.session):
        raise AppError(
            ErrorCode.ENTITY_NOT_FOUND,
            f"{kind.value.capitalize()} {entity_id} does not exist.",
            404,
        )
    raise AppError(
        ErrorCode.FORBIDDEN,
        f"You are not allowed to delete {kind.value} {entity_id}.",
        403,
    )


@require_auth
def delete_entity(entity_id: int, kind: str):
    """
    DELETE /<collection>/:id — Delete a primary entity and all its dependents.
    Returns the number of dependent rows removed per kind.
    """
    kind = EntityKind(kind)
    _require_owner_or_admin(kind, entity_id)

    counts = cascade_service.delete_primary_entity(
        kind=kind,
        entity_id=entity_id,
        session=db.session,
        timeout_ms=current_app.config.get("CASCADE_TIMEOUT_MS"),
    )
    db.session.commit()
    return jsonify({
        "data": {
            "deleted": True,
            "kind": kind.value,
            "id": entity_id,
            "deleted_counts": counts,
        },
        "warnings": [],
    }), 200


for _collection, _kind in COLLECTIONS.items():
    entities_bp.add_url_rule(
        f"/{_collection}/<int:entity_id>",
        endpoint=f"delete_{_kind.value}",
        view_func=delete_entity,
        methods=["DELETE"],
        defaults={"kind": _kind.value},
    )
