"""
schemas/notification_schema.py — Marshmallow schema for recording a
qualifying action.

Only the shape is checked here. Whether the action and kind tags are known
(UNKNOWN_ACTION / UNKNOWN_KIND) is decided by notification_service, which
owns the tag registries.

IMPORTANT: Inherits from marshmallow.Schema directly — never ma.Schema.
"""

from __future__ import annotations

from marshmallow import Schema, fields, validate


class RecordActionSchema(Schema):
    """
    POST /notifications/actions

    The actor is the authenticated user (flask.g.user_id).
    owner_id may be omitted; the recipient is derived from the record the
    caller reports (their comment, vote, follow or rating).
    """

    action = fields.Str(required=True, validate=validate.Length(min=1, max=20))

    owner_id = fields.Int(
        required=False,
        allow_none=True,
        strict=True,
        load_default=None,
        validate=validate.Range(min=1, error="owner_id must be a positive integer."),
    )

    referenced_kind = fields.Str(required=True, validate=validate.Length(min=1, max=20))

    referenced_id = fields.Int(
        required=True,
        strict=True,
        validate=validate.Range(min=1, error="referenced_id must be a positive integer."),
    )
