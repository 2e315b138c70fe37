"""
schemas/rating_schema.py — Marshmallow schema for rating endpoints.

Validation responsibility:
  - This file: the score is present, numeric, 0–5, on a half step.
  - services/rating_service.py:
      - ENTITY_NOT_FOUND (404) — requires DB lookup.
      - RATING_DISABLED (422)  — requires the post's is_rate_enabled flag.
      - SELF_RATING (422)      — requires the caller's user_id from flask.g.

The service validates the score again (validate_score) because it is also
called directly, without going through this schema.

IMPORTANT: Inherits from marshmallow.Schema directly — never ma.Schema.
           See extensions.py for the full explanation.
"""

from __future__ import annotations

from decimal import Decimal

from marshmallow import Schema, ValidationError, fields

from backend.app.errors import ErrorCode


def _validate_score(value: Decimal) -> None:
    """
    0–5 inclusive, in steps of 0.5. Out-of-range or off-step input is
    rejected (INVALID_SCORE), never rounded.
    """
    if value < Decimal("0") or value > Decimal("5"):
        raise ValidationError(ErrorCode.INVALID_SCORE)
    if value % Decimal("0.5") != 0:
        raise ValidationError(ErrorCode.INVALID_SCORE)


class RatingSchema(Schema):
    """
    PUT /posts/:id/rating, PUT /reviews/:id/rating

    The rater is the authenticated user (flask.g.user_id), never a body field.
    """

    score = fields.Decimal(
        required=True,
        validate=_validate_score,
    )
