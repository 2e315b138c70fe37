"""
models/kinds.py — Kind tags shared by models, services and schemas.

Defined once here so services never repeat string literals. The values are
the strings persisted in the polymorphic type columns and sent over the API.
"""

from __future__ import annotations

import enum


class EntityKind(str, enum.Enum):
    """Primary entities: independent lifecycle, can be referenced by (kind, id)."""
    POST    = "post"
    REVIEW  = "review"
    COMMENT = "comment"
    ENTITY  = "entity"    # reviewable catalog item
    USER    = "user"


class NotificationType(str, enum.Enum):
    """Qualifying actions that produce a notification."""
    COMMENT = "comment"   # top-level comment → thread owner
    REPLY   = "reply"     # reply → parent-comment author
    VOTE    = "vote"
    FOLLOW  = "follow"
    RATING  = "rating"


class VoteType(str, enum.Enum):
    UP   = "up"
    DOWN = "down"


def enum_values(enum_cls: type[enum.Enum]) -> list[str]:
    """Ensure SQLAlchemy stores enum values (e.g., 'up'), not names ('UP')."""
    return [member.value for member in enum_cls]
