"""
services/notification_service.py — Notification propagator.

Two responsibilities, both idempotent:

  Creation — on a qualifying action (top-level comment, reply, vote, follow,
  rating) exactly one notification is addressed to the owner of the thing
  acted on. No self-notification. Repeating the same action returns the
  existing notification instead of creating a second one.

  Removal — when an entity disappears, every notification referencing it
  goes too. For threads that includes every comment in the deleted subtree;
  for users it includes everything they received or caused.

Comment rule:
parent_comment_id IS NULL → notify the thread owner ('comment');
otherwise → notify only the parent-comment author ('reply'). Both kinds of
notification reference the new comment itself, ('comment', comment.id), so
deleting that comment removes them.

Layer rules:
  - No Flask imports. Receives plain ints / ORM objects and a Session.
  - Only flushes. Never commits.
  - Polymorphic column pairs and tags come from reference_index.
"""

from __future__ import annotations

import logging
from decimal import Decimal
from typing import Iterable

import sqlalchemy as sa
from sqlalchemy import delete, or_, select
from sqlalchemy.orm import Session

from backend.app.errors import AppError, ErrorCode
from backend.app.models.catalog import Review, ReviewableEntity
from backend.app.models.comment import Comment
from backend.app.models.follow import Follow
from backend.app.models.kinds import EntityKind, NotificationType
from backend.app.models.notification import Notification
from backend.app.models.post import Post
from backend.app.models.rating import PostRating, ReviewRating
from backend.app.models.user import User
from backend.app.models.vote import Vote
from backend.app.services.reference_index import (
    NOTIFICATION_USER_COLUMNS,
    NOTIFICATIONS,
    VOTES,
    coerce_kind,
)

logger = logging.getLogger(__name__)


# Owner column per primary kind. A catalog item's owner is its creator,
# which may be NULL once that user is gone.
_OWNER_LOOKUP = {
    EntityKind.POST:    (Post, "user_id"),
    EntityKind.REVIEW:  (Review, "user_id"),
    EntityKind.COMMENT: (Comment, "user_id"),
    EntityKind.ENTITY:  (ReviewableEntity, "created_by"),
    EntityKind.USER:    (User, "id"),
}

# Rated kind → (rating model, column holding the rated entity id)
_RATING_MODELS = {
    EntityKind.POST:   (PostRating, "post_id"),
    EntityKind.REVIEW: (ReviewRating, "review_id"),
}

_MESSAGES = {
    NotificationType.COMMENT: "{actor} commented on your {kind}",
    NotificationType.REPLY:   "{actor} replied to your comment",
    NotificationType.VOTE:    "{actor} voted on your {kind}",
    NotificationType.FOLLOW:  "{actor} started following you",
    NotificationType.RATING:  "{actor} rated your {kind}",
}


# ── Private helpers ────────────────────────────────────────────────────────

def _coerce_action(action: NotificationType | str) -> NotificationType:
    if isinstance(action, NotificationType):
        return action
    try:
        return NotificationType(action)
    except ValueError:
        raise AppError(
            ErrorCode.UNKNOWN_ACTION,
            f"'{action}' is not a qualifying action. "
            f"Valid actions: {', '.join(a.value for a in NotificationType)}.",
            400,
            field="action",
        )


def _default_message(
        action: NotificationType,
        actor_id: int,
        referenced_kind: EntityKind,
        session: Session,
) -> str:
    actor = session.get(User, actor_id)
    actor_name = actor.username if actor is not None else "Someone"
    return _MESSAGES[action].format(actor=actor_name, kind=referenced_kind.value)


def _notifications_table():
    """Core table for notifications: polymorphic pair plus the user columns."""
    return sa.table(
        NOTIFICATIONS.table_name,
        *(sa.column(name) for name in NOTIFICATIONS.columns),
        *(sa.column(name) for name in NOTIFICATION_USER_COLUMNS),
        sa.column("notification_type"),
    )


# ── Owner resolution ───────────────────────────────────────────────────────

def resolve_owner(kind: EntityKind | str, entity_id: int, session: Session) -> int | None:
    """
    Returns the user_id owning (kind, entity_id), or None when the entity
    does not exist or has no owner.
    """
    kind = coerce_kind(kind)
    model, column = _OWNER_LOOKUP[kind]
    instance = session.get(model, entity_id)
    if instance is None:
        return None
    return getattr(instance, column)


# ── Creation ───────────────────────────────────────────────────────────────

def record_qualifying_action(
        action: NotificationType | str,
        actor_id: int,
        owner_id: int | None,
        referenced_kind: EntityKind | str,
        referenced_id: int,
        session: Session,
        message: str | None = None,
) -> int | None:
    """
    Records one notification for a qualifying action.

    Returns:
        The notification id, or None when nothing is recorded (actor is the
        owner, or there is no owner to notify). Calling it again for the
        same actor/recipient/action/reference returns the existing id; an
        explicit `message` replaces the stored one.
    """
    action = _coerce_action(action)
    referenced_kind = coerce_kind(referenced_kind)

    if owner_id is None or owner_id == actor_id:
        return None

    # Concurrent identical actions queue on the recipient row, so the
    # lookup below sees the winner's insert.
    session.execute(select(User.id).where(User.id == owner_id).with_for_update())

    existing = session.execute(
        select(Notification).where(
            Notification.recipient_user_id == owner_id,
            Notification.actor_user_id == actor_id,
            Notification.notification_type == action,
            Notification.entity_type == NOTIFICATIONS.tag_for(referenced_kind),
            Notification.entity_id == referenced_id,
        ).order_by(Notification.id)
    ).scalars().first()
    if existing is not None:
        if message is not None and existing.message != message:
            existing.message = message
            session.flush()
        return existing.id

    notification = Notification(
        recipient_user_id=owner_id,
        actor_user_id=actor_id,
        notification_type=action,
        entity_type=NOTIFICATIONS.tag_for(referenced_kind),
        entity_id=referenced_id,
        message=message or _default_message(action, actor_id, referenced_kind, session),
    )
    session.add(notification)
    session.flush()  # populate notification.id
    logger.debug(
        "Recorded %s notification %s for user %s (%s:%s)",
        action.value, notification.id, owner_id, referenced_kind.value, referenced_id,
    )
    return notification.id


def comment_action(comment: Comment) -> NotificationType:
    """'comment' for a top-level comment (parent_comment_id IS NULL), else 'reply'."""
    if comment.parent_comment_id is None:
        return NotificationType.COMMENT
    return NotificationType.REPLY


def _comment_recipient(comment: Comment, session: Session) -> int | None:
    if comment.parent_comment_id is None:
        return resolve_owner(coerce_kind(comment.entity_type), comment.entity_id, session)
    return resolve_owner(EntityKind.COMMENT, comment.parent_comment_id, session)


def notify_comment(comment: Comment, session: Session) -> int | None:
    """
    Notifies for a new comment.

    Top-level (parent_comment_id IS NULL): the thread owner, action 'comment'.
    Reply: only the parent-comment author, action 'reply'.
    """
    action = comment_action(comment)
    message = None
    if action is NotificationType.COMMENT:
        thread_kind = coerce_kind(comment.entity_type)
        message = _default_message(action, comment.user_id, thread_kind, session)

    return record_qualifying_action(
        action,
        actor_id=comment.user_id,
        owner_id=_comment_recipient(comment, session),
        referenced_kind=EntityKind.COMMENT,
        referenced_id=comment.id,
        session=session,
        message=message,
    )


def notify_vote(vote: Vote, session: Session) -> int | None:
    """Notifies the owner of the voted post/review/comment."""
    kind = coerce_kind(vote.entity_type)
    return record_qualifying_action(
        NotificationType.VOTE,
        actor_id=vote.user_id,
        owner_id=resolve_owner(kind, vote.entity_id, session),
        referenced_kind=kind,
        referenced_id=vote.entity_id,
        session=session,
    )


def notify_follow(follow: Follow, session: Session) -> int | None:
    """Notifies the followed user. The notification references the follower."""
    return record_qualifying_action(
        NotificationType.FOLLOW,
        actor_id=follow.follower_id,
        owner_id=follow.followed_id,
        referenced_kind=EntityKind.USER,
        referenced_id=follow.follower_id,
        session=session,
    )


def notify_rating(
        kind: EntityKind,
        entity_id: int,
        user_id: int,
        owner_id: int | None,
        score: Decimal,
        session: Session,
) -> int | None:
    actor = session.get(User, user_id)
    actor_name = actor.username if actor is not None else "Someone"
    return record_qualifying_action(
        NotificationType.RATING,
        actor_id=user_id,
        owner_id=owner_id,
        referenced_kind=kind,
        referenced_id=entity_id,
        session=session,
        message=f"{actor_name} rated your {kind.value} ({score} stars)",
    )


# ── Reported actions ───────────────────────────────────────────────────────

def _no_record(action: NotificationType, kind: EntityKind, referenced_id: int, actor_id: int) -> AppError:
    return AppError(
        ErrorCode.ENTITY_NOT_FOUND,
        f"User {actor_id} has no {action.value} on {kind.value} {referenced_id}.",
        404,
    )


def _expect_kind(action: NotificationType, kind: EntityKind, *allowed: EntityKind) -> None:
    if kind not in allowed:
        raise AppError(
            ErrorCode.INVALID_FIELD,
            f"A '{action.value}' action references "
            f"{' or '.join(k.value for k in allowed)}, not '{kind.value}'.",
            400,
            field="referenced_kind",
        )


def _check_owner(owner_id: int | None, recipient_id: int | None) -> None:
    if owner_id is not None and owner_id != recipient_id:
        raise AppError(
            ErrorCode.ACTION_MISMATCH,
            f"owner_id {owner_id} is not the user this action notifies.",
            422,
            field="owner_id",
        )


def record_reported_action(
        action: NotificationType | str,
        actor_id: int,
        referenced_kind: EntityKind | str,
        referenced_id: int,
        session: Session,
        owner_id: int | None = None,
) -> int | None:
    """
    Records the notification for an action another service reports on
    behalf of `actor_id`.

    The action is checked against the record the actor created, and the
    recipient is derived from that record:

      comment / reply   referenced_kind 'comment': the actor's new comment.
                        Its parent_comment_id decides which of the two it is.
      vote              the post, review or comment the actor voted on
      follow            referenced_kind 'user': the user the actor follows
      rating            the post or review the actor rated

    `owner_id` is optional. When given it must name that recipient.

    Raises:
        UNKNOWN_ACTION, UNKNOWN_KIND, INVALID_FIELD (400),
        ENTITY_NOT_FOUND (404) when the actor has no such record,
        ACTION_MISMATCH (422).
    """
    action = _coerce_action(action)
    kind = coerce_kind(referenced_kind)

    if action in (NotificationType.COMMENT, NotificationType.REPLY):
        _expect_kind(action, kind, EntityKind.COMMENT)
        comment = session.get(Comment, referenced_id)
        if comment is None or comment.user_id != actor_id:
            raise _no_record(action, kind, referenced_id, actor_id)
        expected = comment_action(comment)
        if action is not expected:
            raise AppError(
                ErrorCode.ACTION_MISMATCH,
                f"Comment {referenced_id} is reported as '{action.value}' "
                f"but is a '{expected.value}'.",
                422,
                field="action",
            )
        _check_owner(owner_id, _comment_recipient(comment, session))
        return notify_comment(comment, session)

    if action is NotificationType.VOTE:
        _expect_kind(action, kind, EntityKind.POST, EntityKind.REVIEW, EntityKind.COMMENT)
        vote = session.execute(
            select(Vote).where(
                Vote.user_id == actor_id,
                Vote.entity_type == VOTES.tag_for(kind),
                Vote.entity_id == referenced_id,
            )
        ).scalar_one_or_none()
        if vote is None:
            raise _no_record(action, kind, referenced_id, actor_id)
        _check_owner(owner_id, resolve_owner(kind, referenced_id, session))
        return notify_vote(vote, session)

    if action is NotificationType.FOLLOW:
        _expect_kind(action, kind, EntityKind.USER)
        follow = session.execute(
            select(Follow).where(
                Follow.follower_id == actor_id,
                Follow.followed_id == referenced_id,
            )
        ).scalar_one_or_none()
        if follow is None:
            raise _no_record(action, kind, referenced_id, actor_id)
        _check_owner(owner_id, follow.followed_id)
        return notify_follow(follow, session)

    _expect_kind(action, kind, *_RATING_MODELS)
    rating_model, rated_column = _RATING_MODELS[kind]
    rating = session.execute(
        select(rating_model).where(
            rating_model.user_id == actor_id,
            getattr(rating_model, rated_column) == referenced_id,
        )
    ).scalar_one_or_none()
    if rating is None:
        raise _no_record(action, kind, referenced_id, actor_id)
    recipient_id = resolve_owner(kind, referenced_id, session)
    _check_owner(owner_id, recipient_id)
    return notify_rating(kind, referenced_id, actor_id, recipient_id, rating.rating, session)


# ── Removal ────────────────────────────────────────────────────────────────

def purge_for_entity(
        kind: EntityKind | str,
        entity_id: int,
        comment_ids: Iterable[int],
        session: Session,
) -> int:
    """
    Deletes every notification tied to a deleted primary entity.

    That is: notifications referencing (kind, entity_id); notifications
    referencing any comment in `comment_ids` (the deleted reply subtree or
    the thread's comments); and, for a user, every notification the user
    received or caused.

    Returns:
        Number of notifications deleted.
    """
    kind = coerce_kind(kind)
    table = _notifications_table()
    type_col = table.c[NOTIFICATIONS.type_column]
    id_col = table.c[NOTIFICATIONS.id_column]

    conditions = [(type_col == NOTIFICATIONS.tag_for(kind)) & (id_col == entity_id)]

    comment_ids = list(comment_ids)
    if comment_ids:
        conditions.append(
            (type_col == NOTIFICATIONS.tag_for(EntityKind.COMMENT)) & id_col.in_(comment_ids)
        )

    if kind is EntityKind.USER:
        conditions.extend(table.c[column] == entity_id for column in NOTIFICATION_USER_COLUMNS)

    result = session.execute(delete(table).where(or_(*conditions)))
    return result.rowcount or 0


def purge_for_vote(vote: Vote, session: Session) -> int:
    """Removes the notification a vote produced."""
    return _purge_action(
        session,
        NotificationType.VOTE,
        actor_id=vote.user_id,
        kind=coerce_kind(vote.entity_type),
        entity_id=vote.entity_id,
    )


def purge_for_follow(follow: Follow, session: Session) -> int:
    """Removes the notification a follow produced."""
    return _purge_action(
        session,
        NotificationType.FOLLOW,
        actor_id=follow.follower_id,
        kind=EntityKind.USER,
        entity_id=follow.follower_id,
        recipient_id=follow.followed_id,
    )


def purge_for_rating(kind: EntityKind | str, entity_id: int, user_id: int, session: Session) -> int:
    """Removes the notification a rating produced."""
    return _purge_action(
        session,
        NotificationType.RATING,
        actor_id=user_id,
        kind=coerce_kind(kind),
        entity_id=entity_id,
    )


def _purge_action(
        session: Session,
        action: NotificationType,
        actor_id: int,
        kind: EntityKind,
        entity_id: int,
        recipient_id: int | None = None,
) -> int:
    table = _notifications_table()
    criteria = [
        table.c.notification_type == action.value,
        table.c.actor_user_id == actor_id,
        table.c[NOTIFICATIONS.type_column] == NOTIFICATIONS.tag_for(kind),
        table.c[NOTIFICATIONS.id_column] == entity_id,
    ]
    if recipient_id is not None:
        criteria.append(table.c.recipient_user_id == recipient_id)
    result = session.execute(delete(table).where(*criteria))
    return result.rowcount or 0
