"""
Unit tests for notification_service: who gets notified, and when nobody does.

The comment rule is the important one: a top-level comment notifies the
thread owner, a reply notifies only the parent-comment author, and both
notifications reference the new comment.
"""

from __future__ import annotations

from unittest.mock import MagicMock

import pytest

from backend.app.errors import AppError, ErrorCode
from backend.app.models.kinds import EntityKind, NotificationType
from backend.app.services import notification_service


# ═══════════════════════════════════════════════════════════════════════════
# record_qualifying_action
# ═══════════════════════════════════════════════════════════════════════════

class TestRecordQualifyingAction:

    def test_no_owner_records_nothing(self):
        session = MagicMock()

        result = notification_service.record_qualifying_action(
            "vote", actor_id=1, owner_id=None,
            referenced_kind="post", referenced_id=5, session=session,
        )

        assert result is None
        session.add.assert_not_called()
        session.execute.assert_not_called()

    def test_self_action_records_nothing(self):
        session = MagicMock()

        result = notification_service.record_qualifying_action(
            "rating", actor_id=3, owner_id=3,
            referenced_kind="review", referenced_id=5, session=session,
        )

        assert result is None
        session.add.assert_not_called()

    def test_existing_notification_is_returned(self):
        session = MagicMock()
        session.execute.return_value.scalars.return_value.first.return_value = MagicMock(id=77, message="old")

        result = notification_service.record_qualifying_action(
            NotificationType.FOLLOW, actor_id=1, owner_id=2,
            referenced_kind=EntityKind.USER, referenced_id=1, session=session,
        )

        assert result == 77
        session.add.assert_not_called()

    def test_explicit_message_refreshes_existing_notification(self):
        session = MagicMock()
        existing = MagicMock(id=77, message="bob rated your post (4.5 stars)")
        session.execute.return_value.scalars.return_value.first.return_value = existing

        result = notification_service.record_qualifying_action(
            "rating", actor_id=1, owner_id=2,
            referenced_kind="post", referenced_id=5, session=session,
            message="bob rated your post (3.0 stars)",
        )

        assert result == 77
        assert existing.message == "bob rated your post (3.0 stars)"
        session.add.assert_not_called()

    def test_recipient_row_is_locked_before_lookup(self):
        session = MagicMock()
        session.execute.return_value.scalars.return_value.first.return_value = None

        notification_service.record_qualifying_action(
            "vote", actor_id=1, owner_id=2,
            referenced_kind="post", referenced_id=9, session=session,
            message="bob voted on your post",
        )

        lock_stmt = session.execute.call_args_list[0].args[0]
        assert lock_stmt._for_update_arg is not None

    def test_new_notification_is_added(self):
        session = MagicMock()
        session.execute.return_value.scalars.return_value.first.return_value = None

        notification_service.record_qualifying_action(
            "vote", actor_id=1, owner_id=2,
            referenced_kind="comment", referenced_id=9, session=session,
            message="bob voted on your comment",
        )

        session.add.assert_called_once()
        added = session.add.call_args.args[0]
        assert added.recipient_user_id == 2
        assert added.actor_user_id == 1
        assert added.notification_type is NotificationType.VOTE
        assert (added.entity_type, added.entity_id) == ("comment", 9)
        assert added.message == "bob voted on your comment"
        session.flush.assert_called_once()

    def test_default_message_names_the_actor(self):
        session = MagicMock()
        session.execute.return_value.scalars.return_value.first.return_value = None
        session.get.return_value = MagicMock(username="carol")

        notification_service.record_qualifying_action(
            "vote", actor_id=1, owner_id=2,
            referenced_kind="post", referenced_id=9, session=session,
        )

        added = session.add.call_args.args[0]
        assert added.message == "carol voted on your post"

    def test_unknown_action(self):
        with pytest.raises(AppError) as exc_info:
            notification_service.record_qualifying_action(
                "share", 1, 2, "post", 1, MagicMock(),
            )

        assert exc_info.value.code == ErrorCode.UNKNOWN_ACTION
        assert exc_info.value.field == "action"

    def test_unknown_kind(self):
        with pytest.raises(AppError) as exc_info:
            notification_service.record_qualifying_action(
                "vote", 1, 2, "photo", 1, MagicMock(),
            )

        assert exc_info.value.code == ErrorCode.UNKNOWN_KIND


# ═══════════════════════════════════════════════════════════════════════════
# notify_comment
# ═══════════════════════════════════════════════════════════════════════════

class TestNotifyComment:

    @pytest.fixture
    def recorded(self, monkeypatch):
        record = MagicMock(return_value=501)
        monkeypatch.setattr(notification_service, "record_qualifying_action", record)
        return record

    @pytest.fixture
    def owners(self, monkeypatch):
        table = {
            (EntityKind.POST, 42): 10,
            (EntityKind.COMMENT, 300): 20,
        }
        monkeypatch.setattr(
            notification_service,
            "resolve_owner",
            lambda kind, entity_id, session: table.get((kind, entity_id)),
        )
        return table

    def _session(self):
        session = MagicMock()
        session.get.return_value = MagicMock(username="dave")
        return session

    def test_top_level_comment_notifies_thread_owner(self, recorded, owners):
        comment = MagicMock(id=301, user_id=30, entity_type="post", entity_id=42, parent_comment_id=None)

        assert notification_service.notify_comment(comment, self._session()) == 501

        args, kwargs = recorded.call_args
        assert args[0] is NotificationType.COMMENT
        assert kwargs["owner_id"] == 10
        assert kwargs["actor_id"] == 30
        assert kwargs["referenced_kind"] is EntityKind.COMMENT
        assert kwargs["referenced_id"] == 301
        assert kwargs["message"] == "dave commented on your post"

    def test_reply_notifies_parent_author_only(self, recorded, owners):
        comment = MagicMock(id=302, user_id=30, entity_type="post", entity_id=42, parent_comment_id=300)

        notification_service.notify_comment(comment, self._session())

        recorded.assert_called_once()
        args, kwargs = recorded.call_args
        assert args[0] is NotificationType.REPLY
        assert kwargs["owner_id"] == 20
        assert kwargs["referenced_id"] == 302


# ═══════════════════════════════════════════════════════════════════════════
# record_reported_action
# ═══════════════════════════════════════════════════════════════════════════

class TestRecordReportedAction:

    def _reply_session(self):
        session = MagicMock()
        session.get.return_value = MagicMock(
            id=302, user_id=30, entity_type="post", entity_id=42, parent_comment_id=300,
        )
        return session

    def test_reply_reported_as_comment(self):
        with pytest.raises(AppError) as exc_info:
            notification_service.record_reported_action(
                "comment", 30, "comment", 302, self._reply_session(),
            )

        assert exc_info.value.code == ErrorCode.ACTION_MISMATCH
        assert exc_info.value.field == "action"

    def test_reply_dispatches_to_notify_comment(self, monkeypatch):
        notify = MagicMock(return_value=9)
        monkeypatch.setattr(notification_service, "notify_comment", notify)
        session = self._reply_session()

        assert notification_service.record_reported_action("reply", 30, "comment", 302, session) == 9
        notify.assert_called_once_with(session.get.return_value, session)

    def test_comment_of_another_user(self):
        with pytest.raises(AppError) as exc_info:
            notification_service.record_reported_action(
                "reply", 31, "comment", 302, self._reply_session(),
            )

        assert exc_info.value.code == ErrorCode.ENTITY_NOT_FOUND

    def test_comment_action_must_reference_a_comment(self):
        with pytest.raises(AppError) as exc_info:
            notification_service.record_reported_action("comment", 30, "post", 42, MagicMock())

        assert exc_info.value.code == ErrorCode.INVALID_FIELD
        assert exc_info.value.field == "referenced_kind"

    def test_missing_vote(self):
        session = MagicMock()
        session.execute.return_value.scalar_one_or_none.return_value = None

        with pytest.raises(AppError) as exc_info:
            notification_service.record_reported_action("vote", 4, "review", 70, session)

        assert exc_info.value.code == ErrorCode.ENTITY_NOT_FOUND
        assert exc_info.value.http_status == 404

    def test_rating_of_a_comment_is_rejected(self):
        with pytest.raises(AppError) as exc_info:
            notification_service.record_reported_action("rating", 4, "comment", 70, MagicMock())

        assert exc_info.value.code == ErrorCode.INVALID_FIELD


def test_comment_action_follows_parent_column():
    assert notification_service.comment_action(MagicMock(parent_comment_id=None)) is NotificationType.COMMENT
    assert notification_service.comment_action(MagicMock(parent_comment_id=5)) is NotificationType.REPLY


# ═══════════════════════════════════════════════════════════════════════════
# Other qualifying actions
# ═══════════════════════════════════════════════════════════════════════════

def test_follow_references_the_follower(monkeypatch):
    record = MagicMock(return_value=None)
    monkeypatch.setattr(notification_service, "record_qualifying_action", record)

    notification_service.notify_follow(MagicMock(follower_id=4, followed_id=8), MagicMock())

    args, kwargs = record.call_args
    assert args[0] is NotificationType.FOLLOW
    assert kwargs["owner_id"] == 8
    assert kwargs["referenced_kind"] is EntityKind.USER
    assert kwargs["referenced_id"] == 4


def test_vote_references_the_voted_entity(monkeypatch):
    record = MagicMock(return_value=None)
    monkeypatch.setattr(notification_service, "record_qualifying_action", record)
    monkeypatch.setattr(notification_service, "resolve_owner", lambda kind, entity_id, session: 12)

    vote = MagicMock(user_id=4, entity_type="review", entity_id=70)
    notification_service.notify_vote(vote, MagicMock())

    _, kwargs = record.call_args
    assert kwargs["owner_id"] == 12
    assert kwargs["referenced_kind"] is EntityKind.REVIEW
    assert kwargs["referenced_id"] == 70


def test_resolve_owner_of_missing_entity():
    session = MagicMock()
    session.get.return_value = None

    assert notification_service.resolve_owner("post", 1, session) is None


def test_resolve_owner_of_catalog_item_is_its_creator():
    session = MagicMock()
    session.get.return_value = MagicMock(created_by=6)

    assert notification_service.resolve_owner("entity", 1, session) == 6
