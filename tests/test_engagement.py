"""
tests/test_engagement.py — Likes, Pins and Read State
======================================================
"""

from __future__ import annotations

from datetime import timedelta

import pytest
from sqlalchemy import func, select
from sqlalchemy.orm import Session

from agora.database.models import Discussion, Like, Reply, View, utcnow
from agora.errors import NotFoundError, ValidationError
from agora.services import discussion_service, engagement_service, reply_service


@pytest.fixture
def discussion(ctx, alice):
    return discussion_service.create_discussion(ctx, alice, title="Likes", body="Like me")


def _like_rows(ctx) -> int:
    with Session(ctx.store) as session:
        return session.scalar(select(func.count()).select_from(Like))


# ===========================================================================
# Likes
# ===========================================================================
class TestToggleLike:
    def test_like_then_unlike(self, ctx, bob, discussion):
        assert engagement_service.toggle_like(ctx, bob, "discussion", discussion["id"]) == {
            "liked": True,
            "like_count": 1,
        }
        assert engagement_service.toggle_like(ctx, bob, "discussion", discussion["id"]) == {
            "liked": False,
            "like_count": 0,
        }
        assert _like_rows(ctx) == 0

    def test_two_users(self, ctx, bob, carol, discussion):
        engagement_service.toggle_like(ctx, bob, "discussion", discussion["id"])
        result = engagement_service.toggle_like(ctx, carol, "discussion", discussion["id"])
        assert result["like_count"] == 2

    def test_reply_like(self, ctx, alice, bob, discussion):
        reply = reply_service.create_reply(ctx, bob, discussion["id"], "r")
        engagement_service.toggle_like(ctx, alice, "reply", reply["id"])
        with Session(ctx.store) as session:
            assert session.get(Reply, reply["id"]).like_count == 1
            assert session.get(Discussion, discussion["id"]).like_count == 0

    def test_existing_row_never_double_counts(self, ctx, bob, discussion):
        """A like row inserted behind the service's back (a concurrent
        toggle) is found by the DELETE and the counter floors at zero."""
        with Session(ctx.store) as session:
            session.add(Like(
                entity_type="discussion", entity_id=discussion["id"],
                liked_by=bob.id, liked_by_role="member",
            ))
            session.commit()
        result = engagement_service.toggle_like(ctx, bob, "discussion", discussion["id"])
        assert result == {"liked": False, "like_count": 0}

    def test_owner_notified_not_self(self, ctx, alice, bob, discussion, dispatcher):
        dispatcher.reset_mock()
        engagement_service.toggle_like(ctx, alice, "discussion", discussion["id"])
        dispatcher.send.assert_not_called()

        engagement_service.toggle_like(ctx, bob, "discussion", discussion["id"])
        (call,) = dispatcher.send.call_args_list
        assert call.args[0] == alice.id
        assert call.args[4] == "new_like"

    def test_unlike_is_silent(self, ctx, bob, discussion, dispatcher):
        engagement_service.toggle_like(ctx, bob, "discussion", discussion["id"])
        dispatcher.reset_mock()
        engagement_service.toggle_like(ctx, bob, "discussion", discussion["id"])
        dispatcher.send.assert_not_called()

    def test_unknown_entity_type(self, ctx, bob):
        with pytest.raises(ValidationError):
            engagement_service.toggle_like(ctx, bob, "poll", 1)

    def test_deleted_entity(self, ctx, alice, bob, discussion):
        discussion_service.delete_discussion(ctx, alice, discussion["id"])
        with pytest.raises(NotFoundError):
            engagement_service.toggle_like(ctx, bob, "discussion", discussion["id"])

    def test_reply_in_hidden_discussion(self, ctx, bob, carol, instructor, discussion, page):
        reply = reply_service.create_reply(ctx, bob, discussion["id"], "r")
        discussion_service.archive_discussion(ctx, instructor, discussion["id"])

        with pytest.raises(NotFoundError):
            engagement_service.toggle_like(ctx, carol, "reply", reply["id"])
        with pytest.raises(NotFoundError):
            engagement_service.like_status(ctx, carol, "reply", reply["id"])
        with pytest.raises(NotFoundError):
            engagement_service.list_likers(ctx, carol, "reply", reply["id"], page)
        assert _like_rows(ctx) == 0

        # Instructors still see archived discussions
        assert engagement_service.toggle_like(ctx, instructor, "reply", reply["id"])["liked"] is True


class TestLikeStatusAndLikers:
    def test_status(self, ctx, bob, carol, discussion):
        engagement_service.toggle_like(ctx, bob, "discussion", discussion["id"])
        assert engagement_service.like_status(ctx, bob, "discussion", discussion["id"]) == {
            "liked": True,
            "like_count": 1,
        }
        assert engagement_service.like_status(ctx, carol, "discussion", discussion["id"])["liked"] is False

    def test_likers_most_recent_first(self, ctx, bob, instructor, discussion, page):
        engagement_service.toggle_like(ctx, bob, "discussion", discussion["id"])
        engagement_service.toggle_like(ctx, instructor, "discussion", discussion["id"])
        result = engagement_service.list_likers(ctx, bob, "discussion", discussion["id"], page)
        assert [item["user_id"] for item in result["data"]] == [instructor.id, bob.id]
        assert result["data"][0]["user"]["first_name"] == "Ivan"
        assert result["pagination"]["total"] == 2


# ===========================================================================
# Pins
# ===========================================================================
class TestPins:
    def test_toggle(self, ctx, bob, discussion):
        assert engagement_service.toggle_pin(ctx, bob, discussion["id"]) == {"pinned": True}
        assert engagement_service.pin_status(ctx, bob, discussion["id"]) == {"pinned": True}
        assert engagement_service.toggle_pin(ctx, bob, discussion["id"]) == {"pinned": False}
        assert engagement_service.pin_status(ctx, bob, discussion["id"]) == {"pinned": False}

    def test_pins_are_personal(self, ctx, bob, carol, discussion, page):
        engagement_service.toggle_pin(ctx, bob, discussion["id"])
        assert engagement_service.list_pinned_discussions(ctx, carol, page)["data"] == []
        pinned = engagement_service.list_pinned_discussions(ctx, bob, page)["data"]
        assert [d["id"] for d in pinned] == [discussion["id"]]
        assert pinned[0]["is_pinned"] is True

    def test_pinned_archived_hidden_from_members(self, ctx, bob, instructor, discussion, page):
        engagement_service.toggle_pin(ctx, bob, discussion["id"])
        discussion_service.archive_discussion(ctx, instructor, discussion["id"])
        assert engagement_service.list_pinned_discussions(ctx, bob, page)["pagination"]["total"] == 0


# ===========================================================================
# Views & unread
# ===========================================================================
class TestUnread:
    def test_unread_until_viewed(self, ctx, bob, discussion):
        created = utcnow() - timedelta(seconds=1)
        assert engagement_service.is_unread(ctx, bob.id, discussion["id"], created)
        engagement_service.mark_viewed(ctx, bob.id, discussion["id"])
        assert not engagement_service.is_unread(ctx, bob.id, discussion["id"], created)
        assert engagement_service.is_unread(
            ctx, bob.id, discussion["id"], utcnow() + timedelta(minutes=5)
        )

    def test_mark_viewed_upserts(self, ctx, bob, discussion):
        engagement_service.mark_viewed(ctx, bob.id, discussion["id"])
        engagement_service.mark_viewed(ctx, bob.id, discussion["id"])
        with Session(ctx.store) as session:
            assert session.scalar(select(func.count()).select_from(View)) == 1

    def test_mark_viewed_unknown(self, ctx, bob):
        with pytest.raises(NotFoundError):
            engagement_service.mark_viewed(ctx, bob.id, 12345)

    def test_mark_viewed_deleted(self, ctx, alice, bob, discussion):
        discussion_service.delete_discussion(ctx, alice, discussion["id"])
        with pytest.raises(NotFoundError):
            engagement_service.mark_viewed(ctx, bob.id, discussion["id"])
        with Session(ctx.store) as session:
            assert session.scalar(select(func.count()).select_from(View)) == 0

    def test_upsert_keeps_latest_timestamp(self, ctx, bob, discussion):
        later = utcnow() + timedelta(hours=1)
        with Session(ctx.store) as session:
            engagement_service.upsert_view(session, bob.id, discussion["id"])
            engagement_service.upsert_view(session, bob.id, discussion["id"], later)
            session.commit()
        assert not engagement_service.is_unread(
            ctx, bob.id, discussion["id"], later - timedelta(minutes=1)
        )

    def test_unread_counts(self, ctx, alice, bob, carol, discussion):
        reply_service.create_reply(ctx, alice, discussion["id"], "own reply")
        reply_service.create_reply(ctx, carol, discussion["id"], "carol's reply")

        counts = engagement_service.unread_counts(ctx, bob)
        assert counts == {"discussions": 1, "replies": 2, "total": 3}

        # The author never has their own content unread
        assert engagement_service.unread_counts(ctx, alice) == {
            "discussions": 0,
            "replies": 1,
            "total": 1,
        }

        engagement_service.mark_viewed(ctx, bob.id, discussion["id"])
        assert engagement_service.unread_counts(ctx, bob)["total"] == 0

    def test_unread_counts_respect_visibility(self, ctx, bob, instructor, discussion):
        discussion_service.archive_discussion(ctx, instructor, discussion["id"])
        assert engagement_service.unread_counts(ctx, bob)["discussions"] == 0
        assert engagement_service.unread_counts(ctx, instructor)["discussions"] == 1
