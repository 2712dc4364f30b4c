"""
tests/test_query.py — Filtered, Paginated Discussion Listings
==============================================================
"""

from __future__ import annotations

from datetime import UTC, datetime, timedelta

import pytest

from agora.engine.pagination import PageRequest
from agora.errors import ValidationError
from agora.services import (
    discussion_service,
    engagement_service,
    moderation_service,
    query_service,
    reply_service,
)
from agora.services.query_service import DiscussionFilter


def _ids(result) -> list[int]:
    return [item["id"] for item in result["data"]]


@pytest.fixture
def three(ctx, alice, bob, instructor):
    """Three discussions, oldest first: alice's, bob's, the instructor's."""
    first = discussion_service.create_discussion(
        ctx, alice, title="Python tips", body="Use list comprehensions", tags=["python"]
    )
    second = discussion_service.create_discussion(
        ctx, bob, title="SQL question", body="JOIN or subquery?", type="question", tags=["sql"]
    )
    third = discussion_service.create_discussion(
        ctx, instructor, title="Course news", body="Exam moved", type="announcement",
        tags=["python", "admin"],
    )
    return first, second, third


class TestListDiscussions:
    def test_latest_first_by_default(self, ctx, carol, three, page):
        first, second, third = three
        result = query_service.list_discussions(ctx, carol, DiscussionFilter(), page)
        assert _ids(result) == [third["id"], second["id"], first["id"]]
        assert result["pagination"]["total"] == 3

    def test_oldest(self, ctx, carol, three, page):
        first, second, third = three
        result = query_service.list_discussions(ctx, carol, DiscussionFilter(sort="oldest"), page)
        assert _ids(result) == [first["id"], second["id"], third["id"]]

    def test_pagination_applied_in_sql(self, ctx, carol, three):
        result = query_service.list_discussions(
            ctx, carol, DiscussionFilter(sort="oldest"), PageRequest(page=2, limit=2)
        )
        assert _ids(result) == [three[2]["id"]]
        assert result["pagination"]["total"] == 3
        assert result["pagination"]["has_prev"] is True
        assert result["pagination"]["has_next"] is False

    def test_filter_by_type(self, ctx, carol, three, page):
        result = query_service.list_discussions(ctx, carol, DiscussionFilter(type="question"), page)
        assert _ids(result) == [three[1]["id"]]

    def test_unknown_type(self, ctx, carol, page):
        with pytest.raises(ValidationError):
            query_service.list_discussions(ctx, carol, DiscussionFilter(type="poll"), page)

    def test_unknown_sort(self, ctx, carol, page):
        with pytest.raises(ValidationError):
            query_service.list_discussions(ctx, carol, DiscussionFilter(sort="random"), page)

    def test_filter_by_tags(self, ctx, carol, three, page):
        result = query_service.list_discussions(
            ctx, carol, DiscussionFilter(tags=["PYTHON"], sort="oldest"), page
        )
        assert _ids(result) == [three[0]["id"], three[2]["id"]]

    def test_filter_by_author(self, ctx, carol, bob, three, page):
        result = query_service.list_discussions(ctx, carol, DiscussionFilter(author_id=bob.id), page)
        assert _ids(result) == [three[1]["id"]]

    def test_search_title_and_body(self, ctx, carol, three, page):
        by_title = query_service.list_discussions(ctx, carol, DiscussionFilter(search="sql"), page)
        by_body = query_service.list_discussions(ctx, carol, DiscussionFilter(search="EXAM"), page)
        assert _ids(by_title) == [three[1]["id"]]
        assert _ids(by_body) == [three[2]["id"]]

    def test_pinned_only(self, ctx, carol, three, page):
        engagement_service.toggle_pin(ctx, carol, three[1]["id"])
        result = query_service.list_discussions(ctx, carol, DiscussionFilter(pinned_only=True), page)
        assert _ids(result) == [three[1]["id"]]
        assert result["data"][0]["is_pinned"] is True

    def test_most_liked_and_most_replies(self, ctx, alice, bob, carol, three, page):
        first, second, _ = three
        engagement_service.toggle_like(ctx, carol, "discussion", second["id"])
        reply_service.create_reply(ctx, carol, first["id"], "one")
        reply_service.create_reply(ctx, bob, first["id"], "two")

        liked = query_service.list_discussions(ctx, carol, DiscussionFilter(sort="most_liked"), page)
        assert _ids(liked)[0] == second["id"]
        replied = query_service.list_discussions(ctx, carol, DiscussionFilter(sort="most_replies"), page)
        assert _ids(replied)[0] == first["id"]
        active = query_service.list_discussions(
            ctx, carol, DiscussionFilter(sort="recent_activity"), page
        )
        assert _ids(active)[0] == first["id"]


class TestVisibility:
    def test_member_sees_only_active(self, ctx, bob, carol, admin, instructor, three, page):
        first, second, _ = three
        discussion_service.archive_discussion(ctx, instructor, first["id"])
        moderation_service.report_content(ctx, carol, "discussion", second["id"], "spam", "x")

        member_view = query_service.list_discussions(ctx, carol, DiscussionFilter(), page)
        assert _ids(member_view) == [three[2]["id"]]

        staff_view = query_service.list_discussions(ctx, instructor, DiscussionFilter(), page)
        assert set(_ids(staff_view)) == {first["id"], three[2]["id"]}

        admin_view = query_service.list_discussions(ctx, admin, DiscussionFilter(), page)
        assert len(_ids(admin_view)) == 3

    def test_status_filter_outside_role_is_empty(self, ctx, carol, instructor, three, page):
        discussion_service.archive_discussion(ctx, instructor, three[0]["id"])
        result = query_service.list_discussions(ctx, carol, DiscussionFilter(status="archived"), page)
        assert result["data"] == []
        assert result["pagination"]["total"] == 0

    def test_admin_status_filter(self, ctx, carol, admin, three, page):
        moderation_service.report_content(ctx, carol, "discussion", three[0]["id"], "spam", "x")
        result = query_service.list_discussions(ctx, admin, DiscussionFilter(status="reported"), page)
        assert _ids(result) == [three[0]["id"]]

    def test_deleted_never_listed(self, ctx, alice, admin, three, page):
        discussion_service.delete_discussion(ctx, alice, three[0]["id"])
        result = query_service.list_discussions(ctx, admin, DiscussionFilter(), page)
        assert three[0]["id"] not in _ids(result)


class TestAssembly:
    def test_per_actor_flags(self, ctx, alice, bob, carol, three, page):
        first = three[0]
        engagement_service.toggle_like(ctx, bob, "discussion", first["id"])
        reply_service.create_reply(ctx, carol, first["id"], "hi")

        bobs = {d["id"]: d for d in query_service.list_discussions(ctx, bob, DiscussionFilter(), page)["data"]}
        assert bobs[first["id"]]["is_liked"] is True
        assert bobs[first["id"]]["is_unread"] is True
        assert bobs[first["id"]]["unread_reply_count"] == 1
        assert bobs[first["id"]]["like_count"] == 1
        assert bobs[first["id"]]["created_by"]["first_name"] == "Alice"

        alices = {d["id"]: d for d in query_service.list_discussions(ctx, alice, DiscussionFilter(), page)["data"]}
        assert alices[first["id"]]["is_liked"] is False
        assert alices[first["id"]]["is_unread"] is False

    def test_viewing_clears_unread_replies(self, ctx, bob, carol, three, page):
        first = three[0]
        reply_service.create_reply(ctx, carol, first["id"], "hi")
        discussion_service.get_discussion(ctx, bob, first["id"])
        view = query_service.get_discussion_view(ctx, bob, first["id"])
        assert view["unread_reply_count"] == 0
        assert view["is_unread"] is False

    def test_reply_unread_flag(self, ctx, alice, bob, carol, three):
        first = three[0]
        reply = reply_service.create_reply(ctx, carol, first["id"], "hi")
        assert reply["is_unread"] is False  # the author's own reply
        replies = reply_service.list_top_level_replies(ctx, bob, first["id"], PageRequest())
        assert replies["data"][0]["is_unread"] is True


class TestTimestamps:
    def test_naive_treated_as_utc(self):
        naive = datetime(2026, 1, 1, 12, 0)
        assert query_service.normalize_dt(naive).tzinfo is UTC

    def test_is_newer_strict(self):
        ts = datetime(2026, 1, 1, tzinfo=UTC)
        assert query_service.is_newer(ts, None) is True
        assert query_service.is_newer(ts, ts) is False
        assert query_service.is_newer(ts + timedelta(microseconds=1), ts) is True
