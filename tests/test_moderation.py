"""
tests/test_moderation.py — Reports & Review
============================================
"""

from __future__ import annotations

import pytest
from sqlalchemy.orm import Session

from agora.database.models import Discussion, Reply
from agora.errors import ConflictError, ForbiddenError, NotFoundError, ValidationError
from agora.services import discussion_service, moderation_service, reply_service


@pytest.fixture
def discussion(ctx, alice):
    return discussion_service.create_discussion(ctx, alice, title="Hot take", body="Spicy")


def _status(ctx, model, entity_id) -> str:
    with Session(ctx.store) as session:
        return session.get(model, entity_id).status


class TestReportContent:
    def test_report_hides_content(self, ctx, bob, discussion):
        report = moderation_service.report_content(
            ctx, bob, "discussion", discussion["id"], "spam", " buy now "
        )
        assert report["status"] == "pending"
        assert report["report_type"] == "spam"
        assert _status(ctx, Discussion, discussion["id"]) == "reported"

    def test_reply_report(self, ctx, bob, carol, discussion):
        reply = reply_service.create_reply(ctx, bob, discussion["id"], "rude")
        moderation_service.report_content(ctx, carol, "reply", reply["id"], "harassment", "mean")
        assert _status(ctx, Reply, reply["id"]) == "reported"

    def test_duplicate_open_report_conflicts(self, ctx, bob, discussion):
        moderation_service.report_content(ctx, bob, "discussion", discussion["id"], "spam", "a")
        with pytest.raises(ConflictError):
            moderation_service.report_content(ctx, bob, "discussion", discussion["id"], "other", "b")

    def test_different_reporters_allowed(self, ctx, bob, carol, discussion):
        moderation_service.report_content(ctx, bob, "discussion", discussion["id"], "spam", "a")
        moderation_service.report_content(ctx, carol, "discussion", discussion["id"], "spam", "b")

    def test_can_report_again_after_resolution(self, ctx, bob, admin, discussion):
        first = moderation_service.report_content(ctx, bob, "discussion", discussion["id"], "spam", "a")
        moderation_service.review_report(ctx, admin, first["id"], "resolved")
        again = moderation_service.report_content(ctx, bob, "discussion", discussion["id"], "spam", "b")
        assert again["id"] != first["id"]

    def test_archived_stays_archived(self, ctx, bob, instructor, discussion):
        discussion_service.archive_discussion(ctx, instructor, discussion["id"])
        moderation_service.report_content(ctx, bob, "discussion", discussion["id"], "other", "old")
        assert _status(ctx, Discussion, discussion["id"]) == "archived"

    @pytest.mark.parametrize(
        "entity_type, report_type, reason, error",
        [
            ("discussion", "nonsense", "why", ValidationError),
            ("discussion", "spam", "   ", ValidationError),
            ("poll", "spam", "why", ValidationError),
        ],
    )
    def test_invalid_input(self, ctx, bob, discussion, entity_type, report_type, reason, error):
        with pytest.raises(error):
            moderation_service.report_content(
                ctx, bob, entity_type, discussion["id"], report_type, reason
            )

    def test_missing_content(self, ctx, bob):
        with pytest.raises(NotFoundError):
            moderation_service.report_content(ctx, bob, "reply", 777, "spam", "x")

    def test_admins_alerted(self, ctx, bob, admin, super_admin, dispatcher, discussion):
        dispatcher.reset_mock()
        moderation_service.report_content(ctx, bob, "discussion", discussion["id"], "spam", "x")
        recipients = {c.args[0] for c in dispatcher.send.call_args_list}
        assert recipients == {admin.id, super_admin.id}
        assert {c.args[4] for c in dispatcher.send.call_args_list} == {"new_report"}

    def test_reporting_admin_not_alerted(self, ctx, admin, super_admin, dispatcher, discussion):
        dispatcher.reset_mock()
        moderation_service.report_content(ctx, admin, "discussion", discussion["id"], "spam", "x")
        assert {c.args[0] for c in dispatcher.send.call_args_list} == {super_admin.id}


class TestListReports:
    def test_admin_lists_with_identities(self, ctx, alice, bob, admin, discussion, page):
        moderation_service.report_content(ctx, bob, "discussion", discussion["id"], "spam", "x")
        result = moderation_service.list_reports(ctx, admin, page)
        (item,) = result["data"]
        assert item["reported_by"]["first_name"] == "Bob"
        assert item["content_creator"]["id"] == alice.id
        assert item["content"]["title"] == "Hot take"
        assert item["content"]["status"] == "reported"

    def test_status_filter(self, ctx, bob, carol, admin, discussion, page):
        first = moderation_service.report_content(ctx, bob, "discussion", discussion["id"], "spam", "x")
        moderation_service.report_content(ctx, carol, "discussion", discussion["id"], "spam", "y")
        moderation_service.review_report(ctx, admin, first["id"], "reviewed")
        reviewed = moderation_service.list_reports(ctx, admin, page, status="reviewed")
        assert [r["id"] for r in reviewed["data"]] == [first["id"]]

    def test_unknown_status_filter(self, ctx, admin, page):
        with pytest.raises(ValidationError):
            moderation_service.list_reports(ctx, admin, page, status="lost")

    def test_members_denied(self, ctx, bob, instructor, page):
        with pytest.raises(ForbiddenError):
            moderation_service.list_reports(ctx, bob, page)
        with pytest.raises(ForbiddenError):
            moderation_service.list_reports(ctx, instructor, page)


class TestReviewReport:
    def test_resolving_last_report_restores_content(self, ctx, bob, carol, admin, discussion):
        r1 = moderation_service.report_content(ctx, bob, "discussion", discussion["id"], "spam", "x")
        r2 = moderation_service.report_content(ctx, carol, "discussion", discussion["id"], "spam", "y")

        first = moderation_service.review_report(ctx, admin, r1["id"], "resolved", admin_notes="ok")
        assert first["content_restored"] is False
        assert first["admin_notes"] == "ok"
        assert _status(ctx, Discussion, discussion["id"]) == "reported"

        second = moderation_service.review_report(ctx, admin, r2["id"], "resolved")
        assert second["content_restored"] is True
        assert _status(ctx, Discussion, discussion["id"]) == "active"

    def test_reviewed_keeps_content_hidden(self, ctx, bob, admin, discussion):
        report = moderation_service.report_content(ctx, bob, "discussion", discussion["id"], "spam", "x")
        result = moderation_service.review_report(ctx, admin, report["id"], "reviewed")
        assert result["status"] == "reviewed"
        assert result["resolved_at"] is None
        assert _status(ctx, Discussion, discussion["id"]) == "reported"

    def test_resolved_is_final(self, ctx, bob, admin, discussion):
        report = moderation_service.report_content(ctx, bob, "discussion", discussion["id"], "spam", "x")
        moderation_service.review_report(ctx, admin, report["id"], "resolved")
        with pytest.raises(ConflictError):
            moderation_service.review_report(ctx, admin, report["id"], "reviewed")

    def test_invalid_target_status(self, ctx, admin):
        with pytest.raises(ValidationError):
            moderation_service.review_report(ctx, admin, 1, "pending")

    def test_unknown_report(self, ctx, admin):
        with pytest.raises(NotFoundError):
            moderation_service.review_report(ctx, admin, 999, "resolved")

    def test_non_admin_denied(self, ctx, bob, instructor, discussion):
        report = moderation_service.report_content(ctx, bob, "discussion", discussion["id"], "spam", "x")
        with pytest.raises(ForbiddenError):
            moderation_service.review_report(ctx, instructor, report["id"], "resolved")
