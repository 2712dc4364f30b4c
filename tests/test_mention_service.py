"""
tests/test_mention_service.py — Mention Resolution & Persistence
=================================================================
"""

from __future__ import annotations

from sqlalchemy import select
from sqlalchemy.orm import Session

from agora.database.models import Member, Mention
from agora.services import discussion_service, mention_service, reply_service


def _new_discussion(ctx, actor, body="Opening post"):
    return discussion_service.create_discussion(ctx, actor, title="Week 1", body=body)


def _mentions(ctx, **where) -> list[Mention]:
    with Session(ctx.store) as session:
        query = select(Mention)
        for column, value in where.items():
            query = query.where(getattr(Mention, column) == value)
        return list(session.scalars(query.order_by(Mention.id)).all())


class TestResolveMentions:
    def test_handle_and_email(self, ctx, bob, instructor):
        resolved = mention_service.resolve_mentions(ctx, ["bob", "ivan.teach@acme.test"])
        assert [(m.user_id, m.role) for m in resolved] == [
            (bob.id, "member"),
            (instructor.id, "instructor"),
        ]

    def test_unknown_tokens_dropped(self, ctx):
        assert mention_service.resolve_mentions(ctx, ["nobody", "x@y.test"]) == []

    def test_members_win_over_staff(self, ctx, alice, admin):
        with Session(ctx.store) as session:
            session.add(Member(first_name="Ada", last_name="Member", email="ada.min@student.test"))
            session.commit()
        resolved = mention_service.resolve_mentions(ctx, ["ada.min"])
        assert resolved[0].role == "member"
        assert resolved[0].user_id != admin.id

    def test_other_tenant_staff_not_resolved(self, ctx):
        assert mention_service.resolve_mentions(ctx, ["gus@globex.test", "gus"]) == []

    def test_super_admin_resolves_in_any_tenant(self, ctx, super_admin):
        resolved = mention_service.resolve_mentions(ctx, ["sue.per"])
        assert resolved[0].user_id == super_admin.id

    def test_resolution_is_stable(self, ctx):
        first = mention_service.resolve_mentions(ctx, ["bob", "carol"])
        second = mention_service.resolve_mentions(ctx, ["bob", "carol"])
        assert first == second


class TestMentionPersistence:
    def test_discussion_mentions_stored_and_formatted(self, ctx, alice, bob):
        view = _new_discussion(ctx, alice, body="Hey @bob, thoughts?")
        assert view["body"] == f"Hey @[bob](member:{bob.id}), thoughts?"
        rows = _mentions(ctx, discussion_id=view["id"])
        assert [(r.mentioned_user, r.mentioned_by, r.reply_id) for r in rows] == [
            (bob.id, alice.id, None)
        ]

    def test_mentioned_user_notified_once(self, ctx, alice, bob, dispatcher):
        _new_discussion(ctx, alice, body="@bob @bob @bob")
        mention_calls = [c for c in dispatcher.send.call_args_list if c.args[4] == "new_mention"]
        assert [c.args[0] for c in mention_calls] == [bob.id]

    def test_self_mention_stored_but_not_notified(self, ctx, alice, dispatcher):
        view = _new_discussion(ctx, alice, body="note to @alice")
        assert len(_mentions(ctx, discussion_id=view["id"])) == 1
        assert not [c for c in dispatcher.send.call_args_list if c.args[4] == "new_mention"]

    def test_edit_replaces_mention_set_and_notifies_only_new(self, ctx, alice, bob, carol, dispatcher):
        view = _new_discussion(ctx, alice, body="cc @bob")
        dispatcher.reset_mock()

        discussion_service.update_discussion(ctx, alice, view["id"], body="cc @bob @carol")
        mentioned = {r.mentioned_user for r in _mentions(ctx, discussion_id=view["id"])}
        assert mentioned == {bob.id, carol.id}
        notified = [c.args[0] for c in dispatcher.send.call_args_list if c.args[4] == "new_mention"]
        assert notified == [carol.id]

        discussion_service.update_discussion(ctx, alice, view["id"], body="never mind")
        assert _mentions(ctx, discussion_id=view["id"]) == []

    def test_reply_mentions_scoped_to_reply(self, ctx, alice, bob, carol):
        view = _new_discussion(ctx, alice, body="@bob start")
        reply = reply_service.create_reply(ctx, bob, view["id"], "agreed @carol")
        reply_rows = _mentions(ctx, reply_id=reply["id"])
        assert [r.mentioned_user for r in reply_rows] == [carol.id]
        # The discussion-level set is untouched
        top = [r for r in _mentions(ctx, discussion_id=view["id"]) if r.reply_id is None]
        assert [r.mentioned_user for r in top] == [bob.id]

    def test_resubmitting_stored_content_keeps_mentions(self, ctx, alice, bob):
        view = _new_discussion(ctx, alice, body="hi @bob")
        updated = discussion_service.update_discussion(ctx, alice, view["id"], body=view["body"])
        assert updated["body"] == view["body"]
        assert [r.mentioned_user for r in _mentions(ctx, discussion_id=view["id"])] == [bob.id]

    def test_admin_edit_keeps_author_as_mentioner(self, ctx, alice, admin, carol):
        view = _new_discussion(ctx, alice)
        discussion_service.update_discussion(ctx, admin, view["id"], body="see @carol")
        rows = _mentions(ctx, discussion_id=view["id"])
        assert rows[0].mentioned_by == alice.id


class TestMentionsForUser:
    def test_newest_first_with_titles(self, ctx, alice, bob, carol, page):
        first = _new_discussion(ctx, alice, body="@carol one")
        second = discussion_service.create_discussion(ctx, bob, title="Second", body="@carol two")

        result = mention_service.list_mentions_for_user(ctx, carol, page)
        assert result["pagination"]["total"] == 2
        assert [m["discussion_id"] for m in result["data"]] == [second["id"], first["id"]]
        assert result["data"][0]["discussion_title"] == "Second"
        assert result["data"][0]["mentioned_by"]["first_name"] == "Bob"

    def test_deleted_discussions_hidden(self, ctx, alice, carol, page):
        view = _new_discussion(ctx, alice, body="@carol one")
        discussion_service.delete_discussion(ctx, alice, view["id"])
        assert mention_service.list_mentions_for_user(ctx, carol, page)["data"] == []
