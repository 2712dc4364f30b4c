"""
tests/test_mentions.py — Mention Token Extraction & Formatting
===============================================================

Pure functions only; resolution against the stores lives in
``test_mention_service.py``.
"""

from __future__ import annotations

import pytest

from agora.engine.mentions import (
    ResolvedMention,
    extract_mentions,
    format_mentions_in_content,
    is_email_token,
    plain_text,
)


class TestExtractMentions:
    def test_empty_text(self):
        assert extract_mentions("") == []
        assert extract_mentions(None) == []

    def test_handles_and_emails_in_order(self):
        text = "Thanks @bob and @carol@acme.test, see also @ivan.teach"
        assert extract_mentions(text) == ["bob", "carol@acme.test", "ivan.teach"]

    def test_duplicates_dropped_case_insensitively(self):
        assert extract_mentions("@Bob hi @bob and @BOB") == ["Bob"]

    def test_plain_email_in_prose_is_not_a_mention(self):
        assert extract_mentions("write to alice@acme.test please") == []

    def test_trailing_punctuation_not_captured(self):
        assert extract_mentions("ping @bob.") == ["bob"]
        assert extract_mentions("(@carol)") == ["carol"]

    def test_existing_markers_are_recognised(self):
        text = "hi @[bob](member:00000000-0000-4000-8000-000000000b0b)"
        assert extract_mentions(text) == ["bob"]

    def test_marker_and_raw_token_for_same_user_counted_once(self):
        text = "@[bob](member:abc) and again @bob"
        assert extract_mentions(text) == ["bob"]

    def test_limit_caps_distinct_tokens(self):
        text = " ".join(f"@user{i}" for i in range(10))
        assert extract_mentions(text, limit=3) == ["user0", "user1", "user2"]


class TestIsEmailToken:
    @pytest.mark.parametrize(
        "token, expected",
        [("bob", False), ("bob@acme.test", True), ("ivan.teach", False)],
    )
    def test_detection(self, token, expected):
        assert is_email_token(token) is expected


class TestFormatMentions:
    def test_resolved_tokens_become_markers(self):
        resolved = [ResolvedMention("bob", "id-b", "member")]
        assert format_mentions_in_content("hi @bob!", resolved) == "hi @[bob](member:id-b)!"

    def test_unresolved_tokens_left_alone(self):
        resolved = [ResolvedMention("bob", "id-b", "member")]
        out = format_mentions_in_content("@bob meet @nobody", resolved)
        assert out == "@[bob](member:id-b) meet @nobody"

    def test_formatting_is_idempotent(self):
        resolved = [ResolvedMention("bob", "id-b", "member")]
        once = format_mentions_in_content("hi @bob", resolved)
        assert format_mentions_in_content(once, resolved) == once

    def test_case_insensitive_match_keeps_original_spelling(self):
        resolved = [ResolvedMention("bob", "id-b", "member")]
        assert format_mentions_in_content("@BOB", resolved) == "@[bob](member:id-b)"

    def test_no_resolved_returns_text_unchanged(self):
        assert format_mentions_in_content("hi @bob", []) == "hi @bob"


class TestPlainText:
    def test_markers_collapse_to_tokens(self):
        assert plain_text("hi @[bob](member:id-b)") == "hi @bob"

    def test_none_is_empty(self):
        assert plain_text(None) == ""
