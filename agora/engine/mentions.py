"""
agora.engine.mentions — Mention Token Extraction & Formatting
==============================================================

Pure functions, no I/O.  A raw mention is ``@`` followed by either an
e-mail address (``@jane.doe@example.org``) or a handle (``@jane.doe``),
and must not be glued to a preceding word character (so a plain e-mail
address in prose is not a mention).

Stored content carries canonical markers instead of raw tokens::

    @[jane.doe@example.org](member:4b3c…-uuid)

Markers are recognised on the way back in, so re-submitting stored
content keeps its mentions and is never double-formatted.
"""

from __future__ import annotations

import re
from collections.abc import Iterable
from dataclasses import dataclass

__all__ = [
    "ResolvedMention",
    "extract_mentions",
    "format_mentions_in_content",
    "is_email_token",
    "plain_text",
]

_EMAIL = r"[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Za-z]{2,}"
_HANDLE = r"[A-Za-z0-9_](?:[A-Za-z0-9._-]*[A-Za-z0-9_])?"

RAW_MENTION_RE = re.compile(rf"(?<![\w@\[])@({_EMAIL}|{_HANDLE})")
MARKER_RE = re.compile(
    r"@\[([^\]\n]+)\]\((member|instructor|admin|super_admin):([0-9A-Za-z-]{1,36})\)"
)


@dataclass(frozen=True, slots=True)
class ResolvedMention:
    """A token that resolved to a concrete account."""

    token: str
    user_id: str
    role: str

    @property
    def mention_text(self) -> str:
        return f"@{self.token}"

    @property
    def marker(self) -> str:
        return f"@[{self.token}]({self.role}:{self.user_id})"


def is_email_token(token: str) -> bool:
    return "@" in token


def extract_mentions(text: str | None, limit: int | None = None) -> list[str]:
    """Return mention tokens in order of first appearance.

    Duplicates are dropped case-insensitively (the first spelling wins).
    Tokens inside existing markers are included.  ``limit`` caps the number
    of distinct tokens returned.
    """
    if not text:
        return []

    found: list[tuple[int, str]] = [(m.start(), m.group(1)) for m in RAW_MENTION_RE.finditer(text)]
    found.extend((m.start(), m.group(1)) for m in MARKER_RE.finditer(text))
    found.sort(key=lambda item: item[0])

    tokens: list[str] = []
    seen: set[str] = set()
    for _, token in found:
        key = token.lower()
        if key in seen:
            continue
        seen.add(key)
        tokens.append(token)
        if limit is not None and len(tokens) >= limit:
            break
    return tokens


def format_mentions_in_content(text: str, resolved: Iterable[ResolvedMention]) -> str:
    """Rewrite raw tokens that resolved into canonical markers.

    Unresolved tokens and existing markers are left untouched.
    """
    by_token = {mention.token.lower(): mention for mention in resolved}
    if not text or not by_token:
        return text

    def _replace(match: re.Match[str]) -> str:
        mention = by_token.get(match.group(1).lower())
        return mention.marker if mention else match.group(0)

    return RAW_MENTION_RE.sub(_replace, text)


def plain_text(text: str) -> str:
    """Collapse markers back to ``@token`` (notification previews)."""
    return MARKER_RE.sub(lambda m: f"@{m.group(1)}", text or "")
