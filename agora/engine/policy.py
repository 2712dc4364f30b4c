"""
agora.engine.policy — Role Gating & Content Rules
==================================================

Pure checks the services call before touching a store.  The role claim is
trusted (the authentication layer verified it); this module only decides
what that role may do.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

from agora.constants import (
    ADMIN_ROLES,
    MAX_TAG_LENGTH,
    MAX_TAGS_PER_DISCUSSION,
    PRIVILEGED_ROLES,
    VISIBLE_DISCUSSION_STATUSES,
)
from agora.database.models import DiscussionStatus, DiscussionType, MeetingPlatform
from agora.engine.events import Actor
from agora.errors import ForbiddenError, ValidationError


def is_admin(role: str) -> bool:
    return role in ADMIN_ROLES


def is_privileged(role: str) -> bool:
    return role in PRIVILEGED_ROLES


def require_admin(actor: Actor) -> None:
    if not is_admin(actor.role):
        raise ForbiddenError("Access denied")


def require_privileged(actor: Actor) -> None:
    if not is_privileged(actor.role):
        raise ForbiddenError("Access denied")


def require_owner_or_admin(actor: Actor, owner_id: str, what: str) -> None:
    """Creator of the content, or an administrator."""
    if actor.id != owner_id and not is_admin(actor.role):
        raise ForbiddenError(f"Only the author or an administrator can modify this {what}")


def visible_statuses(role: str) -> tuple[str, ...]:
    return VISIBLE_DISCUSSION_STATUSES.get(role, (DiscussionStatus.ACTIVE.value,))


def normalize_tags(tags: list[str] | None) -> list[str]:
    """Trim, lower-case and de-duplicate tags, preserving first-seen order."""
    result: list[str] = []
    for raw in tags or []:
        tag = raw.strip().lower()
        if not tag or tag in result:
            continue
        if len(tag) > MAX_TAG_LENGTH:
            raise ValidationError(f"Tags must be at most {MAX_TAG_LENGTH} characters")
        result.append(tag)
    if len(result) > MAX_TAGS_PER_DISCUSSION:
        raise ValidationError(f"A discussion can carry at most {MAX_TAGS_PER_DISCUSSION} tags")
    return result


def meeting_fields(
    actor: Actor,
    discussion_type: str,
    *,
    meeting_link: str | None = None,
    meeting_platform: str | None = None,
    meeting_scheduled_at: datetime | None = None,
    meeting_duration_minutes: int | None = None,
) -> dict[str, Any]:
    """Validate meeting data and return the columns to store.

    Meeting fields are present iff the type is ``meeting``; supplying them
    on another type drops them.  Only privileged roles may create meetings.
    """
    if discussion_type != DiscussionType.MEETING:
        return {
            "meeting_link": None,
            "meeting_platform": None,
            "meeting_scheduled_at": None,
            "meeting_duration_minutes": None,
        }

    if not is_privileged(actor.role):
        raise ForbiddenError("Only instructors and administrators can create meeting discussions")

    if not meeting_link or not meeting_platform or meeting_scheduled_at is None:
        raise ValidationError(
            "Meeting link, platform, and scheduled time are required for meeting discussions"
        )
    try:
        platform = MeetingPlatform(meeting_platform).value
    except ValueError:
        raise ValidationError(f"Unknown meeting platform: {meeting_platform}") from None
    if meeting_duration_minutes is not None and meeting_duration_minutes <= 0:
        raise ValidationError("Meeting duration must be positive")

    return {
        "meeting_link": meeting_link,
        "meeting_platform": platform,
        "meeting_scheduled_at": meeting_scheduled_at,
        "meeting_duration_minutes": meeting_duration_minutes,
    }


def parse_discussion_type(value: str) -> str:
    try:
        return DiscussionType(value).value
    except ValueError:
        raise ValidationError(f"Unknown discussion type: {value}") from None
