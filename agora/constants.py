"""
agora.constants — Shared Constants
===================================

Single source of truth for role groupings, visibility rules and
notification wording.  Import from here instead of duplicating in services
and routes.
"""

from __future__ import annotations

from agora.database.models import DiscussionStatus, Role

# ---------------------------------------------------------------------------
# Role groupings
# ---------------------------------------------------------------------------
STAFF_ROLES: frozenset[str] = frozenset({Role.INSTRUCTOR, Role.ADMIN, Role.SUPER_ADMIN})
PRIVILEGED_ROLES: frozenset[str] = STAFF_ROLES  # may create meetings, archive
ADMIN_ROLES: frozenset[str] = frozenset({Role.ADMIN, Role.SUPER_ADMIN})

# Discussion statuses each role can list; admins additionally filter freely.
VISIBLE_DISCUSSION_STATUSES: dict[str, tuple[str, ...]] = {
    Role.MEMBER: (DiscussionStatus.ACTIVE.value,),
    Role.INSTRUCTOR: (DiscussionStatus.ACTIVE.value, DiscussionStatus.ARCHIVED.value),
    Role.ADMIN: (
        DiscussionStatus.ACTIVE.value,
        DiscussionStatus.ARCHIVED.value,
        DiscussionStatus.REPORTED.value,
    ),
    Role.SUPER_ADMIN: (
        DiscussionStatus.ACTIVE.value,
        DiscussionStatus.ARCHIVED.value,
        DiscussionStatus.REPORTED.value,
    ),
}

# ---------------------------------------------------------------------------
# Listing sort keys (query_service)
# ---------------------------------------------------------------------------
SORT_LATEST = "latest"
SORT_OLDEST = "oldest"
SORT_MOST_LIKED = "most_liked"
SORT_MOST_REPLIES = "most_replies"
SORT_RECENT_ACTIVITY = "recent_activity"
SORT_OPTIONS: tuple[str, ...] = (
    SORT_LATEST,
    SORT_OLDEST,
    SORT_MOST_LIKED,
    SORT_MOST_REPLIES,
    SORT_RECENT_ACTIVITY,
)

MAX_TAGS_PER_DISCUSSION = 10
MAX_TAG_LENGTH = 50

# ---------------------------------------------------------------------------
# Notification wording, keyed by event type
# ---------------------------------------------------------------------------
NOTIFICATION_TITLES: dict[str, str] = {
    "new_discussion": "New discussion",
    "new_reply": "New reply",
    "new_like": "Someone liked your post",
    "new_mention": "You were mentioned",
    "new_report": "Content reported",
}
