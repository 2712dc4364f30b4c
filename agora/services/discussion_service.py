"""
agora.services.discussion_service — Discussion Lifecycle
=========================================================

**Why this file exists:**
A discussion moves through a small state machine::

    active ──archive──▶ archived
      │
      ├──report──▶ reported ──last report resolved──▶ active
      │
      └──delete (from any live state)──▶ deleted

Archiving is for privileged roles; deleting is for the creator or an
administrator and takes everything hanging off the discussion with it
(replies, likes, pins, mentions, reports, views, attachments).  The
``reported`` transitions live in :mod:`agora.services.moderation_service`.
"""

from __future__ import annotations

import logging
from datetime import datetime

from sqlalchemy import delete, func, or_, select, update
from sqlalchemy.orm import Session

from agora.config import get_config
from agora.database.engine import get_session, run_in_transaction
from agora.database.models import (
    Attachment,
    AttachmentStatus,
    Discussion,
    DiscussionStatus,
    DiscussionTag,
    EntityType,
    Like,
    Mention,
    Pin,
    Reply,
    ReplyStatus,
    Report,
    View,
    utcnow,
)
from agora.database.tenants import TenantContext
from agora.engine import policy
from agora.engine.events import Actor, ForumEvent, RecipientRule
from agora.errors import ConflictError, NotFoundError, ValidationError, guard_write
from agora.services import (
    counter_service,
    engagement_service,
    mention_service,
    notification_service,
    query_service,
)

logger = logging.getLogger(__name__)


def _required(value: str | None, label: str) -> str:
    value = (value or "").strip()
    if not value:
        raise ValidationError(f"{label} is required")
    return value


def _live_discussion(session: Session, discussion_id: int) -> Discussion:
    discussion = session.get(Discussion, discussion_id)
    if discussion is None or discussion.status == DiscussionStatus.DELETED:
        raise NotFoundError("Discussion not found")
    return discussion


# ---------------------------------------------------------------------------
# Create / read / update
# ---------------------------------------------------------------------------
@guard_write("create discussion")
def create_discussion(
    ctx: TenantContext,
    actor: Actor,
    *,
    title: str,
    body: str,
    type: str = "discussion",
    tags: list[str] | None = None,
    meeting_link: str | None = None,
    meeting_platform: str | None = None,
    meeting_scheduled_at: datetime | None = None,
    meeting_duration_minutes: int | None = None,
) -> dict:
    """Create a discussion and announce it to the rest of the tenant.

    Raises
    ------
    ForbiddenError
        ``type="meeting"`` from a non-privileged role.
    ValidationError
        Empty title/body, unknown type or platform, or a meeting without
        link, platform and scheduled time.
    """
    title = _required(title, "Title")
    body = _required(body, "Body")
    discussion_type = policy.parse_discussion_type(type)
    meeting = policy.meeting_fields(
        actor,
        discussion_type,
        meeting_link=meeting_link,
        meeting_platform=meeting_platform,
        meeting_scheduled_at=meeting_scheduled_at,
        meeting_duration_minutes=meeting_duration_minutes,
    )
    tag_list = policy.normalize_tags(tags)

    with get_session(ctx.store) as session:
        now = utcnow()
        discussion = Discussion(
            title=title,
            body=body,
            type=discussion_type,
            created_by=actor.id,
            created_by_role=actor.role,
            created_at=now,
            updated_at=now,
            **meeting,
        )
        discussion.tag_rows = [DiscussionTag(tag=tag) for tag in tag_list]
        session.add(discussion)
        session.flush()

        outcome = mention_service.apply_mentions(
            session, ctx, actor, body, discussion_id=discussion.id
        )
        discussion.body = outcome.content

    logger.info(
        "Discussion %d (%s) created by %s in %s",
        discussion.id, discussion_type, actor.id, ctx.key,
    )

    metadata = {"discussion_id": discussion.id, "type": discussion_type, "title": title}
    notification_service.publish(
        ctx, ForumEvent.NEW_DISCUSSION, RecipientRule.tenant_except(actor.id), title, metadata
    )
    mention_service.notify_new_mentions(ctx, outcome, metadata)

    return query_service.assemble_discussions(ctx, actor, [discussion])[0]


@guard_write("load discussion")
def get_discussion(ctx: TenantContext, actor: Actor, discussion_id: int) -> dict:
    """Open a discussion: counts the visit and marks it read for *actor*."""
    with get_session(ctx.store) as session:
        query_service.visible_discussion(session, actor, discussion_id)
        counter_service.increment(session, Discussion, discussion_id, "view_count")
        engagement_service.upsert_view(session, actor.id, discussion_id)

    return query_service.get_discussion_view(ctx, actor, discussion_id)


@guard_write("update discussion")
def update_discussion(
    ctx: TenantContext,
    actor: Actor,
    discussion_id: int,
    *,
    title: str | None = None,
    body: str | None = None,
    type: str | None = None,
    tags: list[str] | None = None,
    meeting_link: str | None = None,
    meeting_platform: str | None = None,
    meeting_scheduled_at: datetime | None = None,
    meeting_duration_minutes: int | None = None,
) -> dict:
    """Edit a discussion.  ``None`` leaves a field unchanged.

    A new body replaces the discussion-level mention set; only accounts
    that were not mentioned before are notified.
    """
    outcome = None
    with get_session(ctx.store) as session:
        discussion = _live_discussion(session, discussion_id)
        policy.require_owner_or_admin(actor, discussion.created_by, "discussion")

        discussion_type = policy.parse_discussion_type(type) if type else discussion.type
        meeting = policy.meeting_fields(
            actor,
            discussion_type,
            meeting_link=meeting_link or discussion.meeting_link,
            meeting_platform=meeting_platform or discussion.meeting_platform,
            meeting_scheduled_at=meeting_scheduled_at or discussion.meeting_scheduled_at,
            meeting_duration_minutes=(
                meeting_duration_minutes
                if meeting_duration_minutes is not None
                else discussion.meeting_duration_minutes
            ),
        )
        discussion.type = discussion_type
        for column, value in meeting.items():
            setattr(discussion, column, value)

        if title is not None:
            discussion.title = _required(title, "Title")
        if tags is not None:
            existing = {row.tag: row for row in discussion.tag_rows}
            discussion.tag_rows = [
                existing.get(tag) or DiscussionTag(tag=tag) for tag in policy.normalize_tags(tags)
            ]
        if body is not None:
            author = Actor(discussion.created_by, discussion.created_by_role, ctx.key)
            outcome = mention_service.apply_mentions(
                session, ctx, author, _required(body, "Body"), discussion_id=discussion_id
            )
            discussion.body = outcome.content
        discussion.updated_at = utcnow()

    logger.info("Discussion %d updated by %s", discussion_id, actor.id)
    if outcome is not None:
        mention_service.notify_new_mentions(
            ctx, outcome, {"discussion_id": discussion_id, "title": discussion.title}
        )
    return query_service.assemble_discussions(ctx, actor, [discussion])[0]


# ---------------------------------------------------------------------------
# Lifecycle transitions
# ---------------------------------------------------------------------------
@guard_write("archive discussion")
def archive_discussion(ctx: TenantContext, actor: Actor, discussion_id: int) -> dict:
    """``active → archived``.  Archiving an archived discussion is a no-op."""
    policy.require_privileged(actor)

    with get_session(ctx.store) as session:
        discussion = _live_discussion(session, discussion_id)
        if discussion.status == DiscussionStatus.REPORTED:
            raise ConflictError("Reported discussions must be reviewed before archiving")
        if discussion.status == DiscussionStatus.ACTIVE:
            discussion.status = DiscussionStatus.ARCHIVED.value
            discussion.archived_at = utcnow()
            discussion.archived_by = actor.id
            logger.info("Discussion %d archived by %s", discussion_id, actor.id)

    return query_service.assemble_discussions(ctx, actor, [discussion])[0]


@guard_write("delete discussion")
def delete_discussion(ctx: TenantContext, actor: Actor, discussion_id: int) -> dict:
    """Soft-delete a discussion with every reply and engagement row under it.

    Returns ``{"deleted": True, "replies_deleted": N}``.
    """

    def _cascade(session: Session) -> int:
        discussion = _live_discussion(session, discussion_id)
        policy.require_owner_or_admin(actor, discussion.created_by, "discussion")
        now = utcnow()

        reply_ids = select(Reply.id).where(Reply.discussion_id == discussion_id)
        replies_deleted = session.scalar(
            select(func.count())
            .select_from(Reply)
            .where(
                Reply.discussion_id == discussion_id,
                Reply.status != ReplyStatus.DELETED.value,
            )
        ) or 0

        session.execute(
            update(Reply)
            .where(Reply.discussion_id == discussion_id, Reply.status != ReplyStatus.DELETED.value)
            .values(
                status=ReplyStatus.DELETED.value,
                sub_reply_count=0,
                like_count=0,
                deleted_at=now,
                deleted_by=actor.id,
            )
            .execution_options(synchronize_session=False)
        )
        session.execute(
            delete(Like)
            .where(
                or_(
                    (Like.entity_type == EntityType.DISCUSSION.value)
                    & (Like.entity_id == discussion_id),
                    (Like.entity_type == EntityType.REPLY.value) & Like.entity_id.in_(reply_ids),
                )
            )
            .execution_options(synchronize_session=False)
        )
        session.execute(
            delete(Report)
            .where(
                or_(
                    (Report.entity_type == EntityType.DISCUSSION.value)
                    & (Report.entity_id == discussion_id),
                    (Report.entity_type == EntityType.REPLY.value)
                    & Report.entity_id.in_(reply_ids),
                )
            )
            .execution_options(synchronize_session=False)
        )
        for model in (Pin, Mention, View):
            session.execute(
                delete(model)
                .where(model.discussion_id == discussion_id)
                .execution_options(synchronize_session=False)
            )
        session.execute(
            update(Attachment)
            .where(
                Attachment.discussion_id == discussion_id,
                Attachment.status == AttachmentStatus.ACTIVE.value,
            )
            .values(status=AttachmentStatus.DELETED.value, deleted_at=now, deleted_by=actor.id)
            .execution_options(synchronize_session=False)
        )

        discussion.status = DiscussionStatus.DELETED.value
        discussion.deleted_at = now
        discussion.deleted_by = actor.id
        discussion.reply_count = 0
        discussion.like_count = 0
        return replies_deleted

    replies_deleted = run_in_transaction(
        ctx.store,
        _cascade,
        attempts=get_config().cascade_retry_attempts,
        label=f"delete discussion {discussion_id}",
    )
    logger.info(
        "Discussion %d deleted by %s (%d replies)", discussion_id, actor.id, replies_deleted
    )
    return {"deleted": True, "replies_deleted": replies_deleted}
