"""
agora.services.query_service — Discussion Query Engine & View Assembler
========================================================================

**Why this file exists:**
Listings must be cheap no matter how busy a tenant is.  The rule every
function here follows:

    1. Build one filtered ``SELECT`` and use it twice, once for
       ``COUNT(*)`` and once for the page (``OFFSET``/``LIMIT`` in SQL).
    2. Close the session.
    3. Assemble only the rows of that page: one batched query each for the
       actor's pins, likes and views, per-discussion unread reply counts,
       attachments, and one ``resolve_many`` for creator identities.

Nothing in this module writes.
"""

from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass, field
from datetime import UTC, datetime

from sqlalchemy import Select, and_, func, or_, select
from sqlalchemy.orm import Session

from agora.constants import (
    SORT_LATEST,
    SORT_MOST_LIKED,
    SORT_MOST_REPLIES,
    SORT_OLDEST,
    SORT_OPTIONS,
    SORT_RECENT_ACTIVITY,
)
from agora.database.models import (
    Attachment,
    AttachmentStatus,
    Discussion,
    DiscussionStatus,
    DiscussionTag,
    DiscussionType,
    EntityType,
    Like,
    Pin,
    Reply,
    ReplyStatus,
    View,
)
from agora.database.tenants import TenantContext
from agora.engine import policy
from agora.engine.events import Actor, UserRef
from agora.engine.pagination import PageRequest, page_result
from agora.errors import NotFoundError, ValidationError
from agora.services import identity_service


@dataclass(slots=True)
class DiscussionFilter:
    """Listing filters; every field is optional."""

    type: str | None = None
    status: str | None = None
    tags: list[str] = field(default_factory=list)
    author_id: str | None = None
    search: str | None = None
    pinned_only: bool = False
    sort: str = SORT_LATEST


# ---------------------------------------------------------------------------
# Timestamp helpers
# ---------------------------------------------------------------------------
def normalize_dt(dt: datetime | None) -> datetime | None:
    """SQLite hands back naive datetimes; treat them as UTC."""
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=UTC)
    return dt


def is_newer(content_ts: datetime | None, viewed_at: datetime | None) -> bool:
    """Unread test: never viewed, or created strictly after the last view."""
    if viewed_at is None:
        return True
    if content_ts is None:
        return False
    return normalize_dt(content_ts) > normalize_dt(viewed_at)


# ---------------------------------------------------------------------------
# Visibility & filtering
# ---------------------------------------------------------------------------
def visible_statuses_for(actor: Actor, status: str | None = None) -> tuple[str, ...]:
    """Statuses *actor* may list, optionally narrowed to *status*.

    A status outside the role's visible set narrows to nothing.
    """
    allowed = policy.visible_statuses(actor.role)
    if status is None:
        return allowed
    return tuple(s for s in allowed if s == status)


def visible_discussion(session: Session, actor: Actor, discussion_id: int) -> Discussion:
    """Load one discussion the actor may see, or raise ``NotFoundError``.

    The creator always sees their own non-deleted discussion, even after it
    was reported or archived.
    """
    discussion = session.get(Discussion, discussion_id)
    if discussion is None or discussion.status == DiscussionStatus.DELETED:
        raise NotFoundError("Discussion not found")
    if discussion.created_by != actor.id and discussion.status not in policy.visible_statuses(
        actor.role
    ):
        raise NotFoundError("Discussion not found")
    return discussion


def _filtered(actor: Actor, filters: DiscussionFilter) -> Select:
    query = select(Discussion).where(
        Discussion.status.in_(visible_statuses_for(actor, filters.status))
    )
    if filters.type:
        try:
            query = query.where(Discussion.type == DiscussionType(filters.type).value)
        except ValueError:
            raise ValidationError(f"Unknown discussion type: {filters.type}") from None
    if filters.author_id:
        query = query.where(Discussion.created_by == filters.author_id)
    if filters.search and filters.search.strip():
        pattern = f"%{filters.search.strip().lower()}%"
        query = query.where(
            or_(func.lower(Discussion.title).like(pattern), func.lower(Discussion.body).like(pattern))
        )
    tags = policy.normalize_tags(filters.tags)
    if tags:
        query = query.where(
            Discussion.id.in_(select(DiscussionTag.discussion_id).where(DiscussionTag.tag.in_(tags)))
        )
    if filters.pinned_only:
        query = query.where(
            Discussion.id.in_(select(Pin.discussion_id).where(Pin.pinned_by == actor.id))
        )
    return query


def _ordered(query: Select, sort: str) -> Select:
    if sort not in SORT_OPTIONS:
        raise ValidationError(f"Unknown sort: {sort}")
    if sort == SORT_OLDEST:
        return query.order_by(Discussion.created_at.asc(), Discussion.id.asc())
    if sort == SORT_MOST_LIKED:
        return query.order_by(Discussion.like_count.desc(), Discussion.created_at.desc())
    if sort == SORT_MOST_REPLIES:
        return query.order_by(Discussion.reply_count.desc(), Discussion.created_at.desc())
    if sort == SORT_RECENT_ACTIVITY:
        return query.order_by(
            func.coalesce(Discussion.last_reply_at, Discussion.created_at).desc(),
            Discussion.id.desc(),
        )
    return query.order_by(Discussion.created_at.desc(), Discussion.id.desc())


# ---------------------------------------------------------------------------
# Public read API
# ---------------------------------------------------------------------------
def list_discussions(
    ctx: TenantContext,
    actor: Actor,
    filters: DiscussionFilter,
    page: PageRequest,
) -> dict:
    query = _filtered(actor, filters)
    with Session(ctx.store) as session:
        total = session.scalar(select(func.count()).select_from(query.subquery())) or 0
        rows = list(
            session.scalars(_ordered(query, filters.sort).offset(page.offset).limit(page.limit)).all()
        )
    return page_result(assemble_discussions(ctx, actor, rows), total, page)


def get_discussion_view(ctx: TenantContext, actor: Actor, discussion_id: int) -> dict:
    with Session(ctx.store) as session:
        discussion = visible_discussion(session, actor, discussion_id)
    return assemble_discussions(ctx, actor, [discussion])[0]


def list_replies(
    ctx: TenantContext,
    actor: Actor,
    page: PageRequest,
    *,
    discussion_id: int | None = None,
    parent_reply_id: int | None = None,
) -> dict:
    """Active replies, oldest first.

    With *parent_reply_id* the direct children of that reply; otherwise the
    top-level replies of *discussion_id*.
    """
    query = select(Reply).where(Reply.status == ReplyStatus.ACTIVE.value)
    if parent_reply_id is not None:
        query = query.where(Reply.parent_reply_id == parent_reply_id)
    else:
        query = query.where(Reply.discussion_id == discussion_id, Reply.parent_reply_id.is_(None))

    with Session(ctx.store) as session:
        total = session.scalar(select(func.count()).select_from(query.subquery())) or 0
        rows = list(
            session.scalars(
                query.order_by(Reply.created_at.asc(), Reply.id.asc())
                .offset(page.offset)
                .limit(page.limit)
            ).all()
        )
    return page_result(assemble_replies(ctx, actor, rows), total, page)


# ---------------------------------------------------------------------------
# Assembly
# ---------------------------------------------------------------------------
def _attachments_by_owner(session: Session, discussion_ids: list[int], reply_ids: list[int]):
    clauses = []
    if discussion_ids:
        clauses.append(
            and_(Attachment.discussion_id.in_(discussion_ids), Attachment.reply_id.is_(None))
        )
    if reply_ids:
        clauses.append(Attachment.reply_id.in_(reply_ids))
    grouped: dict[tuple[str, int], list[dict]] = defaultdict(list)
    if not clauses:
        return grouped
    rows = session.scalars(
        select(Attachment)
        .where(Attachment.status == AttachmentStatus.ACTIVE.value, or_(*clauses))
        .order_by(Attachment.created_at.asc(), Attachment.id.asc())
    ).all()
    for row in rows:
        key = (EntityType.REPLY.value, row.reply_id) if row.reply_id else (
            EntityType.DISCUSSION.value, row.discussion_id
        )
        grouped[key].append(attachment_dict(row))
    return grouped


def attachment_dict(row: Attachment) -> dict:
    return {
        "id": row.id,
        "discussion_id": row.discussion_id,
        "reply_id": row.reply_id,
        "entity_type": row.entity_type,
        "original_filename": row.original_filename,
        "file_url": row.file_url,
        "mime_type": row.mime_type,
        "file_size": row.file_size,
        "uploaded_by": row.uploaded_by,
        "uploaded_by_role": row.uploaded_by_role,
        "created_at": row.created_at,
    }


def assemble_discussions(
    ctx: TenantContext, actor: Actor, discussions: list[Discussion]
) -> list[dict]:
    """Decorate a page of discussions with per-actor state and creators."""
    if not discussions:
        return []
    ids = [d.id for d in discussions]

    with Session(ctx.store) as session:
        pinned = set(
            session.scalars(
                select(Pin.discussion_id).where(Pin.pinned_by == actor.id, Pin.discussion_id.in_(ids))
            ).all()
        )
        liked = set(
            session.scalars(
                select(Like.entity_id).where(
                    Like.entity_type == EntityType.DISCUSSION.value,
                    Like.liked_by == actor.id,
                    Like.entity_id.in_(ids),
                )
            ).all()
        )
        views = dict(
            session.execute(
                select(View.discussion_id, View.viewed_at).where(
                    View.user_id == actor.id, View.discussion_id.in_(ids)
                )
            ).all()
        )
        unread_replies = dict(
            session.execute(
                select(Reply.discussion_id, func.count())
                .outerjoin(
                    View,
                    and_(View.discussion_id == Reply.discussion_id, View.user_id == actor.id),
                )
                .where(
                    Reply.discussion_id.in_(ids),
                    Reply.status == ReplyStatus.ACTIVE.value,
                    Reply.created_by != actor.id,
                    or_(View.viewed_at.is_(None), Reply.created_at > View.viewed_at),
                )
                .group_by(Reply.discussion_id)
            ).all()
        )
        attachments = _attachments_by_owner(session, ids, [])

    people = identity_service.resolve_many(
        ctx, [UserRef(d.created_by, d.created_by_role) for d in discussions]
    )

    result = []
    for d in discussions:
        own = d.created_by == actor.id
        item = {
            "id": d.id,
            "title": d.title,
            "body": d.body,
            "type": d.type,
            "tags": d.tags,
            "status": d.status,
            "created_by": identity_service.summary_dict(people, d.created_by, d.created_by_role),
            "created_by_id": d.created_by,
            "created_by_role": d.created_by_role,
            "reply_count": d.reply_count,
            "view_count": d.view_count,
            "like_count": d.like_count,
            "last_reply_at": d.last_reply_at,
            "archived_at": d.archived_at,
            "created_at": d.created_at,
            "updated_at": d.updated_at,
            "is_pinned": d.id in pinned,
            "is_liked": d.id in liked,
            "is_unread": False if own else is_newer(d.created_at, views.get(d.id)),
            "unread_reply_count": unread_replies.get(d.id, 0),
            "last_viewed_at": views.get(d.id),
            "attachments": attachments.get((EntityType.DISCUSSION.value, d.id), []),
        }
        if d.type == DiscussionType.MEETING:
            item["meeting"] = {
                "link": d.meeting_link,
                "platform": d.meeting_platform,
                "scheduled_at": d.meeting_scheduled_at,
                "duration_minutes": d.meeting_duration_minutes,
            }
        result.append(item)
    return result


def assemble_replies(ctx: TenantContext, actor: Actor, replies: list[Reply]) -> list[dict]:
    """Decorate a page of replies with per-actor state and creators."""
    if not replies:
        return []
    ids = [r.id for r in replies]
    discussion_ids = sorted({r.discussion_id for r in replies})

    with Session(ctx.store) as session:
        liked = set(
            session.scalars(
                select(Like.entity_id).where(
                    Like.entity_type == EntityType.REPLY.value,
                    Like.liked_by == actor.id,
                    Like.entity_id.in_(ids),
                )
            ).all()
        )
        views = dict(
            session.execute(
                select(View.discussion_id, View.viewed_at).where(
                    View.user_id == actor.id, View.discussion_id.in_(discussion_ids)
                )
            ).all()
        )
        attachments = _attachments_by_owner(session, [], ids)

    people = identity_service.resolve_many(
        ctx, [UserRef(r.created_by, r.created_by_role) for r in replies]
    )

    return [
        {
            "id": r.id,
            "discussion_id": r.discussion_id,
            "parent_reply_id": r.parent_reply_id,
            "content": r.content,
            "status": r.status,
            "created_by": identity_service.summary_dict(people, r.created_by, r.created_by_role),
            "created_by_id": r.created_by,
            "created_by_role": r.created_by_role,
            "like_count": r.like_count,
            "sub_reply_count": r.sub_reply_count,
            "created_at": r.created_at,
            "updated_at": r.updated_at,
            "is_liked": r.id in liked,
            "is_unread": (
                False if r.created_by == actor.id
                else is_newer(r.created_at, views.get(r.discussion_id))
            ),
            "attachments": attachments.get((EntityType.REPLY.value, r.id), []),
        }
        for r in replies
    ]
