"""
agora.services.engagement_service — Likes, Pins and Read State
===============================================================

**Why this file exists:**
Likes and pins are toggles.  A naive "read, then insert or delete" lets two
concurrent clicks both insert (or both delete) and skew the counter.  Every
toggle here is decided by the database instead:

    1. ``DELETE`` the row.  ``rowcount == 1`` means it existed → now off.
    2. Otherwise ``INSERT`` inside a SAVEPOINT.  An ``IntegrityError`` from the
       unique constraint means a concurrent toggle already inserted it; the
       outcome is "on" and the counter is not touched a second time.

Views are last-write-wins upserts of ``viewed_at``.  Unread counts are one
outer-join query per content kind; nothing is scanned row by row in Python.
"""

from __future__ import annotations

import logging
from datetime import datetime

from sqlalchemy import and_, delete, func, or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from agora.database.engine import get_session
from agora.database.models import (
    Discussion,
    DiscussionStatus,
    EntityType,
    Like,
    Pin,
    Reply,
    ReplyStatus,
    View,
    utcnow,
)
from agora.database.tenants import TenantContext
from agora.engine import policy
from agora.engine.events import Actor, ForumEvent, RecipientRule, UserRef
from agora.engine.pagination import PageRequest, page_result
from agora.errors import NotFoundError, ValidationError, guard_write
from agora.services import counter_service, identity_service, notification_service, query_service

logger = logging.getLogger(__name__)


def _entity_model(entity_type: str) -> type:
    try:
        kind = EntityType(entity_type)
    except ValueError:
        raise ValidationError(f"Unknown entity type: {entity_type}") from None
    return Discussion if kind == EntityType.DISCUSSION else Reply


def load_live_entity(
    session: Session, entity_type: str, entity_id: int, actor: Actor | None = None
):
    """Return the discussion or reply, or raise ``NotFoundError`` if missing or deleted.

    With *actor*, the owning discussion must also be visible to them.
    """
    model = _entity_model(entity_type)
    entity = session.get(model, entity_id)
    if entity is None or entity.status == DiscussionStatus.DELETED:
        raise NotFoundError(f"{model.__name__} not found")
    if actor is not None:
        owner_id = entity.id if model is Discussion else entity.discussion_id
        query_service.visible_discussion(session, actor, owner_id)
    return entity


# ---------------------------------------------------------------------------
# Likes
# ---------------------------------------------------------------------------
@guard_write("toggle like")
def toggle_like(ctx: TenantContext, actor: Actor, entity_type: str, entity_id: int) -> dict:
    """Flip the actor's like on a discussion or reply.

    Returns ``{"liked": bool, "like_count": int}``.
    """
    model = _entity_model(entity_type)
    notify: UserRef | None = None

    with get_session(ctx.store) as session:
        entity = load_live_entity(session, entity_type, entity_id, actor)

        removed = session.execute(
            delete(Like)
            .where(
                Like.entity_type == entity_type,
                Like.entity_id == entity_id,
                Like.liked_by == actor.id,
            )
            .execution_options(synchronize_session=False)
        ).rowcount

        if removed:
            counter_service.decrement(session, model, entity_id, "like_count")
            liked = False
        else:
            liked = True
            try:
                with session.begin_nested():   # SAVEPOINT
                    session.add(Like(
                        entity_type=entity_type,
                        entity_id=entity_id,
                        liked_by=actor.id,
                        liked_by_role=actor.role,
                    ))
                    session.flush()
            except IntegrityError:
                # Concurrent toggle inserted first; the savepoint rolled back
                logger.info("Like already present for %s %s:%d", actor.id, entity_type, entity_id)
            else:
                counter_service.increment(session, model, entity_id, "like_count")
                if entity.created_by != actor.id:
                    notify = UserRef(entity.created_by, entity.created_by_role)

        like_count = counter_service.read(session, model, entity_id, "like_count")
        discussion_id = entity.id if model is Discussion else entity.discussion_id
        preview = entity.title if model is Discussion else entity.content

    logger.info(
        "%s %s %s:%d (count=%d)",
        actor.id, "liked" if liked else "unliked", entity_type, entity_id, like_count,
    )
    if notify is not None:
        notification_service.publish(
            ctx,
            ForumEvent.NEW_LIKE,
            RecipientRule.single(notify),
            preview,
            {"entity_type": entity_type, "entity_id": entity_id, "discussion_id": discussion_id},
        )
    return {"liked": liked, "like_count": like_count}


def like_status(ctx: TenantContext, actor: Actor, entity_type: str, entity_id: int) -> dict:
    model = _entity_model(entity_type)
    with Session(ctx.store) as session:
        load_live_entity(session, entity_type, entity_id, actor)
        liked = session.scalar(
            select(Like.id).where(
                Like.entity_type == entity_type,
                Like.entity_id == entity_id,
                Like.liked_by == actor.id,
            )
        ) is not None
        like_count = counter_service.read(session, model, entity_id, "like_count")
    return {"liked": liked, "like_count": like_count}


def list_likers(
    ctx: TenantContext, actor: Actor, entity_type: str, entity_id: int, page: PageRequest
) -> dict:
    """Accounts that liked an entity, most recent first."""
    query = select(Like).where(Like.entity_type == entity_type, Like.entity_id == entity_id)
    with Session(ctx.store) as session:
        load_live_entity(session, entity_type, entity_id, actor)
        total = session.scalar(select(func.count()).select_from(query.subquery())) or 0
        rows = session.scalars(
            query.order_by(Like.created_at.desc(), Like.id.desc())
            .offset(page.offset)
            .limit(page.limit)
        ).all()

    people = identity_service.resolve_many(
        ctx, [UserRef(r.liked_by, r.liked_by_role) for r in rows]
    )
    data = [
        {
            "user": identity_service.summary_dict(people, r.liked_by, r.liked_by_role),
            "user_id": r.liked_by,
            "role": r.liked_by_role,
            "liked_at": r.created_at,
        }
        for r in rows
    ]
    return page_result(data, total, page)


# ---------------------------------------------------------------------------
# Pins (personal bookmarks: no counter, no notification)
# ---------------------------------------------------------------------------
@guard_write("toggle pin")
def toggle_pin(ctx: TenantContext, actor: Actor, discussion_id: int) -> dict:
    with get_session(ctx.store) as session:
        load_live_entity(session, EntityType.DISCUSSION.value, discussion_id)
        removed = session.execute(
            delete(Pin)
            .where(Pin.discussion_id == discussion_id, Pin.pinned_by == actor.id)
            .execution_options(synchronize_session=False)
        ).rowcount
        if removed:
            pinned = False
        else:
            pinned = True
            try:
                with session.begin_nested():   # SAVEPOINT
                    session.add(Pin(discussion_id=discussion_id, pinned_by=actor.id))
                    session.flush()
            except IntegrityError:
                logger.info("Pin already present for %s on %d", actor.id, discussion_id)

    logger.info("%s %s discussion %d", actor.id, "pinned" if pinned else "unpinned", discussion_id)
    return {"pinned": pinned}


def pin_status(ctx: TenantContext, actor: Actor, discussion_id: int) -> dict:
    with Session(ctx.store) as session:
        load_live_entity(session, EntityType.DISCUSSION.value, discussion_id)
        pinned = session.scalar(
            select(Pin.id).where(Pin.discussion_id == discussion_id, Pin.pinned_by == actor.id)
        ) is not None
    return {"pinned": pinned}


def list_pinned_discussions(ctx: TenantContext, actor: Actor, page: PageRequest) -> dict:
    """The actor's pins, most recently pinned first, limited to what they can see."""
    query = (
        select(Discussion)
        .join(Pin, and_(Pin.discussion_id == Discussion.id, Pin.pinned_by == actor.id))
        .where(Discussion.status.in_(policy.visible_statuses(actor.role)))
    )
    with Session(ctx.store) as session:
        total = session.scalar(select(func.count()).select_from(query.subquery())) or 0
        rows = list(
            session.scalars(
                query.order_by(Pin.created_at.desc(), Pin.id.desc())
                .offset(page.offset)
                .limit(page.limit)
            ).all()
        )
    return page_result(query_service.assemble_discussions(ctx, actor, rows), total, page)


# ---------------------------------------------------------------------------
# Views & unread state
# ---------------------------------------------------------------------------
def upsert_view(
    session: Session, user_id: str, discussion_id: int, viewed_at: datetime | None = None
) -> None:
    """Set ``viewed_at`` for (user, discussion), inserting the row if needed."""
    viewed_at = viewed_at or utcnow()
    stmt = (
        update(View)
        .where(View.user_id == user_id, View.discussion_id == discussion_id)
        .values(viewed_at=viewed_at)
        .execution_options(synchronize_session=False)
    )
    if session.execute(stmt).rowcount:
        return
    try:
        with session.begin_nested():   # SAVEPOINT
            session.add(View(user_id=user_id, discussion_id=discussion_id, viewed_at=viewed_at))
            session.flush()
    except IntegrityError:
        # A concurrent first view won the insert; last write wins
        session.execute(stmt)


@guard_write("mark discussion viewed")
def mark_viewed(ctx: TenantContext, user_id: str, discussion_id: int) -> None:
    with get_session(ctx.store) as session:
        discussion = session.get(Discussion, discussion_id)
        if discussion is None or discussion.status == DiscussionStatus.DELETED:
            raise NotFoundError("Discussion not found")
        upsert_view(session, user_id, discussion_id)


def is_unread(
    ctx: TenantContext, user_id: str, discussion_id: int, content_timestamp: datetime
) -> bool:
    """True iff the user never opened the discussion, or *content_timestamp*
    is strictly after their last view."""
    with Session(ctx.store) as session:
        viewed_at = session.scalar(
            select(View.viewed_at).where(
                View.user_id == user_id, View.discussion_id == discussion_id
            )
        )
    return query_service.is_newer(content_timestamp, viewed_at)


def unread_counts(ctx: TenantContext, actor: Actor) -> dict:
    """Unread discussions and replies across everything the actor can see.

    ``{"discussions": N, "replies": M, "total": N + M}``
    """
    visible = policy.visible_statuses(actor.role)
    view_join = and_(View.discussion_id == Discussion.id, View.user_id == actor.id)

    with Session(ctx.store) as session:
        discussions = session.scalar(
            select(func.count())
            .select_from(Discussion)
            .outerjoin(View, view_join)
            .where(
                Discussion.status.in_(visible),
                Discussion.created_by != actor.id,
                or_(View.viewed_at.is_(None), Discussion.created_at > View.viewed_at),
            )
        ) or 0
        replies = session.scalar(
            select(func.count())
            .select_from(Reply)
            .join(Discussion, Discussion.id == Reply.discussion_id)
            .outerjoin(View, view_join)
            .where(
                Discussion.status.in_(visible),
                Reply.status == ReplyStatus.ACTIVE.value,
                Reply.created_by != actor.id,
                or_(View.viewed_at.is_(None), Reply.created_at > View.viewed_at),
            )
        ) or 0

    return {"discussions": discussions, "replies": replies, "total": discussions + replies}
