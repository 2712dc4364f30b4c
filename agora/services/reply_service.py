"""
agora.services.reply_service — Reply Tree Manager
==================================================

**Why this file exists:**
Replies form a tree per discussion (``parent_reply_id`` → parent,
``NULL`` → top level).  This module owns every write to that tree and the
counters that summarise it:

* ``discussion.reply_count``  — non-deleted replies of the discussion.
* ``reply.sub_reply_count``   — non-deleted *direct* children of the reply.

Deleting a reply deletes its whole subtree.  The subtree is collected
first, in the same transaction, and only then mutated; the cascade is
applied in batches and retried as a unit on transient store failures.
"""

from __future__ import annotations

import logging
from collections import Counter
from collections.abc import Iterator, Sequence

from sqlalchemy import delete, select, update
from sqlalchemy.orm import Session

from agora.config import get_config
from agora.database.engine import get_session, run_in_transaction
from agora.database.models import (
    Attachment,
    AttachmentStatus,
    Discussion,
    DiscussionStatus,
    EntityType,
    Like,
    Mention,
    Reply,
    ReplyStatus,
    utcnow,
)
from agora.database.tenants import TenantContext
from agora.engine import policy
from agora.engine.events import Actor, ForumEvent, RecipientRule, UserRef
from agora.engine.pagination import PageRequest
from agora.errors import NotFoundError, ValidationError, guard_write
from agora.services import counter_service, mention_service, notification_service, query_service

logger = logging.getLogger(__name__)


def _chunks(ids: Sequence[int], size: int) -> Iterator[Sequence[int]]:
    for start in range(0, len(ids), size):
        yield ids[start:start + size]


def _clean_content(content: str | None) -> str:
    content = (content or "").strip()
    if not content:
        raise ValidationError("Reply content is required")
    return content


def _live_reply(session: Session, reply_id: int) -> Reply:
    reply = session.get(Reply, reply_id)
    if reply is None or reply.status == ReplyStatus.DELETED:
        raise NotFoundError("Reply not found")
    return reply


# ---------------------------------------------------------------------------
# Create / read / update
# ---------------------------------------------------------------------------
@guard_write("create reply")
def create_reply(
    ctx: TenantContext,
    actor: Actor,
    discussion_id: int,
    content: str,
    parent_reply_id: int | None = None,
) -> dict:
    """Add a reply (top-level, or under *parent_reply_id*).

    Raises ``NotFoundError`` when the discussion is missing or not active,
    or when the parent is not an active reply of the same discussion.
    """
    content = _clean_content(content)

    with get_session(ctx.store) as session:
        discussion = session.get(Discussion, discussion_id)
        if discussion is None or discussion.status != DiscussionStatus.ACTIVE:
            raise NotFoundError("Discussion not found")

        parent = None
        if parent_reply_id is not None:
            parent = session.get(Reply, parent_reply_id)
            if (
                parent is None
                or parent.discussion_id != discussion_id
                or parent.status != ReplyStatus.ACTIVE
            ):
                raise NotFoundError("Parent reply not found")

        now = utcnow()
        reply = Reply(
            discussion_id=discussion_id,
            parent_reply_id=parent_reply_id,
            content=content,
            created_by=actor.id,
            created_by_role=actor.role,
            created_at=now,
            updated_at=now,
        )
        session.add(reply)
        session.flush()

        outcome = mention_service.apply_mentions(
            session, ctx, actor, content, discussion_id=discussion_id, reply_id=reply.id
        )
        reply.content = outcome.content

        counter_service.increment(session, Discussion, discussion_id, "reply_count")
        session.execute(
            update(Discussion)
            .where(Discussion.id == discussion_id)
            .values(last_reply_at=now)
            .execution_options(synchronize_session=False)
        )
        if parent is not None:
            counter_service.increment(session, Reply, parent.id, "sub_reply_count")
            addressee = UserRef(parent.created_by, parent.created_by_role)
        else:
            addressee = UserRef(discussion.created_by, discussion.created_by_role)
        title = discussion.title

    logger.info(
        "Reply %d created in discussion %d (parent=%s) by %s",
        reply.id, discussion_id, parent_reply_id, actor.id,
    )

    metadata = {
        "discussion_id": discussion_id,
        "reply_id": reply.id,
        "parent_reply_id": parent_reply_id,
        "discussion_title": title,
    }
    if addressee.id != actor.id:
        notification_service.publish(
            ctx, ForumEvent.NEW_REPLY, RecipientRule.single(addressee), reply.content, metadata
        )
    mention_service.notify_new_mentions(ctx, outcome, metadata)

    return query_service.assemble_replies(ctx, actor, [reply])[0]


def get_reply(ctx: TenantContext, actor: Actor, reply_id: int) -> dict:
    with Session(ctx.store) as session:
        reply = _live_reply(session, reply_id)
        query_service.visible_discussion(session, actor, reply.discussion_id)
    return query_service.assemble_replies(ctx, actor, [reply])[0]


def list_top_level_replies(
    ctx: TenantContext, actor: Actor, discussion_id: int, page: PageRequest
) -> dict:
    """Top-level, active replies of a discussion, oldest first."""
    with Session(ctx.store) as session:
        query_service.visible_discussion(session, actor, discussion_id)
    return query_service.list_replies(ctx, actor, page, discussion_id=discussion_id)


def list_sub_replies(
    ctx: TenantContext, actor: Actor, parent_reply_id: int, page: PageRequest
) -> dict:
    """Direct, active children of one reply, oldest first."""
    with Session(ctx.store) as session:
        parent = session.get(Reply, parent_reply_id)
        if parent is None or parent.status != ReplyStatus.ACTIVE:
            raise NotFoundError("Reply not found")
        query_service.visible_discussion(session, actor, parent.discussion_id)
    return query_service.list_replies(ctx, actor, page, parent_reply_id=parent_reply_id)


@guard_write("update reply")
def update_reply(ctx: TenantContext, actor: Actor, reply_id: int, content: str) -> dict:
    """Replace a reply's content and its full mention set.  Counters are untouched."""
    content = _clean_content(content)

    with get_session(ctx.store) as session:
        reply = _live_reply(session, reply_id)
        policy.require_owner_or_admin(actor, reply.created_by, "reply")

        # Mentions belong to the author even when an admin edits
        author = Actor(reply.created_by, reply.created_by_role, ctx.key)
        outcome = mention_service.apply_mentions(
            session, ctx, author, content, discussion_id=reply.discussion_id, reply_id=reply.id
        )
        reply.content = outcome.content
        reply.updated_at = utcnow()
        discussion_id = reply.discussion_id

    logger.info("Reply %d updated by %s", reply_id, actor.id)
    mention_service.notify_new_mentions(
        ctx, outcome, {"discussion_id": discussion_id, "reply_id": reply_id}
    )
    return query_service.assemble_replies(ctx, actor, [reply])[0]


# ---------------------------------------------------------------------------
# Cascading delete
# ---------------------------------------------------------------------------
def collect_subtree(session: Session, root_id: int) -> list[tuple[int, int | None]]:
    """Return ``(id, parent_reply_id)`` for *root_id* and every non-deleted
    descendant, breadth first.

    Iterative, so depth is unbounded; a visited set makes a corrupted
    (cyclic) parent chain terminate instead of looping.
    """
    root_parent = session.scalar(select(Reply.parent_reply_id).where(Reply.id == root_id))
    nodes: list[tuple[int, int | None]] = [(root_id, root_parent)]
    visited = {root_id}
    frontier = [root_id]
    batch = get_config().cascade_batch_size

    while frontier:
        next_frontier: list[int] = []
        for chunk in _chunks(frontier, batch):
            rows = session.execute(
                select(Reply.id, Reply.parent_reply_id).where(
                    Reply.parent_reply_id.in_(chunk),
                    Reply.status != ReplyStatus.DELETED.value,
                )
            ).all()
            for row in rows:
                if row.id in visited:
                    continue
                visited.add(row.id)
                nodes.append((row.id, row.parent_reply_id))
                next_frontier.append(row.id)
        frontier = next_frontier
    return nodes


@guard_write("delete reply")
def delete_reply(ctx: TenantContext, actor: Actor, reply_id: int) -> dict:
    """Soft-delete a reply and its entire subtree.

    Returns ``{"deleted": N, "reply_ids": [...]}``.
    """
    cfg = get_config()

    def _cascade(session: Session) -> tuple[int, list[int]]:
        root = _live_reply(session, reply_id)
        policy.require_owner_or_admin(actor, root.created_by, "reply")
        discussion_id = root.discussion_id

        nodes = collect_subtree(session, reply_id)
        ids = [node_id for node_id, _ in nodes]
        now = utcnow()

        for chunk in _chunks(ids, cfg.cascade_batch_size):
            session.execute(
                update(Reply)
                .where(Reply.id.in_(chunk))
                .values(
                    status=ReplyStatus.DELETED.value,
                    like_count=0,
                    deleted_at=now,
                    deleted_by=actor.id,
                )
                .execution_options(synchronize_session=False)
            )
            session.execute(
                delete(Like)
                .where(Like.entity_type == EntityType.REPLY.value, Like.entity_id.in_(chunk))
                .execution_options(synchronize_session=False)
            )
            session.execute(
                delete(Mention)
                .where(Mention.reply_id.in_(chunk))
                .execution_options(synchronize_session=False)
            )
            session.execute(
                update(Attachment)
                .where(
                    Attachment.reply_id.in_(chunk),
                    Attachment.status == AttachmentStatus.ACTIVE.value,
                )
                .values(status=AttachmentStatus.DELETED.value, deleted_at=now, deleted_by=actor.id)
                .execution_options(synchronize_session=False)
            )

        # Every deleted reply stops counting toward its parent
        per_parent = Counter(parent for _, parent in nodes if parent is not None)
        counter_service.decrement_many(session, Reply, dict(per_parent), "sub_reply_count")
        counter_service.decrement(session, Discussion, discussion_id, "reply_count", len(ids))
        return discussion_id, ids

    discussion_id, ids = run_in_transaction(
        ctx.store,
        _cascade,
        attempts=cfg.cascade_retry_attempts,
        label=f"delete reply {reply_id}",
    )
    logger.info(
        "Reply %d deleted by %s with %d descendants (discussion %d)",
        reply_id, actor.id, len(ids) - 1, discussion_id,
    )
    return {"deleted": len(ids), "reply_ids": ids}
