"""
agora.services.mention_service — Mention Resolution & Persistence
==================================================================

Turns the raw ``@token`` strings found by :mod:`agora.engine.mentions`
into accounts, rewrites content with canonical markers, and keeps the
``mentions`` table in step with the content it was extracted from.

Resolution order: tenant members first, then staff of the tenant.  An
e-mail token matches an address exactly (case-insensitive); a handle token
matches the local part of an address.  Ties go to the lowest account id so
the same text always resolves to the same accounts.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass

from sqlalchemy import delete, func, select
from sqlalchemy.orm import Session

from agora.config import get_config
from agora.database.models import Discussion, DiscussionStatus, Mention, Role
from agora.database.tenants import TenantContext
from agora.engine.events import Actor, ForumEvent, RecipientRule, UserRef
from agora.engine.mentions import (
    ResolvedMention,
    extract_mentions,
    format_mentions_in_content,
    is_email_token,
)
from agora.engine.pagination import PageRequest, page_result
from agora.services import identity_service, notification_service

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class MentionOutcome:
    """Result of running the pipeline over one piece of content."""

    content: str
    resolved: list[ResolvedMention]
    newly_mentioned: list[UserRef]


def _local_part(email: str) -> str:
    return email.split("@", 1)[0].lower()


def resolve_mentions(
    ctx: TenantContext,
    tokens: Sequence[str],
    session: Session | None = None,
) -> list[ResolvedMention]:
    """Resolve *tokens* to accounts, preserving token order.

    Tokens that match nobody are dropped.  *session* is an open tenant-store
    session to reuse; one is opened when omitted.
    """
    if not tokens:
        return []
    if session is None:
        with Session(ctx.store) as own:
            return resolve_mentions(ctx, tokens, own)

    emails = [t for t in tokens if is_email_token(t)]
    handles = [t for t in tokens if not is_email_token(t)]
    found: dict[str, tuple[str, str]] = {}

    # Members first; staff only for whatever is still unresolved
    for row in identity_service.find_members_by_email(session, emails):
        found.setdefault(row.email.lower(), (row.id, Role.MEMBER.value))
    for row in identity_service.find_members_by_handle(session, handles):
        found.setdefault(_local_part(row.email), (row.id, Role.MEMBER.value))

    missing_emails = [t for t in emails if t.lower() not in found]
    missing_handles = [t for t in handles if t.lower() not in found]
    for staff in identity_service.find_staff_by_email(ctx, missing_emails):
        found.setdefault(staff.email.lower(), (staff.id, staff.role))
    for staff in identity_service.find_staff_by_handle(ctx, missing_handles):
        found.setdefault(_local_part(staff.email), (staff.id, staff.role))

    resolved: list[ResolvedMention] = []
    for token in tokens:
        hit = found.get(token.lower())
        if hit is not None:
            resolved.append(ResolvedMention(token, hit[0], hit[1]))
    return resolved


def apply_mentions(
    session: Session,
    ctx: TenantContext,
    author: Actor,
    content: str,
    *,
    discussion_id: int,
    reply_id: int | None = None,
) -> MentionOutcome:
    """Extract, resolve and persist the mention set of one content item.

    Any previous mention rows of the item are replaced, so an edit that
    drops a mention also drops its row.  ``newly_mentioned`` lists accounts
    that were not mentioned before this call, excluding the author.
    """
    limit = get_config().max_mentions_per_item
    tokens = extract_mentions(content, limit=limit)
    resolved = resolve_mentions(ctx, tokens, session)

    scope = Mention.reply_id == reply_id if reply_id is not None else Mention.reply_id.is_(None)
    previous = set(
        session.scalars(
            select(Mention.mentioned_user).where(Mention.discussion_id == discussion_id, scope)
        ).all()
    )
    session.execute(delete(Mention).where(Mention.discussion_id == discussion_id, scope))

    seen: set[str] = set()
    fresh: list[UserRef] = []
    for mention in resolved:
        if mention.user_id in seen:
            continue
        seen.add(mention.user_id)
        session.add(Mention(
            discussion_id=discussion_id,
            reply_id=reply_id,
            mentioned_by=author.id,
            mentioned_by_role=author.role,
            mentioned_user=mention.user_id,
            mentioned_user_role=mention.role,
            mention_text=mention.mention_text,
        ))
        if mention.user_id != author.id and mention.user_id not in previous:
            fresh.append(UserRef(mention.user_id, mention.role))

    if resolved or previous:
        logger.info(
            "Mentions for discussion %d reply %s: %d resolved of %d tokens",
            discussion_id, reply_id, len(seen), len(tokens),
        )
    return MentionOutcome(format_mentions_in_content(content, resolved), resolved, fresh)


def list_mentions_for_user(ctx: TenantContext, actor: Actor, page: PageRequest) -> dict:
    """Mentions addressed to *actor*, newest first."""
    visible = (
        select(Mention, Discussion.title)
        .join(Discussion, Discussion.id == Mention.discussion_id)
        .where(
            Mention.mentioned_user == actor.id,
            Discussion.status != DiscussionStatus.DELETED.value,
        )
    )
    with Session(ctx.store) as session:
        total = session.scalar(select(func.count()).select_from(visible.subquery())) or 0
        rows = session.execute(
            visible.order_by(Mention.created_at.desc(), Mention.id.desc())
            .offset(page.offset)
            .limit(page.limit)
        ).all()

    people = identity_service.resolve_many(
        ctx, [UserRef(row.Mention.mentioned_by, row.Mention.mentioned_by_role) for row in rows]
    )
    data = [
        {
            "id": row.Mention.id,
            "discussion_id": row.Mention.discussion_id,
            "discussion_title": row.title,
            "reply_id": row.Mention.reply_id,
            "mention_text": row.Mention.mention_text,
            "mentioned_by": identity_service.summary_dict(
                people, row.Mention.mentioned_by, row.Mention.mentioned_by_role
            ),
            "created_at": row.Mention.created_at,
        }
        for row in rows
    ]
    return page_result(data, total, page)


def notify_new_mentions(ctx: TenantContext, outcome: MentionOutcome, metadata: dict) -> None:
    """Fan out NEW_MENTION to every newly mentioned account.  Call after commit."""
    for ref in outcome.newly_mentioned:
        notification_service.publish(
            ctx, ForumEvent.NEW_MENTION, RecipientRule.single(ref), outcome.content, metadata
        )
