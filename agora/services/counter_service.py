"""
agora.services.counter_service — Counter Ledger
================================================

Cached counters (``reply_count``, ``view_count``, ``like_count``,
``sub_reply_count``) are only ever changed here, with a single
``UPDATE … SET col = col ± n`` evaluated by the database.  Concurrent
increments therefore never lose updates, and decrements are floored at
zero on the server side.

``reconcile_counters`` is the audit job: it recomputes every counter from
live rows and overwrites any drift it finds.
"""

from __future__ import annotations

import logging
from datetime import UTC, datetime

from sqlalchemy import case, func, select, update
from sqlalchemy.orm import Session

from agora.database.engine import get_session
from agora.database.models import (
    Discussion,
    DiscussionStatus,
    EntityType,
    Like,
    Reply,
    ReplyStatus,
)
from agora.database.tenants import TenantContext

logger = logging.getLogger(__name__)

COUNTED_COLUMNS: dict[type, frozenset[str]] = {
    Discussion: frozenset({"reply_count", "view_count", "like_count"}),
    Reply: frozenset({"like_count", "sub_reply_count"}),
}


def _column(model: type, column: str):
    if column not in COUNTED_COLUMNS.get(model, frozenset()):
        raise ValueError(f"{model.__name__}.{column} is not a counter")
    return getattr(model, column)


def increment(session: Session, model: type, entity_id: int, column: str, amount: int = 1) -> None:
    """Add *amount* to one counter, atomically."""
    col = _column(model, column)
    session.execute(
        update(model)
        .where(model.id == entity_id)
        .values({col: col + amount})
        .execution_options(synchronize_session=False)
    )


def decrement(session: Session, model: type, entity_id: int, column: str, amount: int = 1) -> None:
    """Subtract *amount* from one counter, never going below zero."""
    col = _column(model, column)
    session.execute(
        update(model)
        .where(model.id == entity_id)
        .values({col: case((col > amount, col - amount), else_=0)})
        .execution_options(synchronize_session=False)
    )


def decrement_many(session: Session, model: type, amounts: dict[int, int], column: str) -> None:
    """Apply ``{entity_id: amount}`` decrements, one UPDATE per distinct amount."""
    col = _column(model, column)
    by_amount: dict[int, list[int]] = {}
    for entity_id, amount in amounts.items():
        if amount > 0:
            by_amount.setdefault(amount, []).append(entity_id)
    for amount, ids in by_amount.items():
        session.execute(
            update(model)
            .where(model.id.in_(ids))
            .values({col: case((col > amount, col - amount), else_=0)})
            .execution_options(synchronize_session=False)
        )


def read(session: Session, model: type, entity_id: int, column: str) -> int:
    """Current stored value of one counter (0 if the row is gone)."""
    col = _column(model, column)
    return session.scalar(select(col).where(model.id == entity_id)) or 0


# ---------------------------------------------------------------------------
# Reconciliation
# ---------------------------------------------------------------------------
def _like_truth(session: Session, entity_type: str) -> dict[int, int]:
    rows = session.execute(
        select(Like.entity_id, func.count().label("actual"))
        .where(Like.entity_type == entity_type)
        .group_by(Like.entity_id)
    ).all()
    return {row.entity_id: row.actual for row in rows}


def reconcile_counters(ctx: TenantContext) -> dict:
    """Validate cached counters against live rows and fix drift.

    Checks ``reply_count`` and ``like_count`` of every non-deleted
    discussion, and ``like_count`` and ``sub_reply_count`` of every
    non-deleted reply.  ``view_count`` counts visits, not rows, so it has no
    ground truth and is left alone.

    Returns ``{"checked": N, "corrected": M, "corrections": [...]}``.
    """
    corrections: list[dict] = []
    checked = 0

    with get_session(ctx.store) as session:
        reply_truth = dict(
            session.execute(
                select(Reply.discussion_id, func.count())
                .where(Reply.status != ReplyStatus.DELETED.value)
                .group_by(Reply.discussion_id)
            ).all()
        )
        child_truth = dict(
            session.execute(
                select(Reply.parent_reply_id, func.count())
                .where(
                    Reply.parent_reply_id.is_not(None),
                    Reply.status != ReplyStatus.DELETED.value,
                )
                .group_by(Reply.parent_reply_id)
            ).all()
        )
        discussion_likes = _like_truth(session, EntityType.DISCUSSION.value)
        reply_likes = _like_truth(session, EntityType.REPLY.value)

        discussions = session.scalars(
            select(Discussion).where(Discussion.status != DiscussionStatus.DELETED.value)
        ).all()
        for discussion in discussions:
            expected = {
                "reply_count": reply_truth.get(discussion.id, 0),
                "like_count": discussion_likes.get(discussion.id, 0),
            }
            for column, actual in expected.items():
                checked += 1
                stored = getattr(discussion, column)
                if stored != actual:
                    corrections.append({
                        "entity": "discussion",
                        "id": discussion.id,
                        "column": column,
                        "stored": stored,
                        "actual": actual,
                    })
                    session.execute(
                        update(Discussion)
                        .where(Discussion.id == discussion.id)
                        .values({column: actual})
                        .execution_options(synchronize_session=False)
                    )

        replies = session.scalars(
            select(Reply).where(Reply.status != ReplyStatus.DELETED.value)
        ).all()
        for reply in replies:
            expected = {
                "like_count": reply_likes.get(reply.id, 0),
                "sub_reply_count": child_truth.get(reply.id, 0),
            }
            for column, actual in expected.items():
                checked += 1
                stored = getattr(reply, column)
                if stored != actual:
                    corrections.append({
                        "entity": "reply",
                        "id": reply.id,
                        "column": column,
                        "stored": stored,
                        "actual": actual,
                    })
                    session.execute(
                        update(Reply)
                        .where(Reply.id == reply.id)
                        .values({column: actual})
                        .execution_options(synchronize_session=False)
                    )

    if corrections:
        logger.warning(
            "Counter reconciliation [%s]: corrected %d/%d counters: %s",
            ctx.key, len(corrections), checked, corrections,
        )
    else:
        logger.info("Counter reconciliation [%s]: all %d counters match", ctx.key, checked)

    return {
        "checked": checked,
        "corrected": len(corrections),
        "corrections": corrections,
        "timestamp": datetime.now(UTC).isoformat(),
    }
