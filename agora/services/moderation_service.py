"""
agora.services.moderation_service — Reports & Review
=====================================================

Any account may report a discussion or reply.  A report flips the content
to ``reported`` (hiding it from members) and alerts every administrator.
Administrators then move the report ``pending → reviewed → resolved``;
once the last open report on a piece of content is resolved, the content
returns to ``active``.

One reporter may hold at most one *open* report per entity.  The service
checks first; the partial unique index ``ux_reports_open_per_reporter``
catches the race between two concurrent submissions.
"""

from __future__ import annotations

import logging

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from agora.database.engine import get_session
from agora.database.models import (
    OPEN_REPORT_STATUSES,
    Discussion,
    DiscussionStatus,
    EntityType,
    Reply,
    ReplyStatus,
    Report,
    ReportStatus,
    ReportType,
    utcnow,
)
from agora.database.tenants import TenantContext
from agora.engine import policy
from agora.engine.events import Actor, ForumEvent, RecipientRule, UserRef
from agora.engine.pagination import PageRequest, page_result
from agora.errors import ConflictError, NotFoundError, ValidationError, guard_write
from agora.services import identity_service, notification_service
from agora.services.engagement_service import load_live_entity

logger = logging.getLogger(__name__)

_REVIEW_TARGETS = frozenset({ReportStatus.REVIEWED.value, ReportStatus.RESOLVED.value})


def _report_dict(
    report: Report, reporter: dict | None, creator: dict | None, content: dict
) -> dict:
    return {
        "id": report.id,
        "entity_type": report.entity_type,
        "entity_id": report.entity_id,
        "report_type": report.report_type,
        "reason": report.reason,
        "status": report.status,
        "reported_by": reporter,
        "reported_by_id": report.reported_by,
        "reported_by_role": report.reported_by_role,
        "content": content,
        "content_creator": creator,
        "reviewed_by": report.reviewed_by,
        "reviewed_at": report.reviewed_at,
        "admin_notes": report.admin_notes,
        "resolved_at": report.resolved_at,
        "created_at": report.created_at,
    }


# ---------------------------------------------------------------------------
# Filing a report
# ---------------------------------------------------------------------------
@guard_write("report content")
def report_content(
    ctx: TenantContext,
    actor: Actor,
    entity_type: str,
    entity_id: int,
    report_type: str,
    reason: str,
) -> dict:
    """File a report and move the content to ``reported``.

    Raises
    ------
    NotFoundError
        The discussion or reply is missing or deleted.
    ConflictError
        The actor already has an open report on this content.
    """
    try:
        report_type = ReportType(report_type).value
    except ValueError:
        raise ValidationError(f"Unknown report type: {report_type}") from None
    reason = (reason or "").strip()
    if not reason:
        raise ValidationError("A reason is required")

    with get_session(ctx.store) as session:
        entity = load_live_entity(session, entity_type, entity_id)

        existing = session.scalar(
            select(Report.id).where(
                Report.entity_type == entity_type,
                Report.entity_id == entity_id,
                Report.reported_by == actor.id,
                Report.status.in_(OPEN_REPORT_STATUSES),
            )
        )
        if existing is not None:
            raise ConflictError("You have already reported this content")

        report = Report(
            entity_type=entity_type,
            entity_id=entity_id,
            report_type=report_type,
            reason=reason,
            reported_by=actor.id,
            reported_by_role=actor.role,
        )
        session.add(report)
        try:
            session.flush()
        except IntegrityError:
            # A concurrent submission tripped the partial unique index
            raise ConflictError("You have already reported this content") from None

        # Archived discussions stay archived; only live content is hidden
        if entity.status == DiscussionStatus.ACTIVE:
            entity.status = (
                DiscussionStatus.REPORTED.value
                if entity_type == EntityType.DISCUSSION
                else ReplyStatus.REPORTED.value
            )
        preview = entity.title if entity_type == EntityType.DISCUSSION else entity.content
        discussion_id = entity.id if entity_type == EntityType.DISCUSSION else entity.discussion_id

    logger.info(
        "Report %d filed on %s:%d by %s (%s)",
        report.id, entity_type, entity_id, actor.id, report_type,
    )
    notification_service.publish(
        ctx,
        ForumEvent.NEW_REPORT,
        RecipientRule.admins(actor.id),
        preview,
        {
            "report_id": report.id,
            "entity_type": entity_type,
            "entity_id": entity_id,
            "discussion_id": discussion_id,
            "report_type": report_type,
        },
    )
    return {
        "id": report.id,
        "entity_type": entity_type,
        "entity_id": entity_id,
        "report_type": report_type,
        "status": report.status,
        "created_at": report.created_at,
    }


# ---------------------------------------------------------------------------
# Admin side
# ---------------------------------------------------------------------------
def _content_of(session: Session, reports: list[Report]) -> dict[tuple[str, int], dict]:
    """Batch-load the reported discussions and replies (deleted ones included)."""
    discussion_ids = [r.entity_id for r in reports if r.entity_type == EntityType.DISCUSSION]
    reply_ids = [r.entity_id for r in reports if r.entity_type == EntityType.REPLY]
    found: dict[tuple[str, int], dict] = {}
    if discussion_ids:
        for d in session.scalars(select(Discussion).where(Discussion.id.in_(discussion_ids))).all():
            found[(EntityType.DISCUSSION.value, d.id)] = {
                "title": d.title,
                "preview": d.body[:200],
                "status": d.status,
                "discussion_id": d.id,
                "created_by": d.created_by,
                "created_by_role": d.created_by_role,
            }
    if reply_ids:
        for r in session.scalars(select(Reply).where(Reply.id.in_(reply_ids))).all():
            found[(EntityType.REPLY.value, r.id)] = {
                "title": None,
                "preview": r.content[:200],
                "status": r.status,
                "discussion_id": r.discussion_id,
                "created_by": r.created_by,
                "created_by_role": r.created_by_role,
            }
    return found


def list_reports(
    ctx: TenantContext,
    actor: Actor,
    page: PageRequest,
    status: str | None = None,
) -> dict:
    """Reports newest first, with reporter and content-creator identities."""
    policy.require_admin(actor)

    query = select(Report)
    if status:
        try:
            query = query.where(Report.status == ReportStatus(status).value)
        except ValueError:
            raise ValidationError(f"Unknown report status: {status}") from None

    with Session(ctx.store) as session:
        total = session.scalar(select(func.count()).select_from(query.subquery())) or 0
        reports = list(
            session.scalars(
                query.order_by(Report.created_at.desc(), Report.id.desc())
                .offset(page.offset)
                .limit(page.limit)
            ).all()
        )
        content = _content_of(session, reports)

    refs: list[UserRef] = [UserRef(r.reported_by, r.reported_by_role) for r in reports]
    refs.extend(UserRef(c["created_by"], c["created_by_role"]) for c in content.values())
    people = identity_service.resolve_many(ctx, refs)

    data = []
    for report in reports:
        item = content.get((report.entity_type, report.entity_id), {})
        data.append(_report_dict(
            report,
            identity_service.summary_dict(people, report.reported_by, report.reported_by_role),
            identity_service.summary_dict(
                people, item.get("created_by"), item.get("created_by_role")
            ),
            {k: v for k, v in item.items() if k not in ("created_by", "created_by_role")},
        ))
    return page_result(data, total, page)


@guard_write("review report")
def review_report(
    ctx: TenantContext,
    actor: Actor,
    report_id: int,
    status: str,
    admin_notes: str | None = None,
) -> dict:
    """Move a report to ``reviewed`` or ``resolved``.

    Resolving the last open report on content that is still ``reported``
    restores it to ``active``.
    """
    policy.require_admin(actor)
    if status not in _REVIEW_TARGETS:
        raise ValidationError("Status must be 'reviewed' or 'resolved'")

    restored = False
    with get_session(ctx.store) as session:
        report = session.get(Report, report_id)
        if report is None:
            raise NotFoundError("Report not found")
        if report.status == ReportStatus.RESOLVED:
            raise ConflictError("Report is already resolved")

        now = utcnow()
        report.status = status
        report.reviewed_by = actor.id
        report.reviewed_at = now
        if admin_notes is not None:
            report.admin_notes = admin_notes
        if status == ReportStatus.RESOLVED:
            report.resolved_at = now
            session.flush()

            still_open = session.scalar(
                select(func.count()).select_from(Report).where(
                    Report.entity_type == report.entity_type,
                    Report.entity_id == report.entity_id,
                    Report.status.in_(OPEN_REPORT_STATUSES),
                )
            )
            model = Discussion if report.entity_type == EntityType.DISCUSSION else Reply
            entity = session.get(model, report.entity_id)
            if not still_open and entity is not None and entity.status == DiscussionStatus.REPORTED:
                entity.status = DiscussionStatus.ACTIVE.value
                restored = True

    logger.info(
        "Report %d → %s by %s%s",
        report_id, status, actor.id, " (content restored)" if restored else "",
    )
    return {
        "id": report.id,
        "status": report.status,
        "reviewed_by": report.reviewed_by,
        "reviewed_at": report.reviewed_at,
        "admin_notes": report.admin_notes,
        "resolved_at": report.resolved_at,
        "content_restored": restored,
    }
