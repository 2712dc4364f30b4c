"""
agora.services.attachment_service — Attachment Metadata
========================================================

Files are uploaded straight to blob storage by the client; Agora only keeps
the record that ties a stored URL to a discussion or reply.  Records are
soft-deleted, both directly and when their owning content is deleted.
"""

from __future__ import annotations

import logging

from sqlalchemy import select
from sqlalchemy.orm import Session

from agora.database.engine import get_session
from agora.database.models import (
    Attachment,
    AttachmentStatus,
    EntityType,
    Reply,
    ReplyStatus,
    utcnow,
)
from agora.database.tenants import TenantContext
from agora.engine import policy
from agora.engine.events import Actor
from agora.errors import NotFoundError, ValidationError, guard_write
from agora.services.query_service import attachment_dict, visible_discussion

logger = logging.getLogger(__name__)

MAX_ATTACHMENT_SIZE = 25 * 1024 * 1024  # 25 MB


def _validate(original_filename: str, file_url: str, mime_type: str, file_size: int) -> None:
    if not (original_filename or "").strip():
        raise ValidationError("Original filename is required")
    if not (file_url or "").strip():
        raise ValidationError("File URL is required")
    if not (mime_type or "").strip():
        raise ValidationError("MIME type is required")
    if file_size is None or file_size <= 0:
        raise ValidationError("File size must be positive")
    if file_size > MAX_ATTACHMENT_SIZE:
        raise ValidationError(
            f"File too large: {file_size} bytes (max {MAX_ATTACHMENT_SIZE // 1024 // 1024}MB)"
        )


@guard_write("add attachment")
def add_attachment(
    ctx: TenantContext,
    actor: Actor,
    discussion_id: int,
    *,
    original_filename: str,
    file_url: str,
    mime_type: str,
    file_size: int,
    reply_id: int | None = None,
) -> dict:
    """Record an uploaded file against a discussion, or one of its replies."""
    _validate(original_filename, file_url, mime_type, file_size)

    with get_session(ctx.store) as session:
        visible_discussion(session, actor, discussion_id)
        if reply_id is not None:
            reply = session.get(Reply, reply_id)
            if reply is None or reply.discussion_id != discussion_id or (
                reply.status == ReplyStatus.DELETED
            ):
                raise NotFoundError("Reply not found")

        attachment = Attachment(
            discussion_id=discussion_id,
            reply_id=reply_id,
            entity_type=(
                EntityType.REPLY.value if reply_id is not None else EntityType.DISCUSSION.value
            ),
            original_filename=original_filename.strip(),
            file_url=file_url.strip(),
            mime_type=mime_type.strip(),
            file_size=file_size,
            uploaded_by=actor.id,
            uploaded_by_role=actor.role,
            created_at=utcnow(),
        )
        session.add(attachment)
        session.flush()

    logger.info(
        "Attachment %d (%s, %d bytes) added to discussion %d reply %s by %s",
        attachment.id, mime_type, file_size, discussion_id, reply_id, actor.id,
    )
    return attachment_dict(attachment)


def list_attachments(
    ctx: TenantContext, discussion_id: int, reply_id: int | None = None
) -> list[dict]:
    """Active attachments of a discussion (``reply_id=None``) or one reply."""
    query = select(Attachment).where(
        Attachment.discussion_id == discussion_id,
        Attachment.status == AttachmentStatus.ACTIVE.value,
    )
    if reply_id is None:
        query = query.where(Attachment.reply_id.is_(None))
    else:
        query = query.where(Attachment.reply_id == reply_id)

    with Session(ctx.store) as session:
        rows = session.scalars(query.order_by(Attachment.created_at, Attachment.id)).all()
        return [attachment_dict(row) for row in rows]


@guard_write("delete attachment")
def delete_attachment(ctx: TenantContext, actor: Actor, attachment_id: int) -> dict:
    with get_session(ctx.store) as session:
        attachment = session.get(Attachment, attachment_id)
        if attachment is None or attachment.status == AttachmentStatus.DELETED:
            raise NotFoundError("Attachment not found")
        policy.require_owner_or_admin(actor, attachment.uploaded_by, "attachment")
        attachment.status = AttachmentStatus.DELETED.value
        attachment.deleted_at = utcnow()
        attachment.deleted_by = actor.id

    logger.info("Attachment %d deleted by %s", attachment_id, actor.id)
    return {"deleted": True, "id": attachment_id}
