"""
agora.api.routes.attachments — Attachment metadata endpoints
=============================================================

The file itself is uploaded to blob storage by the client; these routes
record, list and retire the metadata.
"""

from __future__ import annotations

from fastapi import APIRouter, status
from pydantic import BaseModel, Field

from agora.api.deps import ActorDep, TenantDep
from agora.services import attachment_service

router = APIRouter(prefix="/attachments", tags=["attachments"])


class AttachmentCreate(BaseModel):
    discussion_id: int
    reply_id: int | None = None
    original_filename: str = Field(min_length=1, max_length=255)
    file_url: str = Field(min_length=1, max_length=1000)
    mime_type: str = Field(min_length=1, max_length=100)
    file_size: int = Field(gt=0)


@router.post("", status_code=status.HTTP_201_CREATED)
def add_attachment(body: AttachmentCreate, actor: ActorDep, ctx: TenantDep):
    data = body.model_dump()
    discussion_id = data.pop("discussion_id")
    return attachment_service.add_attachment(ctx, actor, discussion_id, **data)


@router.get("")
def list_attachments(
    discussion_id: int, actor: ActorDep, ctx: TenantDep, reply_id: int | None = None
):
    return {"data": attachment_service.list_attachments(ctx, discussion_id, reply_id)}


@router.delete("/{attachment_id}")
def delete_attachment(attachment_id: int, actor: ActorDep, ctx: TenantDep):
    return attachment_service.delete_attachment(ctx, actor, attachment_id)
