"""
agora.api.routes.replies — Reply endpoints
===========================================
"""

from __future__ import annotations

from fastapi import APIRouter
from pydantic import BaseModel, Field

from agora.api.deps import ActorDep, PageDep, TenantDep
from agora.services import reply_service

router = APIRouter(prefix="/replies", tags=["replies"])


class ReplyUpdate(BaseModel):
    content: str = Field(min_length=1)


@router.get("/{reply_id}")
def get_reply(reply_id: int, actor: ActorDep, ctx: TenantDep):
    return reply_service.get_reply(ctx, actor, reply_id)


@router.patch("/{reply_id}")
def update_reply(reply_id: int, body: ReplyUpdate, actor: ActorDep, ctx: TenantDep):
    return reply_service.update_reply(ctx, actor, reply_id, body.content)


@router.delete("/{reply_id}")
def delete_reply(reply_id: int, actor: ActorDep, ctx: TenantDep):
    """Delete a reply together with all of its descendants."""
    return reply_service.delete_reply(ctx, actor, reply_id)


@router.get("/{reply_id}/replies")
def list_sub_replies(reply_id: int, actor: ActorDep, ctx: TenantDep, page: PageDep):
    return reply_service.list_sub_replies(ctx, actor, reply_id, page)
