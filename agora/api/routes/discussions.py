"""
agora.api.routes.discussions — Discussion endpoints
====================================================
"""

from __future__ import annotations

from datetime import datetime
from typing import Annotated

from fastapi import APIRouter, Query, status
from pydantic import BaseModel, Field

from agora.api.deps import ActorDep, PageDep, TenantDep
from agora.constants import SORT_LATEST
from agora.services import (
    discussion_service,
    engagement_service,
    query_service,
    reply_service,
)

router = APIRouter(prefix="/discussions", tags=["discussions"])


# ---------------------------------------------------------------------------
# Pydantic schemas
# ---------------------------------------------------------------------------
class DiscussionCreate(BaseModel):
    title: str = Field(min_length=1, max_length=300)
    body: str = Field(min_length=1)
    type: str = "discussion"
    tags: list[str] = Field(default_factory=list)
    meeting_link: str | None = None
    meeting_platform: str | None = None
    meeting_scheduled_at: datetime | None = None
    meeting_duration_minutes: int | None = None


class DiscussionUpdate(BaseModel):
    title: str | None = Field(default=None, max_length=300)
    body: str | None = None
    type: str | None = None
    tags: list[str] | None = None
    meeting_link: str | None = None
    meeting_platform: str | None = None
    meeting_scheduled_at: datetime | None = None
    meeting_duration_minutes: int | None = None


class ReplyCreate(BaseModel):
    content: str = Field(min_length=1)
    parent_reply_id: int | None = None


# ---------------------------------------------------------------------------
# Collection
# ---------------------------------------------------------------------------
@router.post("", status_code=status.HTTP_201_CREATED)
def create_discussion(body: DiscussionCreate, actor: ActorDep, ctx: TenantDep):
    return discussion_service.create_discussion(ctx, actor, **body.model_dump())


@router.get("")
def list_discussions(
    actor: ActorDep,
    ctx: TenantDep,
    page: PageDep,
    type: str | None = None,
    status_filter: Annotated[str | None, Query(alias="status")] = None,
    tags: Annotated[list[str] | None, Query()] = None,
    author_id: str | None = None,
    search: str | None = None,
    pinned_only: bool = False,
    sort: str = SORT_LATEST,
):
    filters = query_service.DiscussionFilter(
        type=type,
        status=status_filter,
        tags=tags or [],
        author_id=author_id,
        search=search,
        pinned_only=pinned_only,
        sort=sort,
    )
    return query_service.list_discussions(ctx, actor, filters, page)


@router.get("/pinned")
def list_pinned(actor: ActorDep, ctx: TenantDep, page: PageDep):
    """The caller's pinned discussions."""
    return engagement_service.list_pinned_discussions(ctx, actor, page)


# ---------------------------------------------------------------------------
# Single discussion
# ---------------------------------------------------------------------------
@router.get("/{discussion_id}")
def get_discussion(discussion_id: int, actor: ActorDep, ctx: TenantDep):
    return discussion_service.get_discussion(ctx, actor, discussion_id)


@router.patch("/{discussion_id}")
def update_discussion(
    discussion_id: int, body: DiscussionUpdate, actor: ActorDep, ctx: TenantDep
):
    return discussion_service.update_discussion(
        ctx, actor, discussion_id, **body.model_dump(exclude_unset=True)
    )


@router.delete("/{discussion_id}")
def delete_discussion(discussion_id: int, actor: ActorDep, ctx: TenantDep):
    return discussion_service.delete_discussion(ctx, actor, discussion_id)


@router.post("/{discussion_id}/archive")
def archive_discussion(discussion_id: int, actor: ActorDep, ctx: TenantDep):
    return discussion_service.archive_discussion(ctx, actor, discussion_id)


@router.post("/{discussion_id}/pin")
def toggle_pin(discussion_id: int, actor: ActorDep, ctx: TenantDep):
    return engagement_service.toggle_pin(ctx, actor, discussion_id)


@router.get("/{discussion_id}/pin")
def pin_status(discussion_id: int, actor: ActorDep, ctx: TenantDep):
    return engagement_service.pin_status(ctx, actor, discussion_id)


# ---------------------------------------------------------------------------
# Replies under a discussion
# ---------------------------------------------------------------------------
@router.get("/{discussion_id}/replies")
def list_replies(discussion_id: int, actor: ActorDep, ctx: TenantDep, page: PageDep):
    """Top-level replies, oldest first."""
    return reply_service.list_top_level_replies(ctx, actor, discussion_id, page)


@router.post("/{discussion_id}/replies", status_code=status.HTTP_201_CREATED)
def create_reply(discussion_id: int, body: ReplyCreate, actor: ActorDep, ctx: TenantDep):
    return reply_service.create_reply(
        ctx, actor, discussion_id, body.content, parent_reply_id=body.parent_reply_id
    )
