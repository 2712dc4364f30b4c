"""
agora.api.routes.members — Per-account endpoints
=================================================

Mentions addressed to the caller, unread totals, and the mention
autocomplete list.
"""

from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends, Query

from agora.api.deps import ActorDep, PageDep, TenantDep, get_config
from agora.config import AgoraConfig
from agora.services import engagement_service, identity_service, mention_service

router = APIRouter(tags=["members"])


@router.get("/me/mentions")
def my_mentions(actor: ActorDep, ctx: TenantDep, page: PageDep):
    return mention_service.list_mentions_for_user(ctx, actor, page)


@router.get("/me/unread")
def my_unread_counts(actor: ActorDep, ctx: TenantDep):
    return engagement_service.unread_counts(ctx, actor)


@router.get("/members/mentionable")
def mention_candidates(
    actor: ActorDep,
    ctx: TenantDep,
    search: str | None = None,
    role: str | None = None,
    limit: Annotated[int | None, Query(ge=1)] = None,
    cfg: AgoraConfig = Depends(get_config),
):
    """Accounts the caller can @mention (autocomplete)."""
    limit = min(limit or cfg.mention_candidate_limit, cfg.max_page_size)
    users = identity_service.list_mention_candidates(
        ctx, actor.id, search=search, role=role, limit=limit
    )
    return {"data": [user.to_dict() for user in users]}
