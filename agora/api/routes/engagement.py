"""
agora.api.routes.engagement — Like endpoints
=============================================

``entity_type`` is ``discussion`` or ``reply``.
"""

from __future__ import annotations

from fastapi import APIRouter

from agora.api.deps import ActorDep, PageDep, TenantDep
from agora.services import engagement_service

router = APIRouter(prefix="/likes", tags=["engagement"])


@router.post("/{entity_type}/{entity_id}")
def toggle_like(entity_type: str, entity_id: int, actor: ActorDep, ctx: TenantDep):
    return engagement_service.toggle_like(ctx, actor, entity_type, entity_id)


@router.get("/{entity_type}/{entity_id}")
def like_status(entity_type: str, entity_id: int, actor: ActorDep, ctx: TenantDep):
    return engagement_service.like_status(ctx, actor, entity_type, entity_id)


@router.get("/{entity_type}/{entity_id}/users")
def list_likers(
    entity_type: str, entity_id: int, actor: ActorDep, ctx: TenantDep, page: PageDep
):
    return engagement_service.list_likers(ctx, actor, entity_type, entity_id, page)
