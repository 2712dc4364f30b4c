"""
agora.api.routes.moderation — Report endpoints
===============================================

Filing a report is open to every account; listing and reviewing reports
is for administrators (enforced in the service layer).
"""

from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Query, status
from pydantic import BaseModel, Field

from agora.api.deps import ActorDep, PageDep, TenantDep
from agora.services import moderation_service

router = APIRouter(prefix="/reports", tags=["moderation"])


class ReportCreate(BaseModel):
    entity_type: str
    entity_id: int
    report_type: str
    reason: str = Field(min_length=1, max_length=2000)


class ReportReview(BaseModel):
    status: str
    admin_notes: str | None = None


@router.post("", status_code=status.HTTP_201_CREATED)
def report_content(body: ReportCreate, actor: ActorDep, ctx: TenantDep):
    return moderation_service.report_content(
        ctx, actor, body.entity_type, body.entity_id, body.report_type, body.reason
    )


@router.get("")
def list_reports(
    actor: ActorDep,
    ctx: TenantDep,
    page: PageDep,
    status_filter: Annotated[str | None, Query(alias="status")] = None,
):
    return moderation_service.list_reports(ctx, actor, page, status=status_filter)


@router.patch("/{report_id}")
def review_report(report_id: int, body: ReportReview, actor: ActorDep, ctx: TenantDep):
    return moderation_service.review_report(
        ctx, actor, report_id, body.status, admin_notes=body.admin_notes
    )
