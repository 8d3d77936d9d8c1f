"""Case study endpoints: detail, delete, publish toggle and exports."""
from __future__ import annotations

from datetime import datetime
from typing import Any

from fastapi import APIRouter, Depends, Query, Response
from pydantic import BaseModel, ConfigDict
from sqlalchemy.ext.asyncio import AsyncSession

from casevia.core.errors import NotFoundError
from casevia.db.base import get_session
from casevia.db.models import CaseStudy
from casevia.db.repositories import CaseStudyRepository, SocialPostRepository
from casevia.dependencies import (
    Identity,
    get_deletion_service,
    get_identity,
    get_publishing_service,
)
from casevia.services.deletion import DeletionService
from casevia.services.exports import ExportFormat, render
from casevia.services.limits import PlanLimitsService
from casevia.services.publishing import PublishingService

router = APIRouter(prefix="/case-studies", tags=["case-studies"])


class CaseStudyOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    project_id: str
    title: str
    summary: str | None = None
    client_name: str | None = None
    client_industry: str | None = None
    challenge: str | None = None
    solution: str | None = None
    results: str | None = None
    metrics: list[dict[str, Any]] | None = None
    key_quotes: list[str] | None = None
    key_takeaways: list[str] | None = None
    published: bool = False
    public_slug: str | None = None
    seo_title: str | None = None
    seo_description: str | None = None
    view_count: int = 0
    created_at: datetime | None = None
    updated_at: datetime | None = None


class SocialPostOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    platform: str
    content: str
    status: str


class PublishRequest(BaseModel):
    published: bool


async def _load(session: AsyncSession, case_study_id: str, organization_id: str) -> CaseStudy:
    case_study = await CaseStudyRepository(session).get_for_org(case_study_id, organization_id)
    if case_study is None:
        raise NotFoundError("Case study not found", details={"case_study_id": case_study_id})
    return case_study


async def serialize_with_posts(session: AsyncSession, case_study: CaseStudy) -> dict[str, Any]:
    posts = await SocialPostRepository(session).list_for_case_study(case_study.id)
    return {
        "case_study": CaseStudyOut.model_validate(case_study).model_dump(mode="json"),
        "social_posts": [SocialPostOut.model_validate(p).model_dump(mode="json") for p in posts],
    }


@router.get("/{case_study_id}")
async def get_case_study(
    case_study_id: str,
    identity: Identity = Depends(get_identity),  # noqa: B008
    session: AsyncSession = Depends(get_session),  # noqa: B008
) -> dict[str, Any]:
    case_study = await _load(session, case_study_id, identity.organization_id)
    return {"success": True, **await serialize_with_posts(session, case_study)}


@router.delete("/{case_study_id}")
async def delete_case_study(
    case_study_id: str,
    identity: Identity = Depends(get_identity),  # noqa: B008
    service: DeletionService = Depends(get_deletion_service),  # noqa: B008
) -> dict[str, Any]:
    await service.delete_case_study(case_study_id, identity.organization_id)
    return {"success": True}


@router.post("/{case_study_id}/publish")
async def publish_case_study(
    case_study_id: str,
    body: PublishRequest,
    identity: Identity = Depends(get_identity),  # noqa: B008
    service: PublishingService = Depends(get_publishing_service),  # noqa: B008
) -> dict[str, Any]:
    case_study = await service.set_published(case_study_id, identity.organization_id, body.published)
    return {
        "success": True,
        "published": case_study.published,
        "public_slug": case_study.public_slug,
    }


@router.get("/{case_study_id}/export")
async def export_case_study(
    case_study_id: str,
    format: ExportFormat = Query(ExportFormat.MARKDOWN),  # noqa: B008
    identity: Identity = Depends(get_identity),  # noqa: B008
    session: AsyncSession = Depends(get_session),  # noqa: B008
) -> Response:
    case_study = await _load(session, case_study_id, identity.organization_id)
    plan = await PlanLimitsService(session).plan_for(identity.organization_id)
    content = render(case_study, format, include_branding=plan.id == "free")
    filename = f"{case_study.public_slug or case_study.id}.{format.extension}"
    return Response(
        content=content,
        media_type=format.media_type,
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )
