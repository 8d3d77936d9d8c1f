"""Repository implementations using SQLAlchemy async sessions."""
from __future__ import annotations

import uuid
from collections.abc import Iterable, Sequence
from datetime import datetime
from typing import Any

from sqlalchemy import case, delete, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from casevia.pipelines.status import ProjectStatus, sources_for

from .base import utcnow
from .models import CaseStudy, PlanLimits, Project, SocialPost


def new_id() -> str:
    return uuid.uuid4().hex


class ProjectRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    # Status rows change under us (workers, webhooks), so reads always reload.

    async def get(self, project_id: str) -> Project | None:
        result = await self.session.execute(
            select(Project)
            .where(Project.id == project_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def get_for_org(self, project_id: str, organization_id: str) -> Project | None:
        result = await self.session.execute(
            select(Project)
            .where(Project.id == project_id, Project.organization_id == organization_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def add(
        self,
        *,
        organization_id: str,
        user_id: str,
        title: str,
        file_url: str,
        file_name: str,
        file_size: int,
        duration_seconds: int,
        notify_email: str | None = None,
    ) -> Project:
        project = Project(
            id=new_id(),
            organization_id=organization_id,
            user_id=user_id,
            notify_email=notify_email,
            title=title,
            status=ProjectStatus.UPLOADING.value,
            file_url=file_url,
            file_name=file_name,
            file_size=file_size,
            duration_seconds=duration_seconds,
        )
        self.session.add(project)
        await self.session.flush()
        return project

    async def transition(
        self,
        project_id: str,
        target: ProjectStatus,
        *,
        expected: Iterable[ProjectStatus] | None = None,
        current_job_id: str | None = None,
        **fields: Any,
    ) -> bool:
        """Compare-and-set the status; returns False when the row was not in an allowed state.

        ``expected`` narrows the allowed source statuses for callers with a stricter
        precondition than the status machine itself. ``current_job_id`` additionally
        requires the row to still reference that provider job.
        """
        allowed = set(expected) if expected is not None else set(sources_for(target))
        stmt = update(Project).where(
            Project.id == project_id,
            Project.status.in_([s.value for s in allowed]),
        )
        if current_job_id is not None:
            stmt = stmt.where(Project.assembly_ai_id == current_job_id)
        result = await self.session.execute(
            stmt
            .values(status=target.value, updated_at=utcnow(), **fields)
            .execution_options(synchronize_session=False)
        )
        return bool(result.rowcount == 1)

    async def delete(self, project_id: str) -> None:
        await self.session.execute(
            delete(Project)
            .where(Project.id == project_id)
            .execution_options(synchronize_session=False)
        )


class CaseStudyRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def get(self, case_study_id: str) -> CaseStudy | None:
        result = await self.session.execute(select(CaseStudy).where(CaseStudy.id == case_study_id))
        return result.scalar_one_or_none()

    async def get_for_org(self, case_study_id: str, organization_id: str) -> CaseStudy | None:
        result = await self.session.execute(
            select(CaseStudy).where(
                CaseStudy.id == case_study_id, CaseStudy.organization_id == organization_id
            )
        )
        return result.scalar_one_or_none()

    async def list_by_project(self, project_id: str) -> Sequence[CaseStudy]:
        result = await self.session.execute(
            select(CaseStudy).where(CaseStudy.project_id == project_id).order_by(CaseStudy.created_at)
        )
        return list(result.scalars())

    async def add(self, **values: Any) -> CaseStudy:
        case_study = CaseStudy(id=new_id(), **values)
        self.session.add(case_study)
        await self.session.flush()
        return case_study

    async def slug_owner(self, slug: str, *, exclude_id: str | None = None) -> str | None:
        """Id of another case study holding ``slug``, if any."""
        stmt = select(CaseStudy.id).where(CaseStudy.public_slug == slug)
        if exclude_id is not None:
            stmt = stmt.where(CaseStudy.id != exclude_id)
        result = await self.session.execute(stmt.limit(1))
        return result.scalar_one_or_none()

    async def published_slug_taken(self, slug: str, *, exclude_id: str) -> bool:
        result = await self.session.execute(
            select(CaseStudy.id)
            .where(
                CaseStudy.public_slug == slug,
                CaseStudy.published.is_(True),
                CaseStudy.id != exclude_id,
            )
            .limit(1)
        )
        return result.scalar_one_or_none() is not None

    async def set_published(self, case_study_id: str, published: bool, slug: str | None) -> None:
        await self.session.execute(
            update(CaseStudy)
            .where(CaseStudy.id == case_study_id)
            .values(published=published, public_slug=slug, updated_at=utcnow())
            .execution_options(synchronize_session=False)
        )

    async def get_published_by_slug(self, slug: str) -> CaseStudy | None:
        result = await self.session.execute(
            select(CaseStudy)
            .where(CaseStudy.public_slug == slug, CaseStudy.published.is_(True))
            .order_by(CaseStudy.updated_at.desc())
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def increment_views(self, case_study_id: str) -> int | None:
        """Count one view and return the new total, or None if the row is gone."""
        await self.session.execute(
            update(CaseStudy)
            .where(CaseStudy.id == case_study_id)
            .values(view_count=CaseStudy.view_count + 1)
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(
            select(CaseStudy.view_count).where(CaseStudy.id == case_study_id)
        )
        return result.scalar_one_or_none()

    async def delete(self, case_study_ids: Iterable[str]) -> None:
        await self.session.execute(
            delete(CaseStudy)
            .where(CaseStudy.id.in_(list(case_study_ids)))
            .execution_options(synchronize_session=False)
        )


class SocialPostRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def add(self, case_study_id: str, platform: str, content: str) -> SocialPost:
        post = SocialPost(
            id=new_id(),
            case_study_id=case_study_id,
            platform=platform,
            content=content,
            status="draft",
        )
        self.session.add(post)
        await self.session.flush()
        return post

    async def list_for_case_study(self, case_study_id: str) -> Sequence[SocialPost]:
        result = await self.session.execute(
            select(SocialPost)
            .where(SocialPost.case_study_id == case_study_id)
            .order_by(SocialPost.created_at)
        )
        return list(result.scalars())

    async def delete_for_case_studies(self, case_study_ids: Iterable[str]) -> None:
        await self.session.execute(
            delete(SocialPost)
            .where(SocialPost.case_study_id.in_(list(case_study_ids)))
            .execution_options(synchronize_session=False)
        )


class PlanLimitsRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def get(self, organization_id: str) -> PlanLimits | None:
        result = await self.session.execute(
            select(PlanLimits).where(PlanLimits.organization_id == organization_id)
        )
        return result.scalar_one_or_none()

    async def add(self, organization_id: str, plan_id: str, reset_at: datetime) -> PlanLimits:
        limits = PlanLimits(
            organization_id=organization_id,
            plan_id=plan_id,
            case_studies_used=0,
            storage_used_mb=0,
            social_posts_used=0,
            reset_at=reset_at,
        )
        self.session.add(limits)
        await self.session.flush()
        return limits

    async def reset_monthly(self, organization_id: str, next_reset: datetime) -> None:
        await self.session.execute(
            update(PlanLimits)
            .where(PlanLimits.organization_id == organization_id)
            .values(
                case_studies_used=0,
                social_posts_used=0,
                last_reset_at=utcnow(),
                reset_at=next_reset,
                updated_at=utcnow(),
            )
            .execution_options(synchronize_session=False)
        )

    async def increment_usage(self, organization_id: str, file_size_mb: int) -> None:
        await self.session.execute(
            update(PlanLimits)
            .where(PlanLimits.organization_id == organization_id)
            .values(
                case_studies_used=PlanLimits.case_studies_used + 1,
                storage_used_mb=PlanLimits.storage_used_mb + file_size_mb,
                updated_at=utcnow(),
            )
            .execution_options(synchronize_session=False)
        )

    async def release_storage(self, organization_id: str, file_size_mb: int) -> None:
        await self.session.execute(
            update(PlanLimits)
            .where(PlanLimits.organization_id == organization_id)
            .values(
                storage_used_mb=case(
                    (PlanLimits.storage_used_mb > file_size_mb,
                     PlanLimits.storage_used_mb - file_size_mb),
                    else_=0,
                ),
                updated_at=utcnow(),
            )
            .execution_options(synchronize_session=False)
        )

    async def release_case_study(self, organization_id: str) -> None:
        await self.session.execute(
            update(PlanLimits)
            .where(PlanLimits.organization_id == organization_id)
            .values(
                case_studies_used=case(
                    (PlanLimits.case_studies_used > 0, PlanLimits.case_studies_used - 1),
                    else_=0,
                ),
                updated_at=utcnow(),
            )
            .execution_options(synchronize_session=False)
        )
