"""Deleting projects and case studies, with the matching usage refunds."""
from __future__ import annotations

import logging
import math

from sqlalchemy.ext.asyncio import AsyncSession

from casevia.core.cache_manager import CacheManager, public_page_cache
from casevia.core.errors import NotFoundError
from casevia.db.repositories import (
    CaseStudyRepository,
    PlanLimitsRepository,
    ProjectRepository,
    SocialPostRepository,
)
from casevia.services.pipeline import MEBIBYTE

logger = logging.getLogger(__name__)


class DeletionService:
    def __init__(self, session: AsyncSession, cache: CacheManager | None = None):
        self.session = session
        self.projects = ProjectRepository(session)
        self.case_studies = CaseStudyRepository(session)
        self.social_posts = SocialPostRepository(session)
        self.limits = PlanLimitsRepository(session)
        self.cache = cache or public_page_cache

    async def delete_project(self, project_id: str, organization_id: str) -> None:
        """Remove a project with its case studies and posts, and give back its storage.

        The monthly case study count is left alone: the analysis already happened.
        """
        project = await self.projects.get_for_org(project_id, organization_id)
        if project is None:
            raise NotFoundError("Project not found", details={"project_id": project_id})
        size_mb = math.ceil((project.file_size or 0) / MEBIBYTE)

        case_studies = await self.case_studies.list_by_project(project_id)
        ids = [c.id for c in case_studies]
        slugs = {c.public_slug for c in case_studies} - {None}

        if ids:
            await self.social_posts.delete_for_case_studies(ids)
            await self.case_studies.delete(ids)
        await self.projects.delete(project_id)
        if size_mb:
            await self.limits.release_storage(organization_id, size_mb)
        await self.session.commit()

        for slug in slugs:
            await self.cache.delete(slug)
        logger.info(f"Deleted project {project_id} ({len(ids)} case studies, {size_mb} MB freed)")

    async def delete_case_study(self, case_study_id: str, organization_id: str) -> None:
        case_study = await self.case_studies.get_for_org(case_study_id, organization_id)
        if case_study is None:
            raise NotFoundError("Case study not found", details={"case_study_id": case_study_id})
        slug = case_study.public_slug

        await self.social_posts.delete_for_case_studies([case_study_id])
        await self.case_studies.delete([case_study_id])
        await self.limits.release_case_study(organization_id)
        await self.session.commit()

        if slug:
            await self.cache.delete(slug)
        logger.info(f"Deleted case study {case_study_id}")
