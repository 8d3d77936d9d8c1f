"""Publishing case studies under a unique public slug."""
from __future__ import annotations

import logging

from sqlalchemy.ext.asyncio import AsyncSession

from casevia.core.cache_manager import CacheManager, public_page_cache
from casevia.core.errors import NotFoundError, SlugConflictError
from casevia.core.settings import get_settings
from casevia.db.models import CaseStudy
from casevia.db.repositories import CaseStudyRepository
from casevia.pipelines.case_study import generate_slug

logger = logging.getLogger(__name__)

DEFAULT_SLUG = "case-study"


async def unique_slug(
    repo: CaseStudyRepository, title: str, case_study_id: str, max_attempts: int
) -> str:
    """Try ``base``, ``base-1``, ``base-2`` ... until no other case study holds it."""
    base = generate_slug(title) or DEFAULT_SLUG
    candidate = base
    for counter in range(1, max_attempts + 1):
        if await repo.slug_owner(candidate, exclude_id=case_study_id) is None:
            return candidate
        candidate = f"{base}-{counter}"
    raise SlugConflictError(
        f"No free slug for {base!r} after {max_attempts} attempts",
        details={"slug": base},
    )


class PublishingService:
    def __init__(
        self,
        session: AsyncSession,
        cache: CacheManager | None = None,
        max_attempts: int | None = None,
    ):
        self.session = session
        self.case_studies = CaseStudyRepository(session)
        self.cache = cache or public_page_cache
        self.max_attempts = max_attempts or get_settings().slug_max_attempts

    async def set_published(
        self, case_study_id: str, organization_id: str, published: bool
    ) -> CaseStudy:
        case_study = await self.case_studies.get_for_org(case_study_id, organization_id)
        if case_study is None:
            raise NotFoundError("Case study not found", details={"case_study_id": case_study_id})

        previous_slug = case_study.public_slug
        slug = previous_slug
        if published and (
            not slug
            or await self.case_studies.published_slug_taken(slug, exclude_id=case_study.id)
        ):
            slug = await unique_slug(
                self.case_studies, case_study.title, case_study.id, self.max_attempts
            )

        await self.case_studies.set_published(case_study.id, published, slug)
        await self.session.commit()
        await self.session.refresh(case_study)

        for stale in {previous_slug, slug} - {None}:
            await self.cache.delete(stale)
        logger.info(
            f"Case study {case_study.id} {'published' if published else 'unpublished'} as {slug}"
        )
        return case_study
