from __future__ import annotations

from datetime import timedelta

import pytest
from helpers import ORG, load_project, make_project

from casevia.core.cache_manager import CacheManager
from casevia.core.errors import NotFoundError
from casevia.db.base import get_session_factory, utcnow
from casevia.db.repositories import (
    CaseStudyRepository,
    PlanLimitsRepository,
    SocialPostRepository,
)
from casevia.services.deletion import DeletionService
from casevia.services.pipeline import MEBIBYTE


class RecordingCache(CacheManager):
    def __init__(self) -> None:
        super().__init__(prefix="test:")
        self.deleted: list[str] = []

    async def delete(self, key: str) -> bool:
        self.deleted.append(key)
        return True


async def seed_usage(session, *, storage_mb: int, case_studies: int):
    limits = await PlanLimitsRepository(session).add(ORG, "free", utcnow() + timedelta(days=30))
    limits.storage_used_mb = storage_mb
    limits.case_studies_used = case_studies
    await session.commit()


async def usage() -> tuple[int, int]:
    async with get_session_factory()() as s:
        limits = await PlanLimitsRepository(s).get(ORG)
        return limits.storage_used_mb, limits.case_studies_used


@pytest.mark.asyncio
async def test_delete_project_removes_children_and_frees_storage(session):
    project_id = (await make_project(session, file_size=5 * MEBIBYTE + 1)).id
    case_studies = CaseStudyRepository(session)
    published = await case_studies.add(
        project_id=project_id, organization_id=ORG, title="A", public_slug="a", published=True
    )
    draft = await case_studies.add(project_id=project_id, organization_id=ORG, title="B")
    await SocialPostRepository(session).add(published.id, "linkedin", "post")
    await session.commit()
    ids = [published.id, draft.id]
    await seed_usage(session, storage_mb=10, case_studies=2)

    cache = RecordingCache()
    await DeletionService(session, cache=cache).delete_project(project_id, ORG)

    assert await load_project(project_id) is None
    async with get_session_factory()() as s:
        assert list(await CaseStudyRepository(s).list_by_project(project_id)) == []
        for case_study_id in ids:
            assert list(await SocialPostRepository(s).list_for_case_study(case_study_id)) == []
    # 5 MiB and one byte occupies six megabytes of quota.
    assert await usage() == (4, 2)
    assert cache.deleted == ["a"]


@pytest.mark.asyncio
async def test_storage_refund_never_goes_negative(session):
    project_id = (await make_project(session, file_size=6 * MEBIBYTE)).id
    await seed_usage(session, storage_mb=2, case_studies=0)

    await DeletionService(session, cache=RecordingCache()).delete_project(project_id, ORG)

    assert await usage() == (0, 0)


@pytest.mark.asyncio
async def test_delete_project_of_other_organization_is_not_found(session):
    project_id = (await make_project(session, organization_id="org_other")).id

    with pytest.raises(NotFoundError):
        await DeletionService(session, cache=RecordingCache()).delete_project(project_id, ORG)
    assert await load_project(project_id) is not None


@pytest.mark.asyncio
async def test_delete_case_study_releases_one_case_study(session):
    project_id = (await make_project(session)).id
    case_study = await CaseStudyRepository(session).add(
        project_id=project_id, organization_id=ORG, title="A", public_slug="a"
    )
    await session.commit()
    case_study_id = case_study.id
    await seed_usage(session, storage_mb=3, case_studies=0)

    cache = RecordingCache()
    service = DeletionService(session, cache=cache)
    await service.delete_case_study(case_study_id, ORG)

    async with get_session_factory()() as s:
        assert await CaseStudyRepository(s).get(case_study_id) is None
    assert await load_project(project_id) is not None
    # Usage was already zero, storage is untouched.
    assert await usage() == (3, 0)
    assert cache.deleted == ["a"]

    with pytest.raises(NotFoundError):
        await service.delete_case_study(case_study_id, ORG)
