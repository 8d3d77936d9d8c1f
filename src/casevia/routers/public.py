"""Public (unauthenticated) case study pages."""
from __future__ import annotations

import logging
from typing import Any

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from casevia.core.cache_manager import public_page_cache
from casevia.core.errors import NotFoundError
from casevia.db.base import get_session
from casevia.db.repositories import CaseStudyRepository
from casevia.routers.case_studies import serialize_with_posts

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/public", tags=["public"])


@router.get("/{slug}")
async def get_public_case_study(
    slug: str, session: AsyncSession = Depends(get_session)  # noqa: B008
) -> dict[str, Any]:
    repo = CaseStudyRepository(session)

    payload = await public_page_cache.get(slug)
    if payload is None:
        case_study = await repo.get_published_by_slug(slug)
        if case_study is None:
            raise NotFoundError("Case study not found", details={"slug": slug})
        payload = await serialize_with_posts(session, case_study)
        await public_page_cache.set(slug, payload)

    views = await repo.increment_views(payload["case_study"]["id"])
    await session.commit()
    if views is None:
        await public_page_cache.delete(slug)
        raise NotFoundError("Case study not found", details={"slug": slug})

    # The cached copy is shared between views; the count always comes from the row.
    case_study = {**payload["case_study"], "view_count": views}
    return {"success": True, **payload, "case_study": case_study}
