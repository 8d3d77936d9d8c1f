"""API tests for case study detail, deletion, publishing, public pages and exports."""
from __future__ import annotations

from datetime import timedelta

import pytest
from helpers import AUTH_HEADERS, ORG, make_project
from httpx import ASGITransport, AsyncClient

from casevia import create_app
from casevia.core.cache_manager import CacheManager
from casevia.db.base import get_session_factory, utcnow
from casevia.db.repositories import CaseStudyRepository, PlanLimitsRepository, SocialPostRepository
from casevia.routers import public as public_router
from casevia.services import deletion


def make_client() -> AsyncClient:
    return AsyncClient(transport=ASGITransport(app=create_app()), base_url="http://test")


async def seed_case_study(session, *, org: str = ORG):
    project = await make_project(session, organization_id=org)
    case_study = await CaseStudyRepository(session).add(
        project_id=project.id,
        organization_id=org,
        title="How Acme Cut Tickets",
        summary="Acme & friends automated triage.",
        client_name="Acme Corp",
        challenge="Too many tickets.",
        solution="Automated triage.",
        results="Tickets dropped.",
        metrics=[{"metric": "60% fewer tickets", "quote": "Sixty percent!"}],
        key_quotes=["It changed how we work."],
        key_takeaways=["Automate the boring parts."],
    )
    await SocialPostRepository(session).add(case_study.id, "linkedin", "We helped Acme.")
    await session.commit()
    return case_study


async def view_count(case_study_id: str) -> int:
    async with get_session_factory()() as s:
        return (await CaseStudyRepository(s).get(case_study_id)).view_count


@pytest.mark.asyncio
async def test_get_case_study_with_posts(session):
    cs = await seed_case_study(session)
    async with make_client() as ac:
        resp = await ac.get(f"/api/case-studies/{cs.id}", headers=AUTH_HEADERS)
    assert resp.status_code == 200
    body = resp.json()
    assert body["case_study"]["title"] == "How Acme Cut Tickets"
    assert body["case_study"]["published"] is False
    assert [p["platform"] for p in body["social_posts"]] == ["linkedin"]


@pytest.mark.asyncio
async def test_case_study_of_other_organization_is_hidden(session):
    cs = await seed_case_study(session, org="org_other")
    async with make_client() as ac:
        resp = await ac.get(f"/api/case-studies/{cs.id}", headers=AUTH_HEADERS)
    assert resp.status_code == 404


@pytest.mark.asyncio
async def test_publish_then_view_public_page(session):
    cs = await seed_case_study(session)
    async with make_client() as ac:
        resp = await ac.post(
            f"/api/case-studies/{cs.id}/publish", json={"published": True}, headers=AUTH_HEADERS
        )
        assert resp.status_code == 200
        assert resp.json() == {
            "success": True,
            "published": True,
            "public_slug": "how-acme-cut-tickets",
        }

        first = await ac.get("/api/public/how-acme-cut-tickets")
        await ac.get("/api/public/how-acme-cut-tickets")

    assert first.status_code == 200
    assert first.json()["case_study"]["id"] == cs.id
    assert await view_count(cs.id) == 2


@pytest.mark.asyncio
async def test_unpublished_page_is_not_found(session):
    cs = await seed_case_study(session)
    async with make_client() as ac:
        await ac.post(f"/api/case-studies/{cs.id}/publish", json={"published": True}, headers=AUTH_HEADERS)
        await ac.post(f"/api/case-studies/{cs.id}/publish", json={"published": False}, headers=AUTH_HEADERS)
        resp = await ac.get("/api/public/how-acme-cut-tickets")
    assert resp.status_code == 404
    assert resp.json()["error"] == "not_found"


@pytest.mark.asyncio
async def test_export_markdown_carries_branding_on_free_plan(session):
    cs = await seed_case_study(session)
    async with make_client() as ac:
        resp = await ac.get(f"/api/case-studies/{cs.id}/export", headers=AUTH_HEADERS)
    assert resp.status_code == 200
    assert resp.headers["content-type"].startswith("text/markdown")
    assert f'filename="{cs.id}.md"' in resp.headers["content-disposition"]
    assert resp.text.startswith("# How Acme Cut Tickets")
    assert "Generated with Casevia" in resp.text


@pytest.mark.asyncio
async def test_export_html_on_paid_plan(session):
    cs = await seed_case_study(session)
    await PlanLimitsRepository(session).add(ORG, "pro", utcnow() + timedelta(days=30))
    await session.commit()
    async with make_client() as ac:
        resp = await ac.get(
            f"/api/case-studies/{cs.id}/export", params={"format": "html"}, headers=AUTH_HEADERS
        )
    assert resp.status_code == 200
    assert resp.headers["content-type"].startswith("text/html")
    assert "Acme &amp; friends" in resp.text
    assert "Generated with Casevia" not in resp.text


@pytest.mark.asyncio
async def test_export_rejects_unknown_format(session):
    cs = await seed_case_study(session)
    async with make_client() as ac:
        resp = await ac.get(
            f"/api/case-studies/{cs.id}/export", params={"format": "docx"}, headers=AUTH_HEADERS
        )
    assert resp.status_code == 422


class MemoryCache(CacheManager):
    def __init__(self) -> None:
        super().__init__(prefix="test:")
        self.store: dict[str, object] = {}

    async def get(self, key):
        return self.store.get(key)

    async def set(self, key, value, ttl=None):
        self.store[key] = value
        return True

    async def delete(self, key):
        return self.store.pop(key, None) is not None


@pytest.mark.asyncio
async def test_cached_public_page_reports_current_view_count(session, monkeypatch):
    cache = MemoryCache()
    monkeypatch.setattr(public_router, "public_page_cache", cache)
    cs = await seed_case_study(session)

    async with make_client() as ac:
        await ac.post(f"/api/case-studies/{cs.id}/publish", json={"published": True}, headers=AUTH_HEADERS)
        counts = [
            (await ac.get("/api/public/how-acme-cut-tickets")).json()["case_study"]["view_count"]
            for _ in range(3)
        ]

    assert "how-acme-cut-tickets" in cache.store
    assert counts == [1, 2, 3]
    assert await view_count(cs.id) == 3


@pytest.mark.asyncio
async def test_export_pdf(session):
    cs = await seed_case_study(session)
    async with make_client() as ac:
        resp = await ac.get(
            f"/api/case-studies/{cs.id}/export", params={"format": "pdf"}, headers=AUTH_HEADERS
        )
    assert resp.status_code == 200
    assert resp.headers["content-type"] == "application/pdf"
    assert f'filename="{cs.id}.pdf"' in resp.headers["content-disposition"]
    assert resp.content.startswith(b"%PDF")


@pytest.mark.asyncio
async def test_delete_case_study_gives_back_quota(session, monkeypatch):
    cache = MemoryCache()
    monkeypatch.setattr(public_router, "public_page_cache", cache)
    monkeypatch.setattr(deletion, "public_page_cache", cache)
    cs = await seed_case_study(session)
    limits = await PlanLimitsRepository(session).add(ORG, "free", utcnow() + timedelta(days=30))
    limits.case_studies_used = 1
    await session.commit()

    async with make_client() as ac:
        await ac.post(f"/api/case-studies/{cs.id}/publish", json={"published": True}, headers=AUTH_HEADERS)
        await ac.get("/api/public/how-acme-cut-tickets")
        assert "how-acme-cut-tickets" in cache.store

        resp = await ac.delete(f"/api/case-studies/{cs.id}", headers=AUTH_HEADERS)
        assert resp.status_code == 200
        assert resp.json() == {"success": True}
        assert "how-acme-cut-tickets" not in cache.store
        assert (await ac.get(f"/api/case-studies/{cs.id}", headers=AUTH_HEADERS)).status_code == 404
        assert (await ac.get("/api/public/how-acme-cut-tickets")).status_code == 404

    async with get_session_factory()() as s:
        assert (await PlanLimitsRepository(s).get(ORG)).case_studies_used == 0
        assert list(await SocialPostRepository(s).list_for_case_study(cs.id)) == []


@pytest.mark.asyncio
async def test_delete_case_study_of_other_organization_is_not_found(session):
    cs = await seed_case_study(session, org="org_other")
    async with make_client() as ac:
        resp = await ac.delete(f"/api/case-studies/{cs.id}", headers=AUTH_HEADERS)
    assert resp.status_code == 404
    async with get_session_factory()() as s:
        assert await CaseStudyRepository(s).get(cs.id) is not None
