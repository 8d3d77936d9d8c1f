from __future__ import annotations

import json

import httpx
import pytest

from casevia.services.notifications import ResendNotifier


def notifier(handler, **kwargs) -> ResendNotifier:
    return ResendNotifier(
        kwargs.pop("api_key", "re_test"),
        kwargs.pop("from_email", "hello@casevia.test"),
        app_url="https://app.casevia.test",
        base_url="https://resend.test",
        transport=httpx.MockTransport(handler),
        **kwargs,
    )


@pytest.mark.asyncio
async def test_sends_ready_email_with_case_study_link():
    captured = {}

    def handler(request: httpx.Request) -> httpx.Response:
        captured["url"] = str(request.url)
        captured["auth"] = request.headers["authorization"]
        captured["body"] = json.loads(request.content)
        return httpx.Response(200, json={"id": "email_1"})

    sent = await notifier(handler).send_case_study_ready(
        to="owner@acme.test", project_id="p1", case_study_title="How Acme Won"
    )

    assert sent is True
    assert captured["url"] == "https://resend.test/emails"
    assert captured["auth"] == "Bearer re_test"
    body = captured["body"]
    assert body["to"] == ["owner@acme.test"]
    assert body["subject"] == 'Your case study "How Acme Won" is ready!'
    assert "https://app.casevia.test/dashboard/projects/p1/case-study" in body["text"]
    assert "https://app.casevia.test/dashboard/projects/p1/case-study" in body["html"]


@pytest.mark.asyncio
async def test_unconfigured_notifier_skips_without_request():
    def handler(request: httpx.Request) -> httpx.Response:
        raise AssertionError("no request expected")

    sent = await notifier(handler, api_key="").send_case_study_ready(
        to="owner@acme.test", project_id="p1", case_study_title="T"
    )
    assert sent is False


@pytest.mark.asyncio
async def test_provider_errors_are_swallowed():
    def refuse(request: httpx.Request) -> httpx.Response:
        return httpx.Response(422, json={"message": "invalid from"})

    def unreachable(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("no route", request=request)

    for handler in (refuse, unreachable):
        sent = await notifier(handler).send_case_study_ready(
            to="owner@acme.test", project_id="p1", case_study_title="T"
        )
        assert sent is False
