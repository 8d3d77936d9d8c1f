"""Test doubles and builders shared across test modules."""
from __future__ import annotations

import json
from collections.abc import Callable
from typing import Any

import httpx

from casevia.db.base import get_session_factory
from casevia.db.models import Project
from casevia.db.repositories import ProjectRepository
from casevia.pipelines.status import ProjectStatus
from casevia.providers.assemblyai import AssemblyAIClient
from casevia.services.circuit_breaker import CircuitBreakerConfig, ProviderCircuitBreaker

ORG = "org_acme"
USER = "user_1"
AUTH_HEADERS = {"X-Organization-Id": ORG, "X-User-Id": USER}


class RecordingDispatcher:
    """In-memory JobDispatcher that records what would have been queued."""

    def __init__(self) -> None:
        self.transcriptions: list[str] = []
        self.polls: list[tuple[str, str, int, float]] = []
        self.analyses: list[str] = []

    def enqueue_transcription(self, project_id: str) -> None:
        self.transcriptions.append(project_id)

    def schedule_poll(
        self, project_id: str, transcript_id: str, attempt: int, countdown: float
    ) -> None:
        self.polls.append((project_id, transcript_id, attempt, countdown))

    def enqueue_analysis(self, project_id: str) -> None:
        self.analyses.append(project_id)


def fresh_breaker(name: str = "test", threshold: int = 100, timeout: float = 5.0) -> ProviderCircuitBreaker:
    return ProviderCircuitBreaker(
        CircuitBreakerConfig(
            name=name, failure_threshold=threshold, recovery_timeout=60.0, timeout=timeout
        )
    )


def assemblyai_client(handler: Callable[[httpx.Request], httpx.Response]) -> AssemblyAIClient:
    return AssemblyAIClient(
        "test-key",
        "https://assembly.test/v2",
        transport=httpx.MockTransport(handler),
        circuit_breaker=fresh_breaker("assemblyai"),
    )


class StubTranscriber:
    """Transcriber returning canned outcomes, optionally raising."""

    def __init__(self, outcomes=None, error: Exception | None = None, job_id: str = "tr_1"):
        self.outcomes = list(outcomes or [])
        self.error = error
        self.job_id = job_id
        self.submitted: list[dict[str, Any]] = []
        self.uploaded: list[bytes] = []
        self.fetched: list[str] = []

    async def upload(self, data: bytes) -> str:
        if self.error is not None:
            raise self.error
        self.uploaded.append(data)
        return "https://cdn.test/upload/abc"

    async def submit_transcript(self, audio_url, *, webhook_url=None, webhook_secret=None):
        if self.error is not None:
            raise self.error
        self.submitted.append(
            {"audio_url": audio_url, "webhook_url": webhook_url, "webhook_secret": webhook_secret}
        )
        return self.job_id

    async def get_transcript(self, transcript_id):
        self.fetched.append(transcript_id)
        if self.error is not None:
            raise self.error
        return self.outcomes.pop(0)


class FakeLM:
    """Stands in for the circuit-breaker-protected DSPy LM."""

    def __init__(self, output: Any = None, error: Exception | None = None):
        self.output = output
        self.error = error
        self.calls: list[dict[str, Any]] = []

    async def __call__(self, prompt=None, messages=None, **kwargs):
        self.calls.append({"prompt": prompt, "messages": messages, **kwargs})
        if self.error is not None:
            raise self.error
        return [self.output]


class RecordingNotifier:
    def __init__(self) -> None:
        self.sent: list[dict[str, str]] = []

    async def send_case_study_ready(self, *, to, project_id, case_study_title):
        self.sent.append({"to": to, "project_id": project_id, "title": case_study_title})
        return True


CASE_STUDY_JSON: dict[str, Any] = {
    "title": "How Acme Corp Cut Support Tickets by 60%",
    "summary": "Acme Corp cut support tickets by 60% by automating triage.",
    "client_name": "Acme Corp",
    "client_industry": "B2B SaaS",
    "customer_challenge": "Tickets were piling up.",
    "the_solution": "Automated triage.",
    "key_results_text": "Ticket volume dropped sharply.",
    "key_results": [{"metric": "60% fewer tickets", "quote": "We cut tickets by sixty percent."}],
    "powerful_quotes": ["It changed how we work."],
    "key_takeaways": ["Automate the boring parts."],
    "seo_title": None,
    "seo_description": None,
    "linkedin_post_draft": "We helped Acme cut tickets by 60%.",
    "x_thread_draft": ["1/ Acme had a ticket problem", "2/ We fixed it"],
}


def case_study_output(**overrides: Any) -> str:
    return json.dumps({**CASE_STUDY_JSON, **overrides})


async def make_project(
    session,
    *,
    status: ProjectStatus = ProjectStatus.UPLOADING,
    organization_id: str = ORG,
    file_url: str | None = "https://cdn.test/upload/abc",
    notify_email: str | None = None,
    **fields: Any,
) -> Project:
    """Insert a project and force it into ``status`` with extra column values."""
    project = await ProjectRepository(session).add(
        organization_id=organization_id,
        user_id=USER,
        title="interview",
        file_url=file_url,
        file_name="interview.mp4",
        file_size=1024,
        duration_seconds=600,
        notify_email=notify_email,
    )
    project.status = status.value
    for key, value in fields.items():
        setattr(project, key, value)
    await session.commit()
    return project


async def load_project(project_id: str) -> Project | None:
    """Read a project through a fresh session."""
    async with get_session_factory()() as s:
        return await ProjectRepository(s).get(project_id)
