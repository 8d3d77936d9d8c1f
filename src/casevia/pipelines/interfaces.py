"""Interfaces (Protocols) and DTOs bridging the API, the job queue and providers."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol

from casevia.providers.assemblyai import (
    TranscriptCompleted,
    TranscriptErrored,
    TranscriptPending,
)


class JobDispatcher(Protocol):
    """Schedules pipeline work; the Celery implementation lives in ``casevia.tasks``."""

    def enqueue_transcription(self, project_id: str) -> None: ...  # noqa: E701
    def schedule_poll(
        self, project_id: str, transcript_id: str, attempt: int, countdown: float
    ) -> None: ...
    def enqueue_analysis(self, project_id: str) -> None: ...


class Transcriber(Protocol):
    async def upload(self, data: bytes) -> str: ...
    async def submit_transcript(
        self,
        audio_url: str,
        *,
        webhook_url: str | None = None,
        webhook_secret: str | None = None,
    ) -> str: ...
    async def get_transcript(
        self, transcript_id: str
    ) -> TranscriptCompleted | TranscriptErrored | TranscriptPending: ...


class CaseStudyWriter(Protocol):
    async def generate(self, formatted_transcript: str) -> str: ...


class Notifier(Protocol):
    async def send_case_study_ready(
        self, *, to: str, project_id: str, case_study_title: str
    ) -> bool: ...


@dataclass(slots=True)
class InitiationResult:
    success: bool
    assembly_ai_id: str | None = None
    error: str | None = None


@dataclass(slots=True)
class PollDecision:
    """What one poll attempt did: ``rescheduled``, ``completed``, ``failed``, ``stale``."""

    action: str
    attempt: int
    message: str | None = None


@dataclass(slots=True)
class OutcomeResult:
    """Result of applying a provider outcome to a project."""

    applied: bool
    status: str | None = None
    analysis_enqueued: bool = False
    message: str | None = None
