"""Background worker tasks for the project pipeline.

Each task runs its async body in a fresh event loop with ``asyncio.run`` and
disposes the database engine afterwards, so pooled connections never outlive
the loop that opened them.
"""
from __future__ import annotations

import asyncio
from typing import Any

from celery.utils.log import get_task_logger

from casevia.core.errors import AppError
from casevia.db.base import dispose_engine, get_session_factory
from casevia.providers.assemblyai import AssemblyAIClient
from casevia.providers.llm import CaseStudyGenerator
from casevia.services.analysis import AnalysisService
from casevia.services.notifications import ResendNotifier
from casevia.services.pipeline import ProjectPipelineService
from casevia.tasks import get_celery_app
from casevia.tasks.dispatch import CeleryDispatcher

logger = get_task_logger(__name__)

app = get_celery_app()


def _pipeline_service(session: Any) -> ProjectPipelineService:
    return ProjectPipelineService(session, AssemblyAIClient.from_settings(), CeleryDispatcher())


async def _transcribe(project_id: str) -> dict[str, Any]:
    try:
        async with get_session_factory()() as session:
            result = await _pipeline_service(session).start_transcription(project_id)
        return {
            "status": "started" if result.success else "failed",
            "assembly_ai_id": result.assembly_ai_id,
            "error": result.error,
        }
    finally:
        await dispose_engine()


async def _poll(project_id: str, transcript_id: str, attempt: int) -> dict[str, Any]:
    try:
        async with get_session_factory()() as session:
            decision = await _pipeline_service(session).poll_once(
                project_id, transcript_id, attempt
            )
        return {"status": decision.action, "attempt": decision.attempt, "error": decision.message}
    finally:
        await dispose_engine()


async def _analyze(project_id: str) -> dict[str, Any]:
    try:
        async with get_session_factory()() as session:
            service = AnalysisService(
                session, CaseStudyGenerator(), ResendNotifier.from_settings()
            )
            case_study_id = await service.analyze(project_id)
        return {"status": "ready", "case_study_id": case_study_id}
    finally:
        await dispose_engine()


def _failure(project_id: str, step: str, error: AppError) -> dict[str, Any]:
    logger.error(f"{step} for project {project_id} failed: {error.code}: {error.message}")
    return {"status": "error", "error": error.code, "message": error.message}


@app.task(bind=True, name="casevia.tasks.worker.transcribe_project")  # type: ignore[misc]
def transcribe_project(self: Any, project_id: str) -> dict[str, Any]:
    """Submit the project's media to the transcription provider."""
    logger.info(f"Starting transcription for project {project_id}")
    try:
        return asyncio.run(_transcribe(project_id))
    except AppError as e:
        return _failure(project_id, "Transcription start", e)


@app.task(bind=True, name="casevia.tasks.worker.poll_transcription")  # type: ignore[misc]
def poll_transcription(
    self: Any, project_id: str, transcript_id: str, attempt: int = 1
) -> dict[str, Any]:
    """Check the provider job once; the service reschedules the next attempt."""
    try:
        return asyncio.run(_poll(project_id, transcript_id, attempt))
    except AppError as e:
        return _failure(project_id, "Transcription poll", e)


@app.task(bind=True, name="casevia.tasks.worker.analyze_project")  # type: ignore[misc]
def analyze_project(self: Any, project_id: str) -> dict[str, Any]:
    """Turn the stored transcript into a case study."""
    logger.info(f"Starting analysis for project {project_id}")
    try:
        return asyncio.run(_analyze(project_id))
    except AppError as e:
        return _failure(project_id, "Analysis", e)
