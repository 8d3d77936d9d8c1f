"""Celery-backed :class:`~casevia.pipelines.interfaces.JobDispatcher`."""
from __future__ import annotations

import logging

logger = logging.getLogger(__name__)


class CeleryDispatcher:
    """Enqueues pipeline tasks; imports the worker lazily to keep the API import light."""

    def enqueue_transcription(self, project_id: str) -> None:
        from casevia.tasks.worker import transcribe_project

        transcribe_project.delay(project_id)
        logger.info(f"Enqueued transcription for {project_id}")

    def schedule_poll(
        self, project_id: str, transcript_id: str, attempt: int, countdown: float
    ) -> None:
        from casevia.tasks.worker import poll_transcription

        poll_transcription.apply_async(
            args=(project_id, transcript_id, attempt), countdown=countdown
        )

    def enqueue_analysis(self, project_id: str) -> None:
        from casevia.tasks.worker import analyze_project

        analyze_project.delay(project_id)
        logger.info(f"Enqueued analysis for {project_id}")
