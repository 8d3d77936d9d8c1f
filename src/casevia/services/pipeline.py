"""Transcription side of the project pipeline: upload, start, poll, webhook, retry.

Every status write goes through :meth:`ProjectRepository.transition`, a
compare-and-set on the current status. The poller and the webhook can observe
the same completion; only the writer that wins ``transcribing -> analyzing``
enqueues the analysis job.
"""
from __future__ import annotations

import logging
import math
import re
from collections.abc import Callable

from sqlalchemy.ext.asyncio import AsyncSession

from casevia.core.errors import InvalidFileError, InvalidStateError, NotFoundError, UpstreamError
from casevia.core.settings import Settings, get_settings
from casevia.db.models import Project
from casevia.db.repositories import ProjectRepository
from casevia.pipelines.interfaces import (
    InitiationResult,
    JobDispatcher,
    OutcomeResult,
    PollDecision,
    Transcriber,
)
from casevia.pipelines.status import (
    ANALYSIS_FAILED_MESSAGE,
    START_FAILED_MESSAGE,
    STATUS_CHECK_FAILED_MESSAGE,
    TRANSCRIPTION_FAILED_MESSAGE,
    TRANSCRIPTION_TIMEOUT_MESSAGE,
    ProjectStatus,
)
from casevia.providers.assemblyai import (
    TranscriptCompleted,
    TranscriptErrored,
    TranscriptPending,
)
from casevia.services.limits import PlanLimitsService

logger = logging.getLogger(__name__)

ALLOWED_CONTENT_TYPES = frozenset(
    {
        "video/mp4",
        "video/quicktime",
        "video/x-msvideo",
        "audio/mpeg",
        "audio/wav",
        "audio/mp3",
    }
)
MEBIBYTE = 1024 * 1024

INITIATOR_SOURCES = frozenset({ProjectStatus.UPLOADING, ProjectStatus.TRANSCRIBING})

Outcome = TranscriptCompleted | TranscriptErrored | TranscriptPending


_EXTENSION = re.compile(r"\.[^/.]+$")


def title_from_file_name(file_name: str) -> str:
    return _EXTENSION.sub("", file_name)


class ProjectPipelineService:
    def __init__(
        self,
        session: AsyncSession,
        transcriber: Transcriber,
        dispatcher: JobDispatcher,
        settings: Settings | None = None,
    ):
        self.session = session
        self.transcriber = transcriber
        self.dispatcher = dispatcher
        self.settings = settings or get_settings()
        self.projects = ProjectRepository(session)

    async def upload(
        self,
        *,
        organization_id: str,
        user_id: str,
        file_name: str,
        content_type: str | None,
        data: bytes,
        duration_minutes: int,
        notify_email: str | None = None,
    ) -> Project:
        """Check quotas, hand the bytes to the provider and create the project row."""
        if not data:
            raise InvalidFileError("No file provided")
        if content_type not in ALLOWED_CONTENT_TYPES:
            raise InvalidFileError(
                "Invalid file type. Please upload MP4, MOV, AVI, MP3, or WAV files.",
                details={"content_type": content_type},
            )

        size_mb = math.ceil(len(data) / MEBIBYTE)
        limits = PlanLimitsService(self.session)
        check = await limits.check_upload(organization_id, size_mb, duration_minutes)
        check.raise_for_refusal()

        file_url = await self.transcriber.upload(data)
        project = await self.projects.add(
            organization_id=organization_id,
            user_id=user_id,
            title=title_from_file_name(file_name),
            file_url=file_url,
            file_name=file_name,
            file_size=len(data),
            duration_seconds=duration_minutes * 60,
            notify_email=notify_email,
        )
        await limits.increment_usage(organization_id, size_mb)
        await self.session.commit()

        project_id = project.id
        logger.info(f"Project {project_id} uploaded ({size_mb} MB) for {organization_id}")
        queued = await self._dispatch(
            project_id,
            lambda: self.dispatcher.enqueue_transcription(project_id),
            START_FAILED_MESSAGE,
            expected=frozenset({ProjectStatus.UPLOADING}),
        )
        if not queued:
            raise UpstreamError(
                START_FAILED_MESSAGE, provider="queue", details={"project_id": project_id}
            )
        return project

    async def get_project(self, project_id: str, organization_id: str) -> Project:
        project = await self.projects.get_for_org(project_id, organization_id)
        if project is None:
            raise NotFoundError("Project not found", details={"project_id": project_id})
        return project

    def _webhook_options(self, project_id: str) -> dict[str, str]:
        base = self.settings.public_base_url
        secret = self.settings.webhook_secret
        if not (base and secret):
            return {}
        return {
            "webhook_url": f"{base.rstrip('/')}{self.settings.api_prefix}/webhooks/assemblyai/{project_id}",
            "webhook_secret": secret,
        }

    async def _fail(
        self,
        project_id: str,
        message: str,
        *,
        expected: frozenset[ProjectStatus] | None = None,
        current_job_id: str | None = None,
    ) -> bool:
        failed = await self.projects.transition(
            project_id,
            ProjectStatus.FAILED,
            expected=expected,
            current_job_id=current_job_id,
            error_message=message,
        )
        await self.session.commit()
        if failed:
            logger.warning(f"Project {project_id} failed: {message}")
        return failed

    async def _dispatch(
        self,
        project_id: str,
        enqueue: Callable[[], None],
        message: str,
        *,
        expected: frozenset[ProjectStatus],
        current_job_id: str | None = None,
    ) -> bool:
        """Hand work to the queue; if the broker refuses, the project is failed instead of stranded."""
        try:
            enqueue()
        except Exception as e:
            logger.error(f"Failed to queue work for project {project_id}: {e}")
            await self._fail(project_id, message, expected=expected, current_job_id=current_job_id)
            return False
        return True

    async def start_transcription(self, project_id: str) -> InitiationResult:
        project = await self.projects.get(project_id)
        if project is None:
            raise NotFoundError("Project not found", details={"project_id": project_id})
        if not project.file_url:
            raise InvalidStateError("Project has no file to transcribe", details={"project_id": project_id})
        if ProjectStatus(project.status) not in INITIATOR_SOURCES:
            raise InvalidStateError(
                f"Cannot start transcription from status {project.status}",
                details={"project_id": project_id, "status": project.status},
            )

        try:
            transcript_id = await self.transcriber.submit_transcript(
                project.file_url, **self._webhook_options(project_id)
            )
        except Exception as e:
            logger.error(f"Failed to start transcription for {project_id}: {e}")
            await self._fail(project_id, START_FAILED_MESSAGE, expected=INITIATOR_SOURCES)
            return InitiationResult(success=False, error=START_FAILED_MESSAGE)

        started = await self.projects.transition(
            project_id,
            ProjectStatus.TRANSCRIBING,
            expected=INITIATOR_SOURCES,
            assembly_ai_id=transcript_id,
            error_message=None,
        )
        await self.session.commit()
        if not started:
            raise InvalidStateError(
                "Project status changed while starting transcription",
                details={"project_id": project_id},
            )

        logger.info(f"Project {project_id} transcribing as {transcript_id}")
        polling = await self._dispatch(
            project_id,
            lambda: self.dispatcher.schedule_poll(
                project_id, transcript_id, 1, countdown=self.settings.poll_interval_seconds
            ),
            STATUS_CHECK_FAILED_MESSAGE,
            expected=frozenset({ProjectStatus.TRANSCRIBING}),
            current_job_id=transcript_id,
        )
        if not polling:
            return InitiationResult(
                success=False, assembly_ai_id=transcript_id, error=STATUS_CHECK_FAILED_MESSAGE
            )
        return InitiationResult(success=True, assembly_ai_id=transcript_id)

    async def poll_once(self, project_id: str, transcript_id: str, attempt: int) -> PollDecision:
        """One poll attempt; reschedules itself through the dispatcher until the cap."""
        project = await self.projects.get(project_id)
        if (
            project is None
            or project.status != ProjectStatus.TRANSCRIBING.value
            or project.assembly_ai_id != transcript_id
        ):
            logger.info(f"Dropping stale poll for {project_id} ({transcript_id}, attempt {attempt})")
            return PollDecision("stale", attempt)

        try:
            outcome = await self.transcriber.get_transcript(transcript_id)
        except Exception as e:
            logger.error(f"Status check failed for {project_id} ({transcript_id}): {e}")
            await self._fail(
                project_id,
                STATUS_CHECK_FAILED_MESSAGE,
                expected=frozenset({ProjectStatus.TRANSCRIBING}),
                current_job_id=transcript_id,
            )
            return PollDecision("failed", attempt, STATUS_CHECK_FAILED_MESSAGE)

        if isinstance(outcome, TranscriptPending):
            if attempt < self.settings.poll_max_attempts:
                rescheduled = await self._dispatch(
                    project_id,
                    lambda: self.dispatcher.schedule_poll(
                        project_id,
                        transcript_id,
                        attempt + 1,
                        countdown=self.settings.poll_interval_seconds,
                    ),
                    STATUS_CHECK_FAILED_MESSAGE,
                    expected=frozenset({ProjectStatus.TRANSCRIBING}),
                    current_job_id=transcript_id,
                )
                if not rescheduled:
                    return PollDecision("failed", attempt, STATUS_CHECK_FAILED_MESSAGE)
                return PollDecision("rescheduled", attempt)
            await self._fail(
                project_id,
                TRANSCRIPTION_TIMEOUT_MESSAGE,
                expected=frozenset({ProjectStatus.TRANSCRIBING}),
                current_job_id=transcript_id,
            )
            return PollDecision("failed", attempt, TRANSCRIPTION_TIMEOUT_MESSAGE)

        result = await self.apply_outcome(project_id, outcome, current_job_id=transcript_id)
        if isinstance(outcome, TranscriptCompleted):
            return PollDecision("completed" if result.applied else "stale", attempt)
        return PollDecision("failed" if result.applied else "stale", attempt, result.message)

    async def apply_outcome(
        self, project_id: str, outcome: Outcome, *, current_job_id: str | None = None
    ) -> OutcomeResult:
        """Persist a terminal provider outcome. Shared by the poller and the webhook."""
        if isinstance(outcome, TranscriptCompleted):
            moved = await self.projects.transition(
                project_id,
                ProjectStatus.ANALYZING,
                current_job_id=current_job_id,
                transcript=outcome.text or "",
                speaker_labels=outcome.speaker_labels,
                error_message=None,
            )
            await self.session.commit()
            if not moved:
                logger.info(f"Completion for {project_id} already applied; skipping analysis")
                return OutcomeResult(applied=False)
            queued = await self._dispatch(
                project_id,
                lambda: self.dispatcher.enqueue_analysis(project_id),
                ANALYSIS_FAILED_MESSAGE,
                expected=frozenset({ProjectStatus.ANALYZING}),
            )
            if not queued:
                return OutcomeResult(
                    applied=True, status=ProjectStatus.FAILED.value, message=ANALYSIS_FAILED_MESSAGE
                )
            logger.info(f"Project {project_id} transcribed; analysis enqueued")
            return OutcomeResult(
                applied=True, status=ProjectStatus.ANALYZING.value, analysis_enqueued=True
            )

        if isinstance(outcome, TranscriptErrored):
            message = outcome.error or TRANSCRIPTION_FAILED_MESSAGE
            failed = await self._fail(
                project_id,
                message,
                expected=frozenset({ProjectStatus.TRANSCRIBING}),
                current_job_id=current_job_id,
            )
            return OutcomeResult(
                applied=failed,
                status=ProjectStatus.FAILED.value if failed else None,
                message=message,
            )

        return OutcomeResult(applied=False, status=ProjectStatus.TRANSCRIBING.value)

    async def handle_webhook(self, project_id: str, outcome: Outcome) -> OutcomeResult:
        project = await self.projects.get(project_id)
        if project is None:
            raise NotFoundError("Project not found", details={"project_id": project_id})

        job_id = project.assembly_ai_id
        # No current job (reset by retry, not yet resubmitted): nothing can be for us.
        if job_id is None or (outcome.transcript_id and outcome.transcript_id != job_id):
            logger.warning(
                f"Ignoring webhook for {project_id}: job {outcome.transcript_id} is not current ({job_id})"
            )
            return OutcomeResult(applied=False, status=project.status)
        if project.status != ProjectStatus.TRANSCRIBING.value:
            logger.info(f"Ignoring webhook for {project_id} in status {project.status}")
            return OutcomeResult(applied=False, status=project.status)

        if isinstance(outcome, TranscriptCompleted) and outcome.text is None:
            # Notification without a body: fetch the finished transcript.
            fetch_id = outcome.transcript_id or job_id
            try:
                fetched = await self.transcriber.get_transcript(fetch_id)
            except Exception as e:
                logger.error(f"Failed to fetch transcript {fetch_id} for {project_id}: {e}")
                failed = await self._fail(
                    project_id,
                    STATUS_CHECK_FAILED_MESSAGE,
                    expected=frozenset({ProjectStatus.TRANSCRIBING}),
                    current_job_id=job_id,
                )
                return OutcomeResult(
                    applied=failed,
                    status=ProjectStatus.FAILED.value if failed else None,
                    message=STATUS_CHECK_FAILED_MESSAGE,
                )
            outcome = fetched

        return await self.apply_outcome(project_id, outcome, current_job_id=job_id)

    async def retry(self, project_id: str, organization_id: str) -> Project:
        """Reset a failed project and run transcription from scratch."""
        project = await self.get_project(project_id, organization_id)
        if project.status != ProjectStatus.FAILED.value:
            raise InvalidStateError(
                "Only failed projects can be retried",
                details={"project_id": project_id, "status": project.status},
            )

        reset = await self.projects.transition(
            project_id,
            ProjectStatus.TRANSCRIBING,
            expected=frozenset({ProjectStatus.FAILED}),
            error_message=None,
            transcript=None,
            speaker_labels=None,
            assembly_ai_id=None,
        )
        await self.session.commit()
        if not reset:
            raise InvalidStateError(
                "Only failed projects can be retried", details={"project_id": project_id}
            )
        await self.session.refresh(project)

        logger.info(f"Retrying project {project_id}")
        queued = await self._dispatch(
            project_id,
            lambda: self.dispatcher.enqueue_transcription(project_id),
            START_FAILED_MESSAGE,
            expected=frozenset({ProjectStatus.TRANSCRIBING}),
        )
        if not queued:
            raise UpstreamError(
                START_FAILED_MESSAGE, provider="queue", details={"project_id": project_id}
            )
        return project
