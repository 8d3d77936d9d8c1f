"""Analysis step: transcript -> case study + social drafts -> ``ready``."""
from __future__ import annotations

import logging

from sqlalchemy.ext.asyncio import AsyncSession

from casevia.core.errors import (
    AnalysisFailedError,
    InvalidStateError,
    MissingTranscriptError,
    NotFoundError,
)
from casevia.db.repositories import (
    CaseStudyRepository,
    ProjectRepository,
    SocialPostRepository,
)
from casevia.pipelines.case_study import format_transcript, parse_case_study
from casevia.pipelines.interfaces import CaseStudyWriter, Notifier
from casevia.pipelines.status import ANALYSIS_FAILED_MESSAGE, ProjectStatus

logger = logging.getLogger(__name__)


class AnalysisService:
    def __init__(
        self,
        session: AsyncSession,
        generator: CaseStudyWriter,
        notifier: Notifier | None = None,
    ):
        self.session = session
        self.generator = generator
        self.notifier = notifier
        self.projects = ProjectRepository(session)
        self.case_studies = CaseStudyRepository(session)
        self.social_posts = SocialPostRepository(session)

    async def analyze(self, project_id: str, organization_id: str | None = None) -> str:
        """Generate and store the case study; returns its id.

        The case study, its social posts and the ``analyzing -> ready`` transition
        commit together. Generation or parsing failures mark the project failed.
        """
        if organization_id is None:
            project = await self.projects.get(project_id)
        else:
            project = await self.projects.get_for_org(project_id, organization_id)
        if project is None:
            raise NotFoundError("Project not found", details={"project_id": project_id})
        if project.transcript is None:
            raise MissingTranscriptError(project_id)
        if project.status != ProjectStatus.ANALYZING.value:
            raise InvalidStateError(
                f"Cannot analyze project in status {project.status}",
                details={"project_id": project_id, "status": project.status},
            )

        organization_id = project.organization_id
        notify_email = project.notify_email
        formatted = format_transcript(project.transcript, project.speaker_labels)

        try:
            raw = await self.generator.generate(formatted)
            draft = parse_case_study(raw)
            case_study = await self.case_studies.add(
                project_id=project_id,
                organization_id=organization_id,
                **draft.case_study_values(),
            )
            for platform, content in draft.social_posts():
                await self.social_posts.add(case_study.id, platform, content)
        except Exception as e:
            logger.error(f"Analysis failed for project {project_id}: {e}")
            await self.session.rollback()
            await self.projects.transition(
                project_id,
                ProjectStatus.FAILED,
                expected={ProjectStatus.ANALYZING},
                error_message=ANALYSIS_FAILED_MESSAGE,
            )
            await self.session.commit()
            raise AnalysisFailedError(
                ANALYSIS_FAILED_MESSAGE, details={"project_id": project_id}
            ) from e

        case_study_id = case_study.id
        ready = await self.projects.transition(project_id, ProjectStatus.READY)
        if not ready:
            await self.session.rollback()
            raise InvalidStateError(
                "Project left the analyzing state during analysis",
                details={"project_id": project_id},
            )
        await self.session.commit()
        logger.info(f"Project {project_id} ready with case study {case_study_id}")

        if notify_email and self.notifier is not None:
            await self._notify(notify_email, project_id, draft.title)
        return case_study_id

    async def _notify(self, to: str, project_id: str, title: str) -> None:
        try:
            await self.notifier.send_case_study_ready(
                to=to, project_id=project_id, case_study_title=title
            )
        except Exception as e:
            logger.warning(f"Ready notification for {project_id} failed: {e}")
