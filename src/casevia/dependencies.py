"""FastAPI dependency helpers: caller identity, provider clients and services."""
from __future__ import annotations

import hmac
from dataclasses import dataclass

from fastapi import Depends, Header
from sqlalchemy.ext.asyncio import AsyncSession

from casevia.core.errors import AuthError
from casevia.core.settings import get_settings
from casevia.db.base import get_session
from casevia.pipelines.interfaces import CaseStudyWriter, JobDispatcher, Notifier, Transcriber
from casevia.providers.assemblyai import AssemblyAIClient
from casevia.providers.llm import CaseStudyGenerator
from casevia.services.analysis import AnalysisService
from casevia.services.deletion import DeletionService
from casevia.services.notifications import ResendNotifier
from casevia.services.pipeline import ProjectPipelineService
from casevia.services.publishing import PublishingService
from casevia.tasks.dispatch import CeleryDispatcher


@dataclass(slots=True)
class Identity:
    """Caller identity forwarded by the auth gateway."""

    organization_id: str
    user_id: str
    email: str | None = None


async def get_identity(
    x_organization_id: str | None = Header(default=None),
    x_user_id: str | None = Header(default=None),
    x_user_email: str | None = Header(default=None),
) -> Identity:
    if not x_organization_id or not x_user_id:
        raise AuthError()
    return Identity(x_organization_id, x_user_id, x_user_email or None)


async def verify_webhook_secret(x_webhook_secret: str | None = Header(default=None)) -> None:
    expected = get_settings().webhook_secret
    if not expected or not x_webhook_secret:
        raise AuthError()
    if not hmac.compare_digest(x_webhook_secret.encode(), expected.encode()):
        raise AuthError()


def get_transcriber() -> Transcriber:
    return AssemblyAIClient.from_settings()


def get_dispatcher() -> JobDispatcher:
    return CeleryDispatcher()


def get_case_study_writer() -> CaseStudyWriter:
    return CaseStudyGenerator()


def get_notifier() -> Notifier:
    return ResendNotifier.from_settings()


def get_pipeline_service(
    session: AsyncSession = Depends(get_session),  # noqa: B008 - FastAPI DI
    transcriber: Transcriber = Depends(get_transcriber),  # noqa: B008
    dispatcher: JobDispatcher = Depends(get_dispatcher),  # noqa: B008
) -> ProjectPipelineService:
    return ProjectPipelineService(session, transcriber, dispatcher)


def get_analysis_service(
    session: AsyncSession = Depends(get_session),  # noqa: B008 - FastAPI DI
    writer: CaseStudyWriter = Depends(get_case_study_writer),  # noqa: B008
    notifier: Notifier = Depends(get_notifier),  # noqa: B008
) -> AnalysisService:
    return AnalysisService(session, writer, notifier)


def get_publishing_service(
    session: AsyncSession = Depends(get_session),  # noqa: B008 - FastAPI DI
) -> PublishingService:
    return PublishingService(session)


def get_deletion_service(
    session: AsyncSession = Depends(get_session),  # noqa: B008 - FastAPI DI
) -> DeletionService:
    return DeletionService(session)
