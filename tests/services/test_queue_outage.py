"""A broker outage after a commit fails the project instead of stranding it."""
from __future__ import annotations

import pytest
from helpers import ORG, USER, RecordingDispatcher, StubTranscriber, load_project, make_project

from casevia.core.errors import UpstreamError
from casevia.core.settings import Settings
from casevia.pipelines.status import ProjectStatus
from casevia.providers.assemblyai import parse_outcome
from casevia.services.pipeline import ProjectPipelineService


class BrokerDown(RecordingDispatcher):
    def enqueue_transcription(self, project_id: str) -> None:
        raise ConnectionError("broker unreachable")

    def schedule_poll(self, project_id, transcript_id, attempt, countdown) -> None:
        raise ConnectionError("broker unreachable")

    def enqueue_analysis(self, project_id: str) -> None:
        raise ConnectionError("broker unreachable")


def service(session, transcriber=None):
    return ProjectPipelineService(
        session, transcriber or StubTranscriber(), BrokerDown(), Settings(public_base_url=None)
    )


@pytest.mark.asyncio
async def test_upload_fails_project_when_transcription_cannot_be_queued(session):
    with pytest.raises(UpstreamError) as exc_info:
        await service(session).upload(
            organization_id=ORG,
            user_id=USER,
            file_name="call.mp3",
            content_type="audio/mpeg",
            data=b"audio",
            duration_minutes=5,
        )

    stored = await load_project(exc_info.value.details["project_id"])
    assert stored.status == "failed"
    assert stored.error_message == "Failed to start transcription"


@pytest.mark.asyncio
async def test_start_fails_project_when_first_poll_cannot_be_scheduled(session):
    project = await make_project(session)

    result = await service(session, StubTranscriber(job_id="tr_5")).start_transcription(project.id)

    assert not result.success
    assert result.error == "Failed to check transcription status"
    stored = await load_project(project.id)
    assert stored.status == "failed"
    assert stored.assembly_ai_id == "tr_5"


@pytest.mark.asyncio
async def test_pending_poll_fails_project_when_next_attempt_cannot_be_scheduled(session):
    project = await make_project(session, status=ProjectStatus.TRANSCRIBING, assembly_ai_id="tr_1")
    transcriber = StubTranscriber(outcomes=[parse_outcome({"id": "tr_1", "status": "processing"})])

    decision = await service(session, transcriber).poll_once(project.id, "tr_1", 1)

    assert decision.action == "failed"
    assert (await load_project(project.id)).status == "failed"


@pytest.mark.asyncio
async def test_completion_fails_project_when_analysis_cannot_be_queued(session):
    project = await make_project(session, status=ProjectStatus.TRANSCRIBING, assembly_ai_id="tr_1")
    outcome = parse_outcome({"id": "tr_1", "status": "completed", "text": "done"})

    result = await service(session).apply_outcome(project.id, outcome, current_job_id="tr_1")

    assert result.applied and not result.analysis_enqueued
    stored = await load_project(project.id)
    assert stored.status == "failed"
    assert stored.error_message == "Failed to analyze transcript"
    assert stored.transcript == "done"


@pytest.mark.asyncio
async def test_retry_fails_project_again_when_queue_is_down(session):
    project = await make_project(session, status=ProjectStatus.FAILED, error_message="Transcription timeout")

    with pytest.raises(UpstreamError):
        await service(session).retry(project.id, project.organization_id)

    stored = await load_project(project.id)
    assert stored.status == "failed"
    assert stored.error_message == "Failed to start transcription"
