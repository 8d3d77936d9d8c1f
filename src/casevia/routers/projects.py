"""Project endpoints: upload, pipeline triggers, retry, status and delete."""
from __future__ import annotations

from datetime import datetime
from typing import Any

from fastapi import APIRouter, Depends, File, Form, UploadFile
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict

from casevia.dependencies import (
    Identity,
    get_analysis_service,
    get_deletion_service,
    get_identity,
    get_pipeline_service,
)
from casevia.services.analysis import AnalysisService
from casevia.services.deletion import DeletionService
from casevia.services.pipeline import ProjectPipelineService

router = APIRouter(prefix="/projects", tags=["projects"])


class ProjectOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    organization_id: str
    user_id: str
    title: str
    status: str
    duration_seconds: int | None = None
    file_url: str | None = None
    file_name: str | None = None
    file_size: int | None = None
    assembly_ai_id: str | None = None
    transcript: str | None = None
    speaker_labels: list[dict[str, Any]] | None = None
    error_message: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None


@router.post("/upload")
async def upload_project(
    file: UploadFile = File(...),  # noqa: B008
    duration: int = Form(0, ge=0, description="Media length in minutes"),
    identity: Identity = Depends(get_identity),  # noqa: B008
    service: ProjectPipelineService = Depends(get_pipeline_service),  # noqa: B008
) -> dict[str, Any]:
    data = await file.read()
    project = await service.upload(
        organization_id=identity.organization_id,
        user_id=identity.user_id,
        file_name=file.filename or "upload",
        content_type=file.content_type,
        data=data,
        duration_minutes=duration,
        notify_email=identity.email,
    )
    return {
        "success": True,
        "project_id": project.id,
        "message": "File uploaded successfully. Transcription started.",
    }


@router.get("/{project_id}")
async def get_project(
    project_id: str,
    identity: Identity = Depends(get_identity),  # noqa: B008
    service: ProjectPipelineService = Depends(get_pipeline_service),  # noqa: B008
) -> dict[str, Any]:
    project = await service.get_project(project_id, identity.organization_id)
    return {"success": True, "project": ProjectOut.model_validate(project).model_dump(mode="json")}


@router.delete("/{project_id}")
async def delete_project(
    project_id: str,
    identity: Identity = Depends(get_identity),  # noqa: B008
    service: DeletionService = Depends(get_deletion_service),  # noqa: B008
) -> dict[str, Any]:
    await service.delete_project(project_id, identity.organization_id)
    return {"success": True}


@router.post("/{project_id}/transcribe", response_model=None)
async def transcribe_project(
    project_id: str,
    identity: Identity = Depends(get_identity),  # noqa: B008
    service: ProjectPipelineService = Depends(get_pipeline_service),  # noqa: B008
) -> dict[str, Any] | JSONResponse:
    await service.get_project(project_id, identity.organization_id)
    result = await service.start_transcription(project_id)
    if not result.success:
        return JSONResponse(status_code=502, content={"success": False, "error": result.error})
    return {"success": True, "assembly_ai_id": result.assembly_ai_id}


@router.post("/{project_id}/analyze")
async def analyze_project(
    project_id: str,
    identity: Identity = Depends(get_identity),  # noqa: B008
    service: AnalysisService = Depends(get_analysis_service),  # noqa: B008
) -> dict[str, Any]:
    case_study_id = await service.analyze(project_id, identity.organization_id)
    return {"success": True, "case_study_id": case_study_id}


@router.post("/{project_id}/retry")
async def retry_project(
    project_id: str,
    identity: Identity = Depends(get_identity),  # noqa: B008
    service: ProjectPipelineService = Depends(get_pipeline_service),  # noqa: B008
) -> dict[str, Any]:
    project = await service.retry(project_id, identity.organization_id)
    return {
        "success": True,
        "project": ProjectOut.model_validate(project).model_dump(mode="json"),
        "message": "Processing restarted",
    }
