"""Provider webhook receiver."""
from __future__ import annotations

import logging
from typing import Any

from fastapi import APIRouter, Body, Depends
from fastapi.exceptions import RequestValidationError
from pydantic import ValidationError

from casevia.dependencies import get_pipeline_service, verify_webhook_secret
from casevia.providers.assemblyai import TranscriptCompleted, TranscriptErrored, parse_outcome
from casevia.services.pipeline import ProjectPipelineService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/webhooks", tags=["webhooks"])


@router.post("/assemblyai/{project_id}", dependencies=[Depends(verify_webhook_secret)])
async def assemblyai_webhook(
    project_id: str,
    payload: dict[str, Any] = Body(...),  # noqa: B008
    service: ProjectPipelineService = Depends(get_pipeline_service),  # noqa: B008
) -> dict[str, Any]:
    try:
        outcome = parse_outcome(payload)
    except ValidationError as e:
        raise RequestValidationError(e.errors(include_url=False, include_context=False)) from e

    logger.info(f"Webhook for project {project_id}: {outcome.status}")
    result = await service.handle_webhook(project_id, outcome)

    if isinstance(outcome, TranscriptCompleted):
        if result.analysis_enqueued:
            message = "Transcript saved, analysis triggered"
        elif result.applied:
            message = "Transcript saved, analysis could not be queued"
        else:
            message = "Completion already processed"
    elif isinstance(outcome, TranscriptErrored):
        message = "Error status saved" if result.applied else "Error status ignored"
    else:
        message = "Status acknowledged"
    return {"success": True, "message": message, "applied": result.applied}
