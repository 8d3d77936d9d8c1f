"""Error handling utilities and custom exceptions."""
from __future__ import annotations

import logging
from typing import Any

from fastapi import Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)


class AppError(Exception):
    """Base application error."""

    code = "app_error"
    http_status = status.HTTP_400_BAD_REQUEST

    def __init__(
        self,
        message: str,
        *,
        code: str | None = None,
        http_status: int | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code
        if http_status is not None:
            self.http_status = http_status
        self.details = details or {}

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"error": self.code, "message": self.message}
        payload.update(self.details)
        return payload


class NotFoundError(AppError):
    """Project or case study missing (or owned by another organization)."""

    code = "not_found"
    http_status = status.HTTP_404_NOT_FOUND


class InvalidStateError(AppError):
    """Action attempted from the wrong project status."""

    code = "invalid_state"
    http_status = status.HTTP_400_BAD_REQUEST


class MissingTranscriptError(InvalidStateError):
    code = "missing_transcript"

    def __init__(self, project_id: str) -> None:
        super().__init__(
            "No transcript available",
            details={"project_id": project_id},
        )


class InvalidFileError(AppError):
    code = "invalid_file"
    http_status = status.HTTP_400_BAD_REQUEST


class UpstreamError(AppError):
    """A provider answered non-2xx, was unreachable, or sent a malformed payload."""

    code = "upstream_failure"
    http_status = status.HTTP_502_BAD_GATEWAY

    def __init__(
        self,
        message: str,
        *,
        provider: str | None = None,
        status_code: int | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        merged = dict(details or {})
        if provider:
            merged["provider"] = provider
        super().__init__(message, details=merged)
        self.provider = provider
        self.status_code = status_code


class MalformedOutputError(UpstreamError):
    code = "malformed_output"


class PipelineTimeoutError(AppError):
    code = "timeout"
    http_status = status.HTTP_504_GATEWAY_TIMEOUT


class AuthError(AppError):
    code = "unauthorized"
    http_status = status.HTTP_401_UNAUTHORIZED

    def __init__(self, message: str = "Unauthorized") -> None:
        super().__init__(message)


class PlanLimitError(AppError):
    code = "plan_limit"
    http_status = status.HTTP_403_FORBIDDEN

    def __init__(self, reason: str, limit_type: str) -> None:
        super().__init__(reason, details={"reason": reason, "limit_type": limit_type})
        self.limit_type = limit_type


class SlugConflictError(AppError):
    code = "slug_conflict"
    http_status = status.HTTP_409_CONFLICT


class AnalysisFailedError(AppError):
    code = "analysis_failed"
    http_status = status.HTTP_500_INTERNAL_SERVER_ERROR


async def app_error_handler(_: Request, exc: AppError) -> JSONResponse:
    if exc.http_status >= 500:
        logger.error(f"{exc.code}: {exc.message}")
    return JSONResponse(status_code=exc.http_status, content=exc.to_dict())


async def validation_error_handler(_: Request, exc: RequestValidationError) -> JSONResponse:
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content={
            "error": "validation_error",
            "message": "Invalid request payload",
            "details": exc.errors(),
        },
    )
