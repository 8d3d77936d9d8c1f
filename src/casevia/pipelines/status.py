"""Project processing status machine."""
from __future__ import annotations

from enum import Enum


class ProjectStatus(str, Enum):
    UPLOADING = "uploading"
    TRANSCRIBING = "transcribing"
    ANALYZING = "analyzing"
    READY = "ready"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (ProjectStatus.READY, ProjectStatus.FAILED)


# Target status -> statuses a project may move from.
# FAILED -> TRANSCRIBING is the retry edge; TRANSCRIBING -> TRANSCRIBING lets the
# initiator resubmit a project that retry has already reset.
ALLOWED_SOURCES: dict[ProjectStatus, frozenset[ProjectStatus]] = {
    ProjectStatus.UPLOADING: frozenset(),
    ProjectStatus.TRANSCRIBING: frozenset(
        {ProjectStatus.UPLOADING, ProjectStatus.TRANSCRIBING, ProjectStatus.FAILED}
    ),
    ProjectStatus.ANALYZING: frozenset({ProjectStatus.TRANSCRIBING}),
    ProjectStatus.READY: frozenset({ProjectStatus.ANALYZING}),
    ProjectStatus.FAILED: frozenset(
        {ProjectStatus.UPLOADING, ProjectStatus.TRANSCRIBING, ProjectStatus.ANALYZING}
    ),
}


def sources_for(target: ProjectStatus) -> frozenset[ProjectStatus]:
    return ALLOWED_SOURCES[target]


def can_transition(current: ProjectStatus | str, target: ProjectStatus) -> bool:
    return ProjectStatus(current) in ALLOWED_SOURCES[target]


# Persisted error messages shown in the dashboard.
START_FAILED_MESSAGE = "Failed to start transcription"
TRANSCRIPTION_FAILED_MESSAGE = "Transcription failed"
TRANSCRIPTION_TIMEOUT_MESSAGE = "Transcription timeout"
STATUS_CHECK_FAILED_MESSAGE = "Failed to check transcription status"
ANALYSIS_FAILED_MESSAGE = "Failed to analyze transcript"
