from __future__ import annotations

import pytest

from casevia.pipelines.status import ProjectStatus, can_transition, sources_for


@pytest.mark.parametrize(
    ("current", "target"),
    [
        (ProjectStatus.UPLOADING, ProjectStatus.TRANSCRIBING),
        (ProjectStatus.TRANSCRIBING, ProjectStatus.ANALYZING),
        (ProjectStatus.ANALYZING, ProjectStatus.READY),
        (ProjectStatus.FAILED, ProjectStatus.TRANSCRIBING),
        (ProjectStatus.ANALYZING, ProjectStatus.FAILED),
    ],
)
def test_allowed_transitions(current, target):
    assert can_transition(current, target)


@pytest.mark.parametrize(
    ("current", "target"),
    [
        (ProjectStatus.READY, ProjectStatus.FAILED),
        (ProjectStatus.FAILED, ProjectStatus.FAILED),
        (ProjectStatus.UPLOADING, ProjectStatus.ANALYZING),
        (ProjectStatus.TRANSCRIBING, ProjectStatus.READY),
        (ProjectStatus.READY, ProjectStatus.TRANSCRIBING),
    ],
)
def test_rejected_transitions(current, target):
    assert not can_transition(current, target)


def test_terminal_states_have_no_outgoing_edges_except_retry():
    assert ProjectStatus.READY.is_terminal and ProjectStatus.FAILED.is_terminal
    for target in ProjectStatus:
        assert ProjectStatus.READY not in sources_for(target)
    assert [t for t in ProjectStatus if ProjectStatus.FAILED in sources_for(t)] == [
        ProjectStatus.TRANSCRIBING
    ]


def test_accepts_raw_status_strings():
    assert can_transition("transcribing", ProjectStatus.ANALYZING)
