import pytest

from editorial.core.errors import InvalidTransition
from editorial.models.workflow import (
    TERMINAL_STATUSES,
    WORKFLOW_TRANSITIONS,
    WorkflowStatus,
    is_terminal,
    normalize_status,
    validate_transition,
)

ALL = [s.value for s in WorkflowStatus]


def test_every_status_has_a_transition_row() -> None:
    assert {s.value for s in WORKFLOW_TRANSITIONS} == set(ALL)
    assert len(ALL) == 13


@pytest.mark.parametrize("current", ALL)
@pytest.mark.parametrize("target", ALL)
def test_validate_transition_matches_table(current: str, target: str) -> None:
    allowed = WorkflowStatus.allowed_next(current)
    if target in allowed:
        validate_transition(current, target)
    else:
        with pytest.raises(InvalidTransition) as exc:
            validate_transition(current, target)
        assert exc.value.status_code == 400
        assert exc.value.current == current
        assert exc.value.target == target
        assert exc.value.allowed == sorted(allowed)


@pytest.mark.parametrize("status", sorted(TERMINAL_STATUSES))
def test_terminal_statuses_have_no_outgoing_edges(status: str) -> None:
    assert is_terminal(status) is True
    assert WorkflowStatus.allowed_next(status) == set()


def test_non_terminal_statuses_can_move() -> None:
    for status in ALL:
        if status in TERMINAL_STATUSES:
            continue
        assert WorkflowStatus.allowed_next(status), status


def test_happy_path_edges() -> None:
    assert WorkflowStatus.allowed_next("submitted") == {"editorial_assistant_review", "withdrawn"}
    assert WorkflowStatus.allowed_next("under_review") == {"revision_requested", "accepted", "rejected"}
    assert WorkflowStatus.allowed_next("accepted") == {"published"}


def test_normalize_status_trims_and_lowercases() -> None:
    assert normalize_status("  Under_Review ") == "under_review"
    assert normalize_status(WorkflowStatus.ACCEPTED) == "accepted"
    assert normalize_status("nope") is None
    assert normalize_status("") is None
    assert normalize_status(None) is None


def test_unknown_states_are_rejected() -> None:
    with pytest.raises(InvalidTransition) as exc:
        validate_transition("submitted", "teleported")
    assert exc.value.target == "teleported"
    assert "editorial_assistant_review" in exc.value.allowed

    with pytest.raises(InvalidTransition) as exc:
        validate_transition("limbo", "submitted")
    assert exc.value.allowed == []


def test_invalid_transition_detail_lists_allowed() -> None:
    with pytest.raises(InvalidTransition) as exc:
        validate_transition("submitted", "accepted")
    assert "submitted -> accepted" in exc.value.detail
    assert "withdrawn" in exc.value.detail
