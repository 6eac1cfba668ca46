from datetime import timedelta

import pytest

from editorial.core.errors import InvalidTransition, ValidationError
from editorial.models.screening import ScreeningChecklist

ALL_PASS = ScreeningChecklist(
    file_completeness=True,
    plagiarism_check=True,
    format_compliance=True,
    ethical_compliance=True,
)


@pytest.mark.asyncio
async def test_passing_screening_moves_to_associate_assignment(workflow, seed, repo, dispatcher) -> None:
    seed.user("ea-1", "editorial_assistant")
    sub = seed.article(status="editorial_assistant_review")

    result = await workflow.assistant.perform_initial_screening(sub.id, "ea-1", ALL_PASS)

    assert result.passed is True
    assert result.next_status == "associate_editor_assignment"
    assert repo.submissions[sub.id].status == "associate_editor_assignment"
    assert repo.submissions[sub.id].status_history[-1].actor_id == "ea-1"
    assert dispatcher.types_for("ea-1") == ["SCREENING_COMPLETED"]


@pytest.mark.asyncio
async def test_failing_screening_returns_to_author(workflow, seed, repo, dispatcher) -> None:
    seed.user("ea-1", "editorial_assistant")
    sub = seed.article(status="editorial_assistant_review")
    checklist = ALL_PASS.model_copy(update={"plagiarism_check": False, "notes": "Similarity too high"})

    result = await workflow.assistant.perform_initial_screening(sub.id, "ea-1", checklist)

    assert result.passed is False
    assert checklist.failed_checks() == ["plagiarism_check"]
    stored = repo.submissions[sub.id]
    assert stored.status == "revision_requested"
    assert stored.status_history[-1].notes == "Initial screening failed: Similarity too high"
    assert dispatcher.types_for("author-1") == ["REVISION_REQUESTED"]


@pytest.mark.asyncio
async def test_screening_requires_permission_and_valid_state(workflow, seed) -> None:
    seed.user("rev-1", "reviewer")
    seed.user("ea-1", "editorial_assistant")
    sub = seed.article(status="submitted")

    with pytest.raises(ValidationError):
        await workflow.assistant.perform_initial_screening(sub.id, "rev-1", ALL_PASS)
    with pytest.raises(InvalidTransition):
        await workflow.assistant.perform_initial_screening(sub.id, "ea-1", ALL_PASS)


@pytest.mark.asyncio
async def test_assign_associate_editor(workflow, seed, repo, dispatcher, clock) -> None:
    seed.user("ea-1", "editorial_assistant")
    seed.editor("ae-1", role="associate_editor")
    sub = seed.article(status="associate_editor_assignment")

    updated, assignment = await workflow.assistant.assign_associate_editor(sub.id, "ae-1", "ea-1")

    assert updated.status == "associate_editor_review"
    assert repo.articles["art-1"].editor_id == "ae-1"
    assert assignment.deadline == clock.now() + timedelta(days=14)
    assert assignment.system_generated is False
    assert assignment.assigned_by == "ea-1"
    assert dispatcher.types_for("ae-1") == ["ASSOCIATE_EDITOR_ASSIGNMENT"]


@pytest.mark.asyncio
async def test_assign_associate_editor_checks_state_first(workflow, seed, repo) -> None:
    seed.user("ea-1", "editorial_assistant")
    seed.editor("ae-1", role="associate_editor")
    sub = seed.article(status="submitted")

    with pytest.raises(InvalidTransition):
        await workflow.assistant.assign_associate_editor(sub.id, "ae-1", "ea-1")
    assert repo.editor_assignments == {}
