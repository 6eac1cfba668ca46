from datetime import timedelta

import pytest

from editorial.core.errors import NotFound, ValidationError
from editorial.models.reviews import Review, ReviewSubmission
from editorial.services.review_service import determine_article_status_from_reviews


def _setup(seed, statuses=("accepted", "accepted", "accepted")):
    seed.editor("ed-1")
    seed.article(status="under_review", editor_id="ed-1", reviewer_ids=["rev-1", "rev-2", "rev-3"])
    for i, status in enumerate(statuses, start=1):
        seed.reviewer(f"rev-{i}", current_review_load=1)
        seed.review(f"r{i}", "art-1", f"rev-{i}", status=status, invited_by="ed-1")


def _review(recommendation, status="completed"):
    return Review(
        id="x",
        article_id="a",
        reviewer_id="r",
        status=status,
        recommendation=recommendation,
        created_at="2026-01-01T00:00:00Z",
    )


def test_aggregation_rule() -> None:
    assert determine_article_status_from_reviews([_review("reject"), _review("accept"), _review("accept")]) == "rejected"
    assert (
        determine_article_status_from_reviews([_review("minor_revision"), _review("accept"), _review("accept")])
        == "revision_requested"
    )
    assert determine_article_status_from_reviews([_review("major_revision"), _review("reject")]) == "rejected"
    assert determine_article_status_from_reviews([_review("accept"), _review("accept")]) == "accepted"
    assert determine_article_status_from_reviews([]) is None


async def _submit_all(workflow, recommendations):
    for i, rec in enumerate(recommendations, start=1):
        await workflow.reviews.submit_review(
            f"r{i}", ReviewSubmission(recommendation=rec, comments=f"comments {i}", rating=4), f"rev-{i}"
        )


@pytest.mark.asyncio
async def test_any_reject_blocks_acceptance(workflow, seed, repo, dispatcher, clock) -> None:
    _setup(seed)

    await workflow.reviews.submit_review("r1", ReviewSubmission(recommendation="reject"), "rev-1")
    # 还有未完成的审稿，不汇总
    assert repo.submissions["sub-art-1"].status == "under_review"

    await workflow.reviews.submit_review("r2", ReviewSubmission(recommendation="accept"), "rev-2")
    await workflow.reviews.submit_review("r3", ReviewSubmission(recommendation="accept"), "rev-3")

    sub = repo.submissions["sub-art-1"]
    assert sub.status == "rejected"
    assert sub.status_history[-1].system_generated is True
    assert "Decision: rejected" in sub.status_history[-1].notes
    assert repo.articles["art-1"].status == "rejected"

    for i in range(1, 4):
        profile = repo.reviewer_profiles[f"rev-{i}"]
        assert profile.current_review_load == 0
        assert profile.completed_reviews == 1
        assert profile.last_review_date == clock.now()

    assert dispatcher.types_for("ed-1").count("REVIEW_SUBMITTED") == 3
    assert "REVIEWS_COMPLETE" in dispatcher.types_for("ed-1")
    assert "REVIEWS_COMPLETE" in dispatcher.types_for("author-1")
    assert any(e["kind"] == "reviews_complete" for e in dispatcher.emails)


@pytest.mark.asyncio
async def test_minor_revision_requests_revision(workflow, seed, repo) -> None:
    _setup(seed)
    await _submit_all(workflow, ["minor_revision", "accept", "accept"])
    assert repo.submissions["sub-art-1"].status == "revision_requested"


@pytest.mark.asyncio
async def test_unanimous_accept(workflow, seed, repo) -> None:
    _setup(seed)
    await _submit_all(workflow, ["accept", "accept", "accept"])
    assert repo.submissions["sub-art-1"].status == "accepted"


@pytest.mark.asyncio
async def test_aggregation_is_idempotent(workflow, seed, repo) -> None:
    _setup(seed)
    await _submit_all(workflow, ["accept", "accept", "accept"])
    history_len = len(repo.submissions["sub-art-1"].status_history)

    assert await workflow.reviews.aggregate_reviews("art-1") is None
    assert len(repo.submissions["sub-art-1"].status_history) == history_len


@pytest.mark.asyncio
async def test_resubmission_is_rejected_without_double_counting(workflow, seed, repo) -> None:
    _setup(seed)
    await workflow.reviews.submit_review("r1", ReviewSubmission(recommendation="accept"), "rev-1")

    with pytest.raises(ValidationError) as exc:
        await workflow.reviews.submit_review("r1", ReviewSubmission(recommendation="reject"), "rev-1")
    assert exc.value.detail == "Review has already been submitted"
    profile = repo.reviewer_profiles["rev-1"]
    assert profile.completed_reviews == 1
    assert profile.current_review_load == 0
    assert repo.reviews["r1"].recommendation == "accept"


@pytest.mark.asyncio
async def test_submit_review_checks_ownership(workflow, seed) -> None:
    _setup(seed)
    with pytest.raises(ValidationError):
        await workflow.reviews.submit_review("r1", ReviewSubmission(recommendation="accept"), "rev-2")
    with pytest.raises(NotFound):
        await workflow.reviews.submit_review("nope", ReviewSubmission(recommendation="accept"), "rev-2")


@pytest.mark.asyncio
async def test_decline_releases_slot_and_can_complete_aggregation(workflow, seed, repo, dispatcher) -> None:
    _setup(seed, statuses=("pending", "accepted", "accepted"))
    await workflow.reviews.submit_review("r2", ReviewSubmission(recommendation="accept"), "rev-2")
    await workflow.reviews.submit_review("r3", ReviewSubmission(recommendation="accept"), "rev-3")
    assert repo.submissions["sub-art-1"].status == "under_review"

    declined = await workflow.reviews.respond_to_invitation("r1", "rev-1", accept=False)

    assert declined.status == "declined"
    assert repo.reviewer_profiles["rev-1"].current_review_load == 0
    assert dispatcher.types_for("ed-1").count("REVIEW_DECLINED") == 1
    assert repo.submissions["sub-art-1"].status == "accepted"

    with pytest.raises(ValidationError):
        await workflow.reviews.respond_to_invitation("r1", "rev-1", accept=True)


@pytest.mark.asyncio
async def test_accept_then_start_review(workflow, seed, repo) -> None:
    _setup(seed, statuses=("pending", "accepted", "accepted"))

    with pytest.raises(ValidationError):
        await workflow.reviews.start_review("r1", "rev-1")

    accepted = await workflow.reviews.respond_to_invitation("r1", "rev-1", accept=True)
    assert accepted.status == "accepted"
    assert repo.reviewer_profiles["rev-1"].current_review_load == 1

    started = await workflow.reviews.start_review("r1", "rev-1")
    assert started.status == "in_progress"


@pytest.mark.asyncio
async def test_overdue_sweep_marks_only_stale_pending_reviews(workflow, seed, repo, dispatcher, clock) -> None:
    seed.editor("ed-1")
    seed.article(status="under_review", editor_id="ed-1")
    seed.reviewer("rev-old", current_review_load=1)
    seed.reviewer("rev-new", current_review_load=1)
    seed.reviewer("rev-busy", current_review_load=1)
    seed.review("r-old", "art-1", "rev-old", created_at=clock.now() - timedelta(days=22))
    seed.review("r-new", "art-1", "rev-new", created_at=clock.now() - timedelta(days=5))
    seed.review("r-busy", "art-1", "rev-busy", status="in_progress", created_at=clock.now() - timedelta(days=40))

    assert await workflow.reviews.check_overdue_reviews() == 1
    assert repo.reviews["r-old"].status == "overdue"
    assert repo.reviews["r-new"].status == "pending"
    assert repo.reviews["r-busy"].status == "in_progress"
    assert repo.reviewer_profiles["rev-old"].late_reviews == 1
    assert dispatcher.types_for("rev-old") == ["REVIEW_OVERDUE"]
    assert repo.submissions["sub-art-1"].status == "under_review"

    assert await workflow.reviews.check_overdue_reviews() == 0
    assert repo.reviewer_profiles["rev-old"].late_reviews == 1

    # 超期后仍可提交意见
    done = await workflow.reviews.submit_review("r-old", ReviewSubmission(recommendation="accept"), "rev-old")
    assert done.status == "completed"
    assert repo.reviewer_profiles["rev-old"].current_review_load == 0
