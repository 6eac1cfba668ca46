from datetime import timedelta

import pytest

from editorial.models.assignment import RecommendedReviewer, ReviewerCandidate, ReviewerCriteria
from editorial.services.reviewer_scoring import (
    ReviewerScoringService,
    calculate_expertise_match,
    calculate_recency_score,
    calculate_reliability_score,
    calculate_workload_score,
    composite_score,
    rank_candidates,
)


def test_expertise_match_is_case_insensitive_substring() -> None:
    assert calculate_expertise_match(["Machine Learning", "statistics"], ["machine learning", "genomics"]) == 0.5
    assert calculate_expertise_match(["genomics"], ["cancer genomics"]) == 1.0
    assert calculate_expertise_match([], ["x"]) == 0.0
    assert calculate_expertise_match(["x"], []) == 0.0


def test_workload_and_reliability_scores() -> None:
    assert calculate_workload_score(0, 3) == 1.0
    assert calculate_workload_score(1, 3) == pytest.approx(2 / 3)
    assert calculate_workload_score(5, 3) == 0.0
    assert calculate_reliability_score(0, 0) == 0.5
    assert calculate_reliability_score(8, 1) == pytest.approx(0.8)


def test_recency_bands(clock) -> None:
    now = clock.now()
    assert calculate_recency_score(None, now) == 1.0
    assert calculate_recency_score(now - timedelta(days=10), now) == 0.7
    assert calculate_recency_score(now - timedelta(days=100), now) == 1.0
    assert calculate_recency_score(now - timedelta(days=200), now) == 0.3


def test_composite_score_weights_and_rounding() -> None:
    assert composite_score(expertise_match=1, workload=1, quality=1, reliability=1, recency=1) == 1.0
    score = composite_score(expertise_match=0.5, workload=2 / 3, quality=0.8, reliability=0.8, recency=1.0)
    assert score == 0.66


def test_new_recommended_reviewer_heuristic(seed, repo) -> None:
    seed.article()
    article = repo.articles["art-1"]

    strong = RecommendedReviewer(
        id="rec-1",
        article_id="art-1",
        name="Dr Strong",
        email="strong@uni.edu",
        affiliation="Institute of Molecular Biology, Heidelberg",
        expertise="Genomics; proteomics",
    )
    weak = RecommendedReviewer(id="rec-2", article_id="art-1", name="Dr Weak", email="weak@uni.edu", affiliation="MIT")

    assert ReviewerScoringService.score_new_recommended_reviewer(strong, article) == 1.0
    assert ReviewerScoringService.score_new_recommended_reviewer(weak, article) == 0.7


def test_rank_candidates_breaks_ties_by_load_then_id() -> None:
    a = ReviewerCandidate(id="b", email="b@x", score=0.8, final_score=0.8, current_load=1)
    b = ReviewerCandidate(id="a", email="a@x", score=0.8, final_score=0.8, current_load=1)
    c = ReviewerCandidate(id="c", email="c@x", score=0.8, final_score=0.8, current_load=0)
    d = ReviewerCandidate(id="d", email="d@x", score=0.5, final_score=0.96, current_load=2)
    assert [x.id for x in rank_candidates([a, b, c, d])] == ["d", "c", "a", "b"]


def test_display_score_is_clamped() -> None:
    boosted = ReviewerCandidate(id="x", email="x@x", score=0.95, final_score=1.14, source="recommended_new")
    assert boosted.display_score == 1.0
    assert boosted.is_recommended is True


@pytest.mark.asyncio
async def test_find_suitable_reviewers_filters_before_scoring(workflow, seed, repo) -> None:
    seed.article(author_id="author-1")
    seed.reviewer("rev-ok", expertise=["genomics"])
    seed.reviewer("rev-full", expertise=["genomics"], current_review_load=3)
    seed.reviewer("rev-low-quality", expertise=["genomics"], quality_score=60)
    seed.reviewer("rev-away", expertise=["genomics"], availability_status="on_leave")
    seed.reviewer("rev-conflict", expertise=["genomics"])
    seed.user("rev-inactive", "reviewer", active=False)
    repo.add_reviewer_profile(repo.reviewer_profiles["rev-ok"].model_copy(update={"user_id": "rev-inactive"}))
    # 作者本人即便有审稿档案也必须排除
    repo.add_reviewer_profile(repo.reviewer_profiles["rev-ok"].model_copy(update={"user_id": "author-1"}))

    article = repo.articles["art-1"]
    criteria = ReviewerCriteria(expertise=article.keywords, exclude_conflicts=["rev-conflict"])
    found = await workflow.scoring.find_suitable_reviewers(article, criteria)

    assert [c.id for c in found] == ["rev-ok"]
    assert found[0].source == "system_found"
    assert 0 <= found[0].score <= 1


@pytest.mark.asyncio
async def test_find_suitable_reviewers_respects_limit_and_order(workflow, seed, repo) -> None:
    seed.article()
    for i in range(5):
        seed.reviewer(f"rev-{i}", expertise=["genomics"] if i % 2 == 0 else ["astronomy"])

    article = repo.articles["art-1"]
    found = await workflow.scoring.find_suitable_reviewers(article, ReviewerCriteria(limit=2))

    assert len(found) == 2
    assert [c.id for c in found] == ["rev-0", "rev-2"]
    assert found[0].final_score >= found[1].final_score
