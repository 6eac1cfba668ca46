from __future__ import annotations

import logging
import re
from datetime import datetime, timezone
from typing import Iterable, List, Optional

from editorial.core.clock import Clock, SystemClock
from editorial.core.role_matrix import REVIEWER_ROLE
from editorial.models.assignment import RecommendedReviewer, ReviewerCandidate, ReviewerCriteria
from editorial.models.profiles import ReviewerProfile, UserAccount
from editorial.models.submission import Article
from editorial.services.repository import WorkflowRepository

logger = logging.getLogger(__name__)

EXPERTISE_WEIGHT = 0.40
WORKLOAD_WEIGHT = 0.20
QUALITY_WEIGHT = 0.20
RELIABILITY_WEIGHT = 0.15
RECENCY_WEIGHT = 0.05

NEW_REVIEWER_BASE_SCORE = 0.7
NEW_REVIEWER_EXPERTISE_BONUS = 0.2
NEW_REVIEWER_AFFILIATION_BONUS = 0.1
AFFILIATION_SIGNAL_LENGTH = 20

_TOKEN_SPLIT_RE = re.compile(r"[,;]")


def _clamp(value: float) -> float:
    return max(0.0, min(1.0, float(value)))


def _terms_match(a: str, b: str) -> bool:
    # 中文注释: 大小写不敏感的双向子串匹配（"genomics" 与 "cancer genomics" 视为匹配）
    x = a.strip().lower()
    y = b.strip().lower()
    if not x or not y:
        return False
    return x in y or y in x


def calculate_expertise_match(reviewer_expertise: Iterable[str], article_keywords: Iterable[str]) -> float:
    expertise = [e for e in (str(x or "").strip() for x in reviewer_expertise) if e]
    keywords = [k for k in (str(x or "").strip() for x in article_keywords) if k]
    if not expertise or not keywords:
        return 0.0
    matches = [e for e in expertise if any(_terms_match(e, k) for k in keywords)]
    return len(matches) / max(len(expertise), len(keywords))


def calculate_workload_score(current_load: int, max_load: int) -> float:
    if max_load <= 0:
        return 0.0
    return _clamp(1 - (current_load / max_load))


def calculate_reliability_score(completed: int, late: int) -> float:
    if completed <= 0:
        # 新审稿人给中性先验
        return 0.5
    return completed / (completed + late * 2)


def calculate_recency_score(last_review_date: Optional[datetime], now: datetime) -> float:
    """
    从未审过稿 -> 1；30 天内 -> 0.7；超过 180 天 -> 0.3；30~180 天 -> 1。
    """
    if last_review_date is None:
        return 1.0
    last = last_review_date if last_review_date.tzinfo else last_review_date.replace(tzinfo=timezone.utc)
    current = now if now.tzinfo else now.replace(tzinfo=timezone.utc)
    days = (current - last).days
    if days < 30:
        return 0.7
    if days > 180:
        return 0.3
    return 1.0


def composite_score(
    *,
    expertise_match: float,
    workload: float,
    quality: float,
    reliability: float,
    recency: float,
) -> float:
    total = (
        expertise_match * EXPERTISE_WEIGHT
        + workload * WORKLOAD_WEIGHT
        + quality * QUALITY_WEIGHT
        + reliability * RELIABILITY_WEIGHT
        + recency * RECENCY_WEIGHT
    )
    return round(_clamp(total), 2)


def rank_candidates(candidates: Iterable[ReviewerCandidate]) -> List[ReviewerCandidate]:
    """
    排序：final_score 降序 -> 当前工作量升序 -> id 升序（结果可复现）。
    """
    return sorted(candidates, key=lambda c: (-c.final_score, c.current_load, c.id))


class ReviewerScoringService:
    """
    审稿人综合评分（0~1）。

    中文注释:
    1) 已在系统内的审稿人：专业匹配 40% + 工作量 20% + 质量 20% + 可靠性 15% + 近期活跃度 5%。
    2) 作者推荐但尚未注册的审稿人：基础分 0.7，专业关键词命中 +0.2，机构信息较完整 +0.1，封顶 1.0。
    3) 资格过滤在评分之前执行；不合格的人不会被计算分数。
    """

    def __init__(
        self,
        repository: WorkflowRepository,
        *,
        clock: Optional[Clock] = None,
    ) -> None:
        self._repo = repository
        self._clock = clock or SystemClock()

    @staticmethod
    def is_eligible(
        user: UserAccount,
        profile: ReviewerProfile,
        *,
        article: Article,
        criteria: ReviewerCriteria,
        exclude: Iterable[str] = (),
    ) -> bool:
        excluded = {str(x) for x in exclude} | {str(x) for x in criteria.exclude_conflicts}
        if user.role != REVIEWER_ROLE or not user.is_active:
            return False
        if not profile.is_active or profile.availability_status != "available":
            return False
        if profile.current_review_load >= profile.max_reviews_per_month:
            return False
        if profile.quality_score < criteria.min_quality_score:
            return False
        if user.id == article.author_id or user.id in excluded:
            return False
        return True

    def score_existing_reviewer(
        self,
        profile: Optional[ReviewerProfile],
        article: Article,
        *,
        expertise: Optional[Iterable[str]] = None,
    ) -> float:
        now = self._clock.now()
        if profile is None:
            # 中文注释: 推荐的已注册用户可能还没有审稿人档案，缺失项取中性默认值
            return composite_score(
                expertise_match=calculate_expertise_match(expertise or [], article.keywords),
                workload=0.5,
                quality=0.7,
                reliability=0.5,
                recency=1.0,
            )
        return composite_score(
            expertise_match=calculate_expertise_match(
                expertise if expertise is not None else profile.expertise, article.keywords
            ),
            workload=calculate_workload_score(profile.current_review_load, profile.max_reviews_per_month),
            quality=_clamp(profile.quality_score / 100),
            reliability=calculate_reliability_score(profile.completed_reviews, profile.late_reviews),
            recency=calculate_recency_score(profile.last_review_date, now),
        )

    @staticmethod
    def score_new_recommended_reviewer(recommended: RecommendedReviewer, article: Article) -> float:
        score = NEW_REVIEWER_BASE_SCORE
        if recommended.expertise:
            tokens = [t.strip() for t in _TOKEN_SPLIT_RE.split(recommended.expertise) if t.strip()]
            if any(_terms_match(t, k) for t in tokens for k in article.keywords):
                score += NEW_REVIEWER_EXPERTISE_BONUS
        if recommended.affiliation and len(recommended.affiliation) > AFFILIATION_SIGNAL_LENGTH:
            score += NEW_REVIEWER_AFFILIATION_BONUS
        return round(min(score, 1.0), 2)

    async def find_suitable_reviewers(
        self,
        article: Article,
        criteria: ReviewerCriteria,
        exclude_users: Iterable[str] = (),
    ) -> List[ReviewerCandidate]:
        """
        系统内候选审稿人：资格过滤 -> 评分 -> 排序 -> TopN（默认 10）。
        """
        exclude = [str(x) for x in exclude_users if x]
        pool = await self._repo.list_reviewer_pool(
            criteria.model_copy(update={"exclude_conflicts": [*criteria.exclude_conflicts, *exclude, article.author_id]})
        )

        scored: List[ReviewerCandidate] = []
        for user, profile in pool:
            if not self.is_eligible(user, profile, article=article, criteria=criteria, exclude=exclude):
                continue
            score = self.score_existing_reviewer(profile, article)
            scored.append(
                ReviewerCandidate(
                    id=user.id,
                    email=user.email,
                    name=user.display_name,
                    score=score,
                    final_score=score,
                    current_load=profile.current_review_load,
                    source="system_found",
                )
            )

        ranked = rank_candidates(scored)[: max(1, int(criteria.limit))]
        logger.debug("[ReviewerScoring] article=%s pool=%s eligible=%s", article.id, len(pool), len(scored))
        return ranked
