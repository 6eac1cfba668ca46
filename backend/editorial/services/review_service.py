from __future__ import annotations

import logging
from datetime import timedelta
from typing import Iterable, Optional

from editorial.core.clock import Clock, SystemClock
from editorial.core.config import WorkflowConfig
from editorial.core.errors import InvalidTransition, NotFound, ValidationError
from editorial.models.reviews import (
    OUTSTANDING_REVIEW_STATUSES,
    Review,
    ReviewRecommendation,
    ReviewStatus,
    ReviewSubmission,
)
from editorial.models.submission import SYSTEM_ACTOR
from editorial.models.workflow import WorkflowStatus
from editorial.services.editorial_service import EditorialService
from editorial.services.notification_service import BestEffortNotifier
from editorial.services.repository import WorkflowRepository

logger = logging.getLogger(__name__)

_REVISION_RECOMMENDATIONS = frozenset(
    {ReviewRecommendation.MAJOR_REVISION.value, ReviewRecommendation.MINOR_REVISION.value}
)


def determine_article_status_from_reviews(reviews: Iterable[Review]) -> Optional[str]:
    """
    审稿意见汇总：任一 reject -> rejected；否则任一大/小修 -> revision_requested；
    全部 accept -> accepted；没有已完成的意见 -> None（不改状态）。
    """
    recommendations = [r.recommendation for r in reviews if r.recommendation]
    if not recommendations:
        return None
    if ReviewRecommendation.REJECT.value in recommendations:
        return WorkflowStatus.REJECTED.value
    if any(r in _REVISION_RECOMMENDATIONS for r in recommendations):
        return WorkflowStatus.REVISION_REQUESTED.value
    if all(r == ReviewRecommendation.ACCEPT.value for r in recommendations):
        return WorkflowStatus.ACCEPTED.value
    return None


class ReviewManagementService:
    """
    审稿任务生命周期：邀请响应 -> 开始审稿 -> 提交意见 -> 汇总决定；以及超期巡检。

    中文注释:
    - 审稿人工作量只通过仓储的原子增减修改：接受分配 +1，拒绝/完成 -1。
    - 审稿状态写入带 expected_status（CAS），重复提交不会二次扣减计数。
    - 汇总决定可重复执行：状态已是结论或流转不合法时为 no-op。
    """

    def __init__(
        self,
        repository: WorkflowRepository,
        editorial: EditorialService,
        notifier: BestEffortNotifier,
        *,
        config: Optional[WorkflowConfig] = None,
        clock: Optional[Clock] = None,
    ) -> None:
        self._repo = repository
        self._editorial = editorial
        self._notifier = notifier
        self._config = config or WorkflowConfig.from_env()
        self._clock = clock or SystemClock()

    async def _load_owned_review(self, review_id: str, reviewer_id: str) -> Review:
        review = await self._repo.get_review(review_id)
        if review is None:
            raise NotFound("Review not found")
        if review.reviewer_id != reviewer_id:
            raise ValidationError("Review is not assigned to this reviewer")
        return review

    async def respond_to_invitation(self, review_id: str, reviewer_id: str, accept: bool) -> Review:
        review = await self._load_owned_review(review_id, reviewer_id)
        if review.status != ReviewStatus.PENDING.value:
            raise ValidationError("Invitation has already been answered")

        new_status = ReviewStatus.ACCEPTED if accept else ReviewStatus.DECLINED
        updated = await self._repo.update_review(
            review.id,
            {"status": new_status.value, "responded_at": self._clock.now()},
            expected_status={ReviewStatus.PENDING.value},
        )
        if updated is None:
            raise ValidationError("Invitation has already been answered")

        if accept:
            return updated

        await self._repo.adjust_reviewer_counters(reviewer_id, load_delta=-1)
        article = await self._repo.get_article(review.article_id)
        recipient = review.invited_by if review.invited_by and review.invited_by != SYSTEM_ACTOR else None
        if article is not None:
            await self._notifier.notify(
                recipient or article.editor_id,
                "REVIEW_DECLINED",
                "Review Invitation Declined",
                f'A reviewer declined the invitation for "{article.title}"',
                article.id,
            )
        # 其余审稿均已完成时，拒绝可能让汇总条件成立
        await self.aggregate_reviews(review.article_id)
        return updated

    async def start_review(self, review_id: str, reviewer_id: str) -> Review:
        review = await self._load_owned_review(review_id, reviewer_id)
        updated = await self._repo.update_review(
            review.id,
            {"status": ReviewStatus.IN_PROGRESS.value},
            expected_status={ReviewStatus.ACCEPTED.value},
        )
        if updated is None:
            raise ValidationError(f"Review cannot be started from status {review.status}")
        return updated

    async def submit_review(self, review_id: str, data: ReviewSubmission, reviewer_id: str) -> Review:
        review = await self._load_owned_review(review_id, reviewer_id)
        if review.status == ReviewStatus.COMPLETED.value:
            raise ValidationError("Review has already been submitted")
        if review.status not in OUTSTANDING_REVIEW_STATUSES:
            raise ValidationError(f"Review cannot be submitted from status {review.status}")

        now = self._clock.now()
        updated = await self._repo.update_review(
            review.id,
            {
                "status": ReviewStatus.COMPLETED.value,
                "recommendation": data.recommendation,
                "comments": data.comments,
                "confidential_comments": data.confidential_comments,
                "rating": data.rating,
                "submitted_at": now,
            },
            expected_status=OUTSTANDING_REVIEW_STATUSES,
        )
        if updated is None:
            raise ValidationError("Review has already been submitted")

        await self._repo.adjust_reviewer_counters(
            reviewer_id,
            load_delta=-1,
            completed_delta=1,
            last_review_date=now,
        )
        logger.info("[Reviews] review=%s completed (%s)", review.id, data.recommendation)

        article = await self._repo.get_article(review.article_id)
        if article is not None:
            await self._notifier.notify(
                article.editor_id,
                "REVIEW_SUBMITTED",
                "Review Submitted",
                f'A review has been submitted for "{article.title}"',
                article.id,
            )

        await self.aggregate_reviews(review.article_id)
        return updated

    async def aggregate_reviews(self, article_id: str) -> Optional[str]:
        """
        所有未拒绝的审稿都完成后按规则汇总并推进稿件状态。

        返回本次实际应用的状态；条件不满足或已应用过时返回 None。
        """
        reviews = await self._repo.list_reviews_for_article(article_id)
        active = [r for r in reviews if r.status != ReviewStatus.DECLINED.value]
        if any(r.status in OUTSTANDING_REVIEW_STATUSES for r in active):
            return None

        completed = [r for r in active if r.status == ReviewStatus.COMPLETED.value]
        decision = determine_article_status_from_reviews(completed)
        if decision is None:
            return None

        submission = await self._repo.get_submission_by_article(article_id)
        if submission is None:
            raise NotFound("Submission not found")
        if submission.status == decision:
            return None
        if decision not in WorkflowStatus.allowed_next(submission.status):
            logger.info(
                "[Reviews] skip aggregation for article=%s: %s -> %s not allowed",
                article_id,
                submission.status,
                decision,
            )
            return None

        try:
            await self._editorial.update_submission_status(
                submission.id,
                decision,
                SYSTEM_ACTOR,
                f"All reviews completed. Decision: {decision}",
            )
        except InvalidTransition as e:
            # 并发汇总：另一路已先推进状态
            logger.info("[Reviews] aggregation already applied for article=%s: %s", article_id, e.detail)
            return None

        article = await self._repo.get_article(article_id)
        if article is not None:
            message = f'All reviews completed for "{article.title}". Decision: {decision}'
            await self._notifier.notify(article.editor_id, "REVIEWS_COMPLETE", "All Reviews Completed", message, article.id)
            await self._notifier.notify(article.author_id, "REVIEWS_COMPLETE", "All Reviews Completed", message, article.id)
            author = await self._repo.get_user(article.author_id)
            if author is not None:
                await self._notifier.send_email(
                    author.email,
                    "reviews_complete",
                    {
                        "recipient_name": author.display_name,
                        "article_title": article.title,
                        "decision": decision.replace("_", " "),
                    },
                )
        return decision

    async def check_overdue_reviews(self) -> int:
        """
        将创建超过 review_overdue_days 仍未响应的审稿标记为 overdue（稿件状态不变）。
        """
        now = self._clock.now()
        cutoff = now - timedelta(days=self._config.review_overdue_days)
        stale = await self._repo.list_stale_pending_reviews(cutoff)

        marked = 0
        for review in stale:
            updated = await self._repo.update_review(
                review.id,
                {"status": ReviewStatus.OVERDUE.value},
                expected_status={ReviewStatus.PENDING.value},
            )
            if updated is None:
                continue
            await self._repo.adjust_reviewer_counters(review.reviewer_id, late_delta=1)
            await self._notifier.notify(
                review.reviewer_id,
                "REVIEW_OVERDUE",
                "Review Overdue",
                "Your review assignment is overdue. Please submit your review as soon as possible.",
                review.article_id,
            )
            marked += 1

        if marked:
            logger.info("[Reviews] marked %s reviews overdue", marked)
        return marked
