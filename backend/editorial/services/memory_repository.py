from __future__ import annotations

from datetime import datetime
from typing import Any, Iterable, Optional

from editorial.core.errors import NotFound, StaleSubmission, ValidationError
from editorial.models.assignment import EditorAssignment, RecommendedReviewer, ReviewerCriteria
from editorial.models.profiles import EditorProfile, ReviewerProfile, UserAccount
from editorial.models.reviews import OUTSTANDING_REVIEW_STATUSES, Review, ReviewStatus
from editorial.models.submission import Article, Submission


class InMemoryWorkflowRepository:
    """
    进程内仓储实现（单测 / 本地演示）。

    中文注释:
    - 每个方法体内部没有 await，因此在单事件循环里天然是原子的；
      adjust_* 与 save_transition 的语义与数据库实现保持一致（原子增减、CAS）。
    - 读写都做 deep copy，调用方拿到的对象与内部存储互不影响。
    """

    def __init__(self) -> None:
        self.users: dict[str, UserAccount] = {}
        self.articles: dict[str, Article] = {}
        self.submissions: dict[str, Submission] = {}
        self.reviews: dict[str, Review] = {}
        self.reviewer_profiles: dict[str, ReviewerProfile] = {}
        self.editor_profiles: dict[str, EditorProfile] = {}
        self.editor_assignments: dict[str, EditorAssignment] = {}
        self.recommended: dict[str, RecommendedReviewer] = {}

    # --- seeding helpers (not part of WorkflowRepository) ---
    def add_user(self, user: UserAccount) -> UserAccount:
        self.users[user.id] = user.model_copy(deep=True)
        return user

    def add_reviewer_profile(self, profile: ReviewerProfile) -> ReviewerProfile:
        self.reviewer_profiles[profile.user_id] = profile.model_copy(deep=True)
        return profile

    def add_editor_profile(self, profile: EditorProfile) -> EditorProfile:
        self.editor_profiles[profile.user_id] = profile.model_copy(deep=True)
        return profile

    # --- users ---
    async def get_user(self, user_id: str) -> Optional[UserAccount]:
        return _copy(self.users.get(str(user_id)))

    async def get_user_by_email(self, email: str) -> Optional[UserAccount]:
        needle = (email or "").strip().lower()
        if not needle:
            return None
        for user in self.users.values():
            if user.email.strip().lower() == needle:
                return _copy(user)
        return None

    # --- articles / submissions ---
    async def create_submission(
        self,
        article: Article,
        submission: Submission,
        recommended: Iterable[RecommendedReviewer] = (),
    ) -> None:
        rows = list(recommended)
        if article.id in self.articles or submission.id in self.submissions:
            raise ValueError("duplicate article/submission id")
        self.articles[article.id] = article.model_copy(deep=True)
        self.submissions[submission.id] = submission.model_copy(deep=True)
        for rec in rows:
            self.recommended[rec.id] = rec.model_copy(deep=True)

    async def get_article(self, article_id: str) -> Optional[Article]:
        return _copy(self.articles.get(str(article_id)))

    async def add_article_reviewers(self, article_id: str, reviewer_ids: Iterable[str], *, now: datetime) -> Article:
        current = self.articles.get(str(article_id))
        if current is None:
            raise NotFound("Article not found")
        merged = list(dict.fromkeys([*current.reviewer_ids, *[str(r) for r in reviewer_ids]]))
        updated = current.model_copy(update={"reviewer_ids": merged, "updated_at": now}, deep=True)
        self.articles[current.id] = updated
        return updated.model_copy(deep=True)

    async def get_submission(self, submission_id: str) -> Optional[Submission]:
        return _copy(self.submissions.get(str(submission_id)))

    async def get_submission_by_article(self, article_id: str) -> Optional[Submission]:
        for sub in self.submissions.values():
            if sub.article_id == str(article_id):
                return _copy(sub)
        return None

    async def save_transition(
        self,
        submission: Submission,
        *,
        expected_version: int,
        article_fields: Optional[dict[str, Any]] = None,
    ) -> Submission:
        current = self.submissions.get(submission.id)
        if current is None:
            raise NotFound("Submission not found")
        if current.version != expected_version:
            raise StaleSubmission(
                f"Submission {submission.id} was modified concurrently "
                f"(expected version {expected_version}, found {current.version})"
            )
        self.submissions[submission.id] = submission.model_copy(deep=True)
        article = self.articles.get(submission.article_id)
        if article is not None:
            update = {"status": submission.status, "updated_at": submission.updated_at}
            update.update(article_fields or {})
            self.articles[article.id] = article.model_copy(update=update, deep=True)
        return submission.model_copy(deep=True)

    # --- recommended reviewers ---
    async def list_recommended_reviewers(self, article_id: str) -> list[RecommendedReviewer]:
        rows = [r for r in self.recommended.values() if r.article_id == str(article_id)]
        return [r.model_copy(deep=True) for r in rows]

    async def mark_recommended_contacted(
        self,
        recommended_id: str,
        *,
        now: datetime,
        notes: Optional[str] = None,
    ) -> RecommendedReviewer:
        current = self.recommended.get(str(recommended_id))
        if current is None:
            raise NotFound("Recommended reviewer not found")
        updated = current.model_copy(
            update={
                "status": "contacted",
                "contact_attempts": current.contact_attempts + 1,
                "notes": notes if notes is not None else current.notes,
                "last_contacted_at": now,
            }
        )
        self.recommended[current.id] = updated
        return updated.model_copy(deep=True)

    # --- reviewers ---
    async def list_reviewer_pool(self, criteria: ReviewerCriteria) -> list[tuple[UserAccount, ReviewerProfile]]:
        excluded = {str(x) for x in criteria.exclude_conflicts}
        out: list[tuple[UserAccount, ReviewerProfile]] = []
        for user_id in sorted(self.reviewer_profiles):
            user = self.users.get(user_id)
            if user is None or user_id in excluded:
                continue
            out.append((user.model_copy(deep=True), self.reviewer_profiles[user_id].model_copy(deep=True)))
        return out

    async def get_reviewer_profile(self, user_id: str) -> Optional[ReviewerProfile]:
        return _copy(self.reviewer_profiles.get(str(user_id)))

    async def adjust_reviewer_counters(
        self,
        user_id: str,
        *,
        load_delta: int = 0,
        completed_delta: int = 0,
        late_delta: int = 0,
        last_review_date: Optional[datetime] = None,
    ) -> Optional[ReviewerProfile]:
        current = self.reviewer_profiles.get(str(user_id))
        if current is None:
            return None
        update: dict[str, Any] = {
            "current_review_load": max(0, current.current_review_load + load_delta),
            "completed_reviews": max(0, current.completed_reviews + completed_delta),
            "late_reviews": max(0, current.late_reviews + late_delta),
        }
        if last_review_date is not None:
            update["last_review_date"] = last_review_date
        updated = current.model_copy(update=update)
        self.reviewer_profiles[current.user_id] = updated
        return updated.model_copy(deep=True)

    # --- reviews ---
    async def insert_review(self, review: Review) -> Review:
        if review.id in self.reviews:
            raise ValueError(f"duplicate review id {review.id}")
        # 与数据库的部分唯一索引 (article_id, reviewer_id) WHERE status 未结束 保持一致
        if any(
            r.article_id == review.article_id
            and r.reviewer_id == review.reviewer_id
            and r.status in OUTSTANDING_REVIEW_STATUSES
            for r in self.reviews.values()
        ):
            raise ValidationError(f"Reviewer {review.reviewer_id} is already assigned")
        self.reviews[review.id] = review.model_copy(deep=True)
        return review.model_copy(deep=True)

    async def get_review(self, review_id: str) -> Optional[Review]:
        return _copy(self.reviews.get(str(review_id)))

    async def update_review(
        self,
        review_id: str,
        fields: dict[str, Any],
        *,
        expected_status: Optional[Iterable[str]] = None,
    ) -> Optional[Review]:
        current = self.reviews.get(str(review_id))
        if current is None:
            raise NotFound("Review not found")
        if expected_status is not None and current.status not in set(expected_status):
            return None
        updated = current.model_copy(update=dict(fields), deep=True)
        self.reviews[current.id] = updated
        return updated.model_copy(deep=True)

    async def list_reviews_for_article(self, article_id: str) -> list[Review]:
        rows = [r for r in self.reviews.values() if r.article_id == str(article_id)]
        rows.sort(key=lambda r: (r.created_at, r.id))
        return [r.model_copy(deep=True) for r in rows]

    async def list_stale_pending_reviews(self, created_before: datetime) -> list[Review]:
        rows = [
            r
            for r in self.reviews.values()
            if r.status == ReviewStatus.PENDING.value and r.created_at < created_before
        ]
        rows.sort(key=lambda r: (r.created_at, r.id))
        return [r.model_copy(deep=True) for r in rows]

    # --- editors ---
    async def list_editor_pool(self, roles: Iterable[str]) -> list[tuple[UserAccount, EditorProfile]]:
        wanted = {str(r) for r in roles}
        out: list[tuple[UserAccount, EditorProfile]] = []
        for user_id in sorted(self.editor_profiles):
            user = self.users.get(user_id)
            if user is None or user.role not in wanted:
                continue
            out.append((user.model_copy(deep=True), self.editor_profiles[user_id].model_copy(deep=True)))
        return out

    async def adjust_editor_workload(self, user_id: str, delta: int) -> Optional[EditorProfile]:
        current = self.editor_profiles.get(str(user_id))
        if current is None:
            return None
        updated = current.model_copy(update={"current_workload": max(0, current.current_workload + delta)})
        self.editor_profiles[current.user_id] = updated
        return updated.model_copy(deep=True)

    async def insert_editor_assignment(self, assignment: EditorAssignment) -> EditorAssignment:
        self.editor_assignments[assignment.id] = assignment.model_copy(deep=True)
        return assignment.model_copy(deep=True)

    async def find_pending_editor_assignment(self, article_id: str, editor_id: str) -> Optional[EditorAssignment]:
        for row in self.editor_assignments.values():
            if row.article_id == str(article_id) and row.editor_id == str(editor_id) and row.status == "pending":
                return row.model_copy(deep=True)
        return None

    async def expire_editor_assignments(self, now: datetime) -> int:
        expired = 0
        for key, row in list(self.editor_assignments.items()):
            if row.status == "pending" and row.deadline < now:
                self.editor_assignments[key] = row.model_copy(update={"status": "expired"})
                expired += 1
        return expired


def _copy(model):
    if model is None:
        return None
    return model.model_copy(deep=True)
