from __future__ import annotations

from datetime import datetime
from typing import Any, Iterable, Optional, Protocol

from editorial.models.assignment import EditorAssignment, RecommendedReviewer, ReviewerCriteria
from editorial.models.profiles import EditorProfile, ReviewerProfile, UserAccount
from editorial.models.reviews import Review
from editorial.models.submission import Article, Submission


class WorkflowRepository(Protocol):
    """
    工作流数据访问接口（存储引擎无关）。

    中文注释:
    - 所有方法都是 I/O 边界（async）；编排逻辑本身是纯计算。
    - 计数器（审稿人工作量、编辑工作量、联系次数）只允许通过 adjust_* 原子增减，
      禁止在应用层读-改-写。
    - save_transition 必须把 status + status_history + 稿件状态镜像作为一次原子写入，
      并以 expected_version 做比较交换；版本不符时抛 StaleSubmission。
    - update_review 传入 expected_status 时同样是比较交换：状态不符返回 None。
    """

    # --- users ---
    async def get_user(self, user_id: str) -> Optional[UserAccount]: ...

    async def get_user_by_email(self, email: str) -> Optional[UserAccount]: ...

    # --- articles / submissions ---
    async def create_submission(
        self,
        article: Article,
        submission: Submission,
        recommended: Iterable[RecommendedReviewer] = (),
    ) -> None: ...

    async def get_article(self, article_id: str) -> Optional[Article]: ...

    async def add_article_reviewers(self, article_id: str, reviewer_ids: Iterable[str], *, now: datetime) -> Article: ...

    async def get_submission(self, submission_id: str) -> Optional[Submission]: ...

    async def get_submission_by_article(self, article_id: str) -> Optional[Submission]: ...

    async def save_transition(
        self,
        submission: Submission,
        *,
        expected_version: int,
        article_fields: Optional[dict[str, Any]] = None,
    ) -> Submission: ...

    # --- recommended reviewers ---
    async def list_recommended_reviewers(self, article_id: str) -> list[RecommendedReviewer]: ...

    async def mark_recommended_contacted(
        self,
        recommended_id: str,
        *,
        now: datetime,
        notes: Optional[str] = None,
    ) -> RecommendedReviewer: ...

    # --- reviewers ---
    async def list_reviewer_pool(self, criteria: ReviewerCriteria) -> list[tuple[UserAccount, ReviewerProfile]]: ...

    async def get_reviewer_profile(self, user_id: str) -> Optional[ReviewerProfile]: ...

    async def adjust_reviewer_counters(
        self,
        user_id: str,
        *,
        load_delta: int = 0,
        completed_delta: int = 0,
        late_delta: int = 0,
        last_review_date: Optional[datetime] = None,
    ) -> Optional[ReviewerProfile]: ...

    # --- reviews ---
    async def insert_review(self, review: Review) -> Review: ...

    async def get_review(self, review_id: str) -> Optional[Review]: ...

    async def update_review(
        self,
        review_id: str,
        fields: dict[str, Any],
        *,
        expected_status: Optional[Iterable[str]] = None,
    ) -> Optional[Review]: ...

    async def list_reviews_for_article(self, article_id: str) -> list[Review]: ...

    async def list_stale_pending_reviews(self, created_before: datetime) -> list[Review]: ...

    # --- editors ---
    async def list_editor_pool(self, roles: Iterable[str]) -> list[tuple[UserAccount, EditorProfile]]: ...

    async def adjust_editor_workload(self, user_id: str, delta: int) -> Optional[EditorProfile]: ...

    async def insert_editor_assignment(self, assignment: EditorAssignment) -> EditorAssignment: ...

    async def find_pending_editor_assignment(self, article_id: str, editor_id: str) -> Optional[EditorAssignment]: ...

    async def expire_editor_assignments(self, now: datetime) -> int: ...
