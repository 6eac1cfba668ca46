from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Iterable, Optional

from postgrest.exceptions import APIError

from editorial.core.errors import NotFound, StaleSubmission, ValidationError
from editorial.lib.api_client import create_supabase_admin
from editorial.models.assignment import EditorAssignment, RecommendedReviewer, ReviewerCriteria
from editorial.models.profiles import EditorProfile, ReviewerProfile, UserAccount
from editorial.models.reviews import Review, ReviewStatus
from editorial.models.submission import Article, Submission

logger = logging.getLogger(__name__)


def _rows(resp: Any) -> list[dict[str, Any]]:
    data = getattr(resp, "data", None)
    if data is None:
        return []
    if isinstance(data, dict):
        return [data]
    return list(data)


def _first(resp: Any) -> Optional[dict[str, Any]]:
    rows = _rows(resp)
    return rows[0] if rows else None


def _iso(value: datetime) -> str:
    return value.isoformat()


_UNIQUE_VIOLATION = "23505"


def _escape_like(value: str) -> str:
    # ilike 模式里反斜杠、% 和 _ 是元字符，邮箱需要按字面匹配
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


class SupabaseWorkflowRepository:
    """
    基于 Supabase PostgREST 的仓储实现。

    中文注释:
    - 普通读写直接走 table().select()/update() 链式调用。
    - 需要原子性的操作（投稿双表写入、状态 CAS、计数器增减）全部走数据库 RPC，
      由 Postgres 函数在单事务内完成，避免应用层读-改-写。
    - RPC 约定见 DESIGN.md 的 “Supabase RPC contract” 一节。
    """

    def __init__(self, client=None) -> None:
        self._db = client or create_supabase_admin()

    # --- users ---
    async def get_user(self, user_id: str) -> Optional[UserAccount]:
        resp = self._db.table("users").select("*").eq("id", str(user_id)).limit(1).execute()
        row = _first(resp)
        return UserAccount.model_validate(row) if row else None

    async def get_user_by_email(self, email: str) -> Optional[UserAccount]:
        needle = (email or "").strip().lower()
        if not needle:
            return None
        resp = self._db.table("users").select("*").ilike("email", _escape_like(needle)).limit(5).execute()
        # 中文注释: 转义之后仍做一次精确比对，PostgREST 会把 * 当作通配符
        for row in _rows(resp):
            if str(row.get("email") or "").strip().lower() == needle:
                return UserAccount.model_validate(row)
        return None

    # --- articles / submissions ---
    async def create_submission(
        self,
        article: Article,
        submission: Submission,
        recommended: Iterable[RecommendedReviewer] = (),
    ) -> None:
        self._db.rpc(
            "workflow_create_submission",
            {
                "p_article": article.model_dump(mode="json"),
                "p_submission": submission.model_dump(mode="json"),
                "p_recommended": [r.model_dump(mode="json") for r in recommended],
            },
        ).execute()

    async def get_article(self, article_id: str) -> Optional[Article]:
        resp = self._db.table("articles").select("*").eq("id", str(article_id)).limit(1).execute()
        row = _first(resp)
        return Article.model_validate(row) if row else None

    async def add_article_reviewers(self, article_id: str, reviewer_ids: Iterable[str], *, now: datetime) -> Article:
        resp = self._db.rpc(
            "workflow_add_article_reviewers",
            {"p_article_id": str(article_id), "p_reviewer_ids": [str(r) for r in reviewer_ids], "p_now": _iso(now)},
        ).execute()
        row = _first(resp)
        if not row:
            raise NotFound("Article not found")
        return Article.model_validate(row)

    async def get_submission(self, submission_id: str) -> Optional[Submission]:
        resp = self._db.table("submissions").select("*").eq("id", str(submission_id)).limit(1).execute()
        row = _first(resp)
        return Submission.model_validate(row) if row else None

    async def get_submission_by_article(self, article_id: str) -> Optional[Submission]:
        resp = self._db.table("submissions").select("*").eq("article_id", str(article_id)).limit(1).execute()
        row = _first(resp)
        return Submission.model_validate(row) if row else None

    async def save_transition(
        self,
        submission: Submission,
        *,
        expected_version: int,
        article_fields: Optional[dict[str, Any]] = None,
    ) -> Submission:
        payload = submission.model_dump(mode="json")
        resp = self._db.rpc(
            "workflow_transition_submission",
            {
                "p_submission_id": submission.id,
                "p_expected_version": int(expected_version),
                "p_status": payload["status"],
                "p_status_history": payload["status_history"],
                "p_updated_at": payload["updated_at"],
                "p_article_fields": {
                    k: (_iso(v) if isinstance(v, datetime) else v) for k, v in (article_fields or {}).items()
                },
            },
        ).execute()
        row = _first(resp)
        if not row:
            # 中文注释: RPC 在 version 不匹配时返回空集（0 行更新）
            raise StaleSubmission(f"Submission {submission.id} was modified concurrently")
        return Submission.model_validate(row)

    # --- recommended reviewers ---
    async def list_recommended_reviewers(self, article_id: str) -> list[RecommendedReviewer]:
        resp = (
            self._db.table("recommended_reviewers")
            .select("*")
            .eq("article_id", str(article_id))
            .order("created_at")
            .execute()
        )
        return [RecommendedReviewer.model_validate(r) for r in _rows(resp)]

    async def mark_recommended_contacted(
        self,
        recommended_id: str,
        *,
        now: datetime,
        notes: Optional[str] = None,
    ) -> RecommendedReviewer:
        resp = self._db.rpc(
            "workflow_mark_recommended_contacted",
            {"p_id": str(recommended_id), "p_now": _iso(now), "p_notes": notes},
        ).execute()
        row = _first(resp)
        if not row:
            raise NotFound("Recommended reviewer not found")
        return RecommendedReviewer.model_validate(row)

    # --- reviewers ---
    async def list_reviewer_pool(self, criteria: ReviewerCriteria) -> list[tuple[UserAccount, ReviewerProfile]]:
        query = (
            self._db.table("reviewer_profiles")
            .select("*, users!inner(*)")
            .eq("users.role", "reviewer")
            .eq("users.is_active", True)
            .eq("is_active", True)
            .eq("availability_status", "available")
            .gte("quality_score", criteria.min_quality_score)
        )
        excluded = sorted({str(x) for x in criteria.exclude_conflicts if x})
        if excluded:
            query = query.not_.in_("user_id", excluded)
        out: list[tuple[UserAccount, ReviewerProfile]] = []
        for row in _rows(query.execute()):
            user_row = row.pop("users", None) or {}
            if not user_row:
                continue
            out.append((UserAccount.model_validate(user_row), ReviewerProfile.model_validate(row)))
        return out

    async def get_reviewer_profile(self, user_id: str) -> Optional[ReviewerProfile]:
        resp = self._db.table("reviewer_profiles").select("*").eq("user_id", str(user_id)).limit(1).execute()
        row = _first(resp)
        return ReviewerProfile.model_validate(row) if row else None

    async def adjust_reviewer_counters(
        self,
        user_id: str,
        *,
        load_delta: int = 0,
        completed_delta: int = 0,
        late_delta: int = 0,
        last_review_date: Optional[datetime] = None,
    ) -> Optional[ReviewerProfile]:
        resp = self._db.rpc(
            "workflow_adjust_reviewer_counters",
            {
                "p_user_id": str(user_id),
                "p_load_delta": int(load_delta),
                "p_completed_delta": int(completed_delta),
                "p_late_delta": int(late_delta),
                "p_last_review_date": _iso(last_review_date) if last_review_date else None,
            },
        ).execute()
        row = _first(resp)
        return ReviewerProfile.model_validate(row) if row else None

    # --- reviews ---
    async def insert_review(self, review: Review) -> Review:
        try:
            resp = self._db.table("reviews").insert(review.model_dump(mode="json")).execute()
        except APIError as e:
            # 中文注释: reviews_outstanding_unique 索引冲突 = 该审稿人在本稿件上已有未结束的审稿任务
            if getattr(e, "code", None) == _UNIQUE_VIOLATION:
                logger.info("[SupabaseRepo] duplicate outstanding review article=%s reviewer=%s", review.article_id, review.reviewer_id)
                raise ValidationError(f"Reviewer {review.reviewer_id} is already assigned") from e
            logger.error("[SupabaseRepo] insert review failed: %s", e)
            raise
        row = _first(resp)
        return Review.model_validate(row) if row else review

    async def get_review(self, review_id: str) -> Optional[Review]:
        resp = self._db.table("reviews").select("*").eq("id", str(review_id)).limit(1).execute()
        row = _first(resp)
        return Review.model_validate(row) if row else None

    async def update_review(
        self,
        review_id: str,
        fields: dict[str, Any],
        *,
        expected_status: Optional[Iterable[str]] = None,
    ) -> Optional[Review]:
        payload = {k: (_iso(v) if isinstance(v, datetime) else v) for k, v in fields.items()}
        query = self._db.table("reviews").update(payload).eq("id", str(review_id))
        if expected_status is not None:
            query = query.in_("status", sorted(set(expected_status)))
        row = _first(query.execute())
        if row:
            return Review.model_validate(row)
        if expected_status is None:
            raise NotFound("Review not found")
        return None

    async def list_reviews_for_article(self, article_id: str) -> list[Review]:
        resp = (
            self._db.table("reviews")
            .select("*")
            .eq("article_id", str(article_id))
            .order("created_at")
            .execute()
        )
        return [Review.model_validate(r) for r in _rows(resp)]

    async def list_stale_pending_reviews(self, created_before: datetime) -> list[Review]:
        resp = (
            self._db.table("reviews")
            .select("*")
            .eq("status", ReviewStatus.PENDING.value)
            .lt("created_at", _iso(created_before))
            .order("created_at")
            .execute()
        )
        return [Review.model_validate(r) for r in _rows(resp)]

    # --- editors ---
    async def list_editor_pool(self, roles: Iterable[str]) -> list[tuple[UserAccount, EditorProfile]]:
        resp = (
            self._db.table("editor_profiles")
            .select("*, users!inner(*)")
            .in_("users.role", sorted({str(r) for r in roles}))
            .execute()
        )
        out: list[tuple[UserAccount, EditorProfile]] = []
        for row in _rows(resp):
            user_row = row.pop("users", None) or {}
            if not user_row:
                continue
            out.append((UserAccount.model_validate(user_row), EditorProfile.model_validate(row)))
        return out

    async def adjust_editor_workload(self, user_id: str, delta: int) -> Optional[EditorProfile]:
        resp = self._db.rpc(
            "workflow_adjust_editor_workload",
            {"p_user_id": str(user_id), "p_delta": int(delta)},
        ).execute()
        row = _first(resp)
        return EditorProfile.model_validate(row) if row else None

    async def insert_editor_assignment(self, assignment: EditorAssignment) -> EditorAssignment:
        resp = self._db.table("editor_assignments").insert(assignment.model_dump(mode="json")).execute()
        row = _first(resp)
        return EditorAssignment.model_validate(row) if row else assignment

    async def find_pending_editor_assignment(self, article_id: str, editor_id: str) -> Optional[EditorAssignment]:
        resp = (
            self._db.table("editor_assignments")
            .select("*")
            .eq("article_id", str(article_id))
            .eq("editor_id", str(editor_id))
            .eq("status", "pending")
            .limit(1)
            .execute()
        )
        row = _first(resp)
        return EditorAssignment.model_validate(row) if row else None

    async def expire_editor_assignments(self, now: datetime) -> int:
        resp = (
            self._db.table("editor_assignments")
            .update({"status": "expired"})
            .eq("status", "pending")
            .lt("deadline", _iso(now))
            .execute()
        )
        return len(_rows(resp))
