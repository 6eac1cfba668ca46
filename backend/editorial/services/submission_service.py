from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from editorial.core.clock import Clock, IdGenerator, SystemClock, UuidGenerator
from editorial.core.config import AppConfig
from editorial.core.errors import NotFound, ValidationError
from editorial.core.role_matrix import can_perform_action
from editorial.models.assignment import RecommendedReviewer
from editorial.models.submission import SYSTEM_ACTOR, Article, ArticleSubmissionInput, Submission
from editorial.models.workflow import WorkflowStatus, normalize_status
from editorial.services.editor_selection import EditorSelectionService
from editorial.services.editorial_service import EditorialService
from editorial.services.history import build_history_entry, is_system_actor
from editorial.services.notification_service import BestEffortNotifier
from editorial.services.repository import WorkflowRepository

logger = logging.getLogger(__name__)


def validate_submission_input(data: ArticleSubmissionInput) -> None:
    """
    投稿入口必填校验（只在边界做一次，错误以 422 返回）。
    """
    if not data.title:
        raise ValidationError("Title is required")
    if not data.abstract:
        raise ValidationError("Abstract is required")
    if not data.category:
        raise ValidationError("Category is required")
    if not data.authors:
        raise ValidationError("At least one author is required")
    if not any(a.is_corresponding_author for a in data.authors):
        raise ValidationError("At least one corresponding author must be designated")
    for author in data.authors:
        if not (author.first_name and author.last_name and author.email and author.affiliation):
            raise ValidationError("All authors must have complete information (name, email, affiliation)")


class SubmissionService:
    """
    投稿 / 稿件生命周期服务。

    中文注释:
    - 稿件 + 投稿记录 + 推荐审稿人在一次仓储调用里原子创建；
    - 自动匹配编辑失败不阻断投稿，稿件保持 submitted 等待人工处理；
    - 所有状态写入统一委托 EditorialService（锁 + CAS + 历史）。
    """

    def __init__(
        self,
        repository: WorkflowRepository,
        editorial: EditorialService,
        editors: EditorSelectionService,
        notifier: BestEffortNotifier,
        *,
        app_config: Optional[AppConfig] = None,
        clock: Optional[Clock] = None,
        ids: Optional[IdGenerator] = None,
    ) -> None:
        self._repo = repository
        self._editorial = editorial
        self._editors = editors
        self._notifier = notifier
        self._app_config = app_config or AppConfig.from_env()
        self._clock = clock or SystemClock()
        self._ids = ids or UuidGenerator()

    async def submit_article(self, data: ArticleSubmissionInput, author_id: str) -> Submission:
        validate_submission_input(data)

        author = await self._repo.get_user(author_id)
        if author is None:
            raise NotFound("Author not found")

        now = self._clock.now()
        article = Article(
            id=self._ids.new_id(),
            title=data.title,
            abstract=data.abstract,
            keywords=list(data.keywords),
            category=data.category,
            author_id=author.id,
            co_authors=list(data.authors),
            content=data.content,
            status=WorkflowStatus.SUBMITTED,
            submitted_date=now,
            created_at=now,
            updated_at=now,
        )
        submission = Submission(
            id=self._ids.new_id(),
            article_id=article.id,
            author_id=author.id,
            status=WorkflowStatus.SUBMITTED,
            status_history=[
                build_history_entry(
                    WorkflowStatus.SUBMITTED.value,
                    author.id,
                    now=now,
                    notes="Article submitted for review",
                )
            ],
            submitted_at=now,
            created_at=now,
            updated_at=now,
        )
        recommended = [
            RecommendedReviewer(
                id=self._ids.new_id(),
                article_id=article.id,
                name=r.name,
                email=r.email,
                affiliation=r.affiliation,
                expertise=r.expertise,
                suggested_by=author.id,
                status="suggested",
                created_at=now,
            )
            for r in data.recommended_reviewers
        ]
        await self._repo.create_submission(article, submission, recommended)
        logger.info(
            "[Submission] article=%s submission=%s created by %s (recommended=%s)",
            article.id,
            submission.id,
            author.id,
            len(recommended),
        )

        await self._notifier.send_email(
            author.email,
            "submission_received",
            {
                "recipient_name": author.display_name,
                "article_title": article.title,
                "submission_id": submission.id,
                "submitted_at": now.date().isoformat(),
            },
        )
        await self._notifier.notify(
            author.id,
            "SUBMISSION_RECEIVED",
            "Submission Received",
            f'Your article "{article.title}" has been submitted successfully',
            article.id,
        )

        editor = await self._editors.find_suitable_editor(article.category)
        if editor is None:
            # 中文注释: 没有可用编辑时保持 submitted，等待人工分配
            logger.warning("[Submission] no editor available for article=%s (category=%s)", article.id, article.category)
            return submission

        await self._repo.adjust_editor_workload(editor.id, 1)
        submission = await self._editorial.update_submission_status(
            submission.id,
            WorkflowStatus.EDITORIAL_ASSISTANT_REVIEW.value,
            SYSTEM_ACTOR,
            "Automatically assigned to editor",
            article_fields={"editor_id": editor.id},
        )

        await self._notifier.send_email(
            editor.email,
            "submission_assigned",
            {
                "recipient_name": editor.display_name,
                "article_title": article.title,
                "author_name": author.display_name,
                "submission_id": submission.id,
                "category": article.category,
                "article_url": f"{self._app_config.public_base_url}/editor/articles/{article.id}",
            },
        )
        await self._notifier.notify(
            editor.id,
            "SUBMISSION_ASSIGNED",
            "New Submission Assigned",
            f'A new article "{article.title}" has been assigned to you',
            article.id,
        )
        return submission

    async def update_submission_status(
        self,
        submission_id: str,
        new_status: str,
        actor_id: str,
        notes: Optional[str] = None,
    ) -> Submission:
        """
        对外的状态变更入口：非 system 调用方先做权限校验。

        - 作者只能撤回（withdrawn）自己的稿件；
        - 其他变更需要 submission:update_status 权限（编辑类角色 / admin）。
        """
        if not is_system_actor(actor_id):
            submission = await self._editorial.get_submission(submission_id)
            await self._require_status_permission(submission, new_status, actor_id)
        return await self._editorial.update_submission_status(submission_id, new_status, actor_id, notes)

    async def _require_status_permission(self, submission: Submission, new_status: str, actor_id: str) -> None:
        actor = await self._repo.get_user(actor_id)
        if actor is None or not actor.is_active:
            raise ValidationError("Invalid user or insufficient permissions")
        if can_perform_action(action="submission:update_status", roles=actor.role):
            return
        withdrawing = normalize_status(new_status) == WorkflowStatus.WITHDRAWN.value
        if (
            withdrawing
            and actor.id == submission.author_id
            and can_perform_action(action="submission:withdraw", roles=actor.role)
        ):
            return
        raise ValidationError("Insufficient permissions")

    async def get_article_details(self, article_id: str) -> Dict[str, Any]:
        """
        稿件详情聚合：稿件 + 投稿（含历史）+ 审稿任务 + 作者推荐审稿人。
        """
        article = await self._repo.get_article(article_id)
        if article is None:
            raise NotFound("Article not found")
        submission = await self._repo.get_submission_by_article(article_id)
        reviews = await self._repo.list_reviews_for_article(article_id)
        recommended: List[RecommendedReviewer] = await self._repo.list_recommended_reviewers(article_id)
        editor = await self._repo.get_user(article.editor_id) if article.editor_id else None
        return {
            "article": article,
            "submission": submission,
            "reviews": reviews,
            "recommended_reviewers": recommended,
            "editor": editor,
        }
