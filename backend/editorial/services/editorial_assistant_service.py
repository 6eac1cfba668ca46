from __future__ import annotations

import logging
from typing import Optional

from editorial.core.config import WorkflowConfig
from editorial.core.errors import NotFound, ValidationError
from editorial.core.role_matrix import can_perform_action
from editorial.models.assignment import EditorAssignment
from editorial.models.screening import ScreeningChecklist, ScreeningResult
from editorial.models.submission import SYSTEM_ACTOR, Submission
from editorial.models.workflow import WorkflowStatus, validate_transition
from editorial.services.editor_selection import EditorSelectionService
from editorial.services.editorial_service import EditorialService
from editorial.services.notification_service import BestEffortNotifier
from editorial.services.repository import WorkflowRepository

logger = logging.getLogger(__name__)


class EditorialAssistantService:
    """
    编辑助理：初筛 + 指派副编辑。

    中文注释:
    - 初筛四项（文件完整性、查重、格式、伦理）全部通过 -> associate_editor_assignment；
      任一不通过 -> revision_requested，并通知作者修改。
    - 指派副编辑会生成 14 天期限的 EditorAssignment，稿件进入 associate_editor_review。
    """

    def __init__(
        self,
        repository: WorkflowRepository,
        editorial: EditorialService,
        editors: EditorSelectionService,
        notifier: BestEffortNotifier,
        *,
        config: Optional[WorkflowConfig] = None,
    ) -> None:
        self._repo = repository
        self._editorial = editorial
        self._editors = editors
        self._notifier = notifier
        self._config = config or WorkflowConfig.from_env()

    async def _require_action(self, actor_id: str, action: str) -> None:
        if actor_id == SYSTEM_ACTOR:
            return
        actor = await self._repo.get_user(actor_id)
        if actor is None or not actor.is_active or not can_perform_action(action=action, roles=actor.role):
            raise ValidationError("Insufficient permissions")

    async def perform_initial_screening(
        self,
        submission_id: str,
        assistant_id: str,
        checklist: ScreeningChecklist,
    ) -> ScreeningResult:
        await self._require_action(assistant_id, "submission:screen")
        submission = await self._editorial.get_submission(submission_id)

        if checklist.passed:
            await self._editorial.update_submission_status(
                submission.id,
                WorkflowStatus.ASSOCIATE_EDITOR_ASSIGNMENT.value,
                assistant_id,
                "Initial screening completed - ready for associate editor assignment",
            )
            await self._notifier.notify(
                assistant_id if assistant_id != SYSTEM_ACTOR else None,
                "SCREENING_COMPLETED",
                "Screening Completed",
                f"Manuscript {submission.id} passed initial screening",
                submission.id,
            )
            return ScreeningResult(
                passed=True,
                next_status=WorkflowStatus.ASSOCIATE_EDITOR_ASSIGNMENT.value,
                message="Screening completed successfully",
            )

        reason = checklist.notes or "Please address the identified issues"
        await self._editorial.update_submission_status(
            submission.id,
            WorkflowStatus.REVISION_REQUESTED.value,
            assistant_id,
            f"Initial screening failed: {reason}",
        )
        logger.info(
            "[Screening] submission=%s returned to author (failed=%s)",
            submission.id,
            ",".join(checklist.failed_checks()),
        )
        article = await self._repo.get_article(submission.article_id)
        if article is not None:
            await self._notifier.notify(
                article.author_id,
                "REVISION_REQUESTED",
                "Revision Required",
                f'Your manuscript "{article.title}" requires revisions based on initial screening',
                submission.id,
            )
        return ScreeningResult(
            passed=False,
            next_status=WorkflowStatus.REVISION_REQUESTED.value,
            message="Manuscript returned to author for revision",
        )

    async def assign_associate_editor(
        self,
        submission_id: str,
        associate_editor_id: str,
        assistant_id: str,
    ) -> tuple[Submission, EditorAssignment]:
        await self._require_action(assistant_id, "editor:assign_associate")
        submission = await self._editorial.get_submission(submission_id)
        # 先校验流转，避免生成分配记录后才发现状态不允许
        validate_transition(submission.status, WorkflowStatus.ASSOCIATE_EDITOR_REVIEW.value)

        article = await self._repo.get_article(submission.article_id)
        if article is None:
            raise NotFound("Article not found")

        assignment = await self._editors.create_editor_assignment(
            article.id,
            associate_editor_id,
            assigned_by=assistant_id,
            assignment_reason="Assigned to Associate Editor for content review",
            system_generated=False,
            deadline_days=self._config.associate_editor_days,
            notification_type="ASSOCIATE_EDITOR_ASSIGNMENT",
        )
        updated = await self._editorial.update_submission_status(
            submission.id,
            WorkflowStatus.ASSOCIATE_EDITOR_REVIEW.value,
            assistant_id,
            "Assigned to Associate Editor for content review",
            article_fields={"editor_id": associate_editor_id},
        )
        return updated, assignment
