from __future__ import annotations

import logging
from typing import Any, Optional, Sequence

from editorial.core.clock import Clock, SystemClock
from editorial.core.errors import NotFound
from editorial.core.locks import SubmissionLockRegistry
from editorial.models.submission import Submission
from editorial.models.workflow import normalize_status, validate_transition
from editorial.services.history import append_history
from editorial.services.repository import WorkflowRepository

logger = logging.getLogger(__name__)


class EditorialService:
    """
    统一的稿件状态机写入 + 审计历史服务（状态的唯一写入口）。

    中文注释:
    - 遵循“核心状态流转逻辑必须显性可见”：任何状态写入都先 validate_transition，非法时不落库。
    - 同一 submission 的流转通过锁表串行化；仓储层再以 version 做 CAS，覆盖多进程场景。
    - 状态、历史、稿件状态镜像在一次原子写入中完成，二者永远一致。
    """

    def __init__(
        self,
        repository: WorkflowRepository,
        *,
        locks: Optional[SubmissionLockRegistry] = None,
        clock: Optional[Clock] = None,
    ) -> None:
        self._repo = repository
        self._locks = locks or SubmissionLockRegistry()
        self._clock = clock or SystemClock()

    async def get_submission(self, submission_id: str) -> Submission:
        sub = await self._repo.get_submission(submission_id)
        if sub is None:
            raise NotFound("Submission not found")
        return sub

    async def get_submission_for_article(self, article_id: str) -> Submission:
        sub = await self._repo.get_submission_by_article(article_id)
        if sub is None:
            raise NotFound("Submission not found")
        return sub

    async def update_submission_status(
        self,
        submission_id: str,
        new_status: str,
        actor_id: str,
        notes: Optional[str] = None,
        *,
        article_fields: Optional[dict[str, Any]] = None,
    ) -> Submission:
        """
        更新投稿状态并追加历史。

        - 非法流转抛 InvalidTransition（附允许集合），状态保持不变；
        - article_fields 与状态镜像一起写入（例如 editor_id）。
        """
        async with self._locks.hold(submission_id):
            sub = await self.get_submission(submission_id)
            validate_transition(sub.status, new_status)

            now = self._clock.now()
            updated = append_history(sub, normalize_status(new_status), actor_id, notes, now=now)
            saved = await self._repo.save_transition(
                updated,
                expected_version=sub.version,
                article_fields=article_fields,
            )
            logger.info(
                "[Workflow] submission=%s %s -> %s by %s",
                submission_id,
                sub.status,
                saved.status,
                actor_id,
            )
            return saved

    async def advance_through(
        self,
        submission_id: str,
        steps: Sequence[str],
        actor_id: str,
        notes: Optional[str] = None,
    ) -> Optional[Submission]:
        """
        依次执行多步流转（例如 associate_editor_review -> reviewer_assignment -> under_review）。

        每一步都独立校验、独立写历史；中途失败时已完成的步骤保留（历史如实反映）。
        """
        out: Optional[Submission] = None
        for step in steps:
            out = await self.update_submission_status(submission_id, step, actor_id, notes)
        return out
