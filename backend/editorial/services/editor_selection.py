from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import Iterable, Optional

from editorial.core.clock import Clock, IdGenerator, SystemClock, UuidGenerator
from editorial.core.config import AppConfig, WorkflowConfig
from editorial.core.errors import NoSuitableCandidate, NotFound, ValidationError
from editorial.core.role_matrix import ASSIGNABLE_EDITOR_ROLES, AUTO_EDITOR_ROLES
from editorial.models.assignment import EditorAssignment
from editorial.models.profiles import EditorProfile, UserAccount
from editorial.models.submission import SYSTEM_ACTOR
from editorial.services.notification_service import BestEffortNotifier
from editorial.services.repository import WorkflowRepository

logger = logging.getLogger(__name__)

GENERAL_SECTION = "general"

_EPOCH = datetime.min.replace(tzinfo=timezone.utc)


def _created_key(profile: EditorProfile) -> datetime:
    created = profile.created_at
    if created is None:
        return _EPOCH
    return created if created.tzinfo else created.replace(tzinfo=timezone.utc)


def is_editor_eligible(user: UserAccount, profile: EditorProfile, roles: Iterable[str] = AUTO_EDITOR_ROLES) -> bool:
    if user.role not in set(roles) or not user.is_active:
        return False
    if not profile.is_active or not profile.is_accepting_submissions:
        return False
    return profile.current_workload < profile.max_workload


def select_editor(
    pool: Iterable[tuple[UserAccount, EditorProfile]],
    category: str,
    roles: Iterable[str] = AUTO_EDITOR_ROLES,
) -> Optional[tuple[UserAccount, EditorProfile]]:
    """
    选编辑：栏目匹配（或 general）优先，无匹配则退回全部合格编辑；
    再取工作量最低者，平手按档案创建时间最早、再按 user_id。
    """
    eligible = [(u, p) for u, p in pool if is_editor_eligible(u, p, roles)]
    if not eligible:
        return None

    wanted = (category or "").strip()
    matching = [
        (u, p)
        for u, p in eligible
        if wanted in p.assigned_sections or GENERAL_SECTION in p.assigned_sections
    ]
    preferred = matching or eligible
    preferred.sort(key=lambda up: (up[1].current_workload, _created_key(up[1]), up[0].id))
    return preferred[0]


class EditorSelectionService:
    """
    编辑自动匹配 + 编辑分配记录（EditorAssignment）。

    中文注释:
    - find_suitable_editor 找不到人时返回 None，由调用方决定保持未分配（不阻断投稿）。
    - 分配记录带截止时间；过期未处理的 pending 记录由定时任务统一置为 expired。
    """

    def __init__(
        self,
        repository: WorkflowRepository,
        notifier: BestEffortNotifier,
        *,
        config: Optional[WorkflowConfig] = None,
        app_config: Optional[AppConfig] = None,
        clock: Optional[Clock] = None,
        ids: Optional[IdGenerator] = None,
    ) -> None:
        self._repo = repository
        self._notifier = notifier
        self._config = config or WorkflowConfig.from_env()
        self._app_config = app_config or AppConfig.from_env()
        self._clock = clock or SystemClock()
        self._ids = ids or UuidGenerator()

    async def find_suitable_editor(self, category: str) -> Optional[UserAccount]:
        pool = await self._repo.list_editor_pool(AUTO_EDITOR_ROLES)
        picked = select_editor(pool, category)
        if picked is None:
            logger.info("[EditorSelection] no eligible editor for category=%s", category)
            return None
        return picked[0]

    async def create_editor_assignment(
        self,
        article_id: str,
        editor_id: str,
        *,
        assigned_by: Optional[str] = None,
        assignment_reason: Optional[str] = None,
        system_generated: bool = True,
        deadline_days: Optional[int] = None,
        notification_type: str = "EDITOR_ASSIGNMENT",
    ) -> EditorAssignment:
        article = await self._repo.get_article(article_id)
        if article is None:
            raise NotFound("Article not found")

        editor = await self._repo.get_user(editor_id)
        if editor is None:
            raise NotFound("Editor not found")
        if editor.role not in ASSIGNABLE_EDITOR_ROLES:
            raise ValidationError("User is not an editor")

        existing = await self._repo.find_pending_editor_assignment(article_id, editor_id)
        if existing is not None:
            raise ValidationError("Assignment already exists for this editor")

        now = self._clock.now()
        days = deadline_days if deadline_days is not None else self._config.editor_assignment_days
        assignment = await self._repo.insert_editor_assignment(
            EditorAssignment(
                id=self._ids.new_id(),
                article_id=article_id,
                editor_id=editor_id,
                assigned_by=assigned_by,
                assigned_at=now,
                deadline=now + timedelta(days=days),
                status="pending",
                assignment_reason=assignment_reason,
                system_generated=system_generated,
            )
        )

        await self._notifier.send_email(
            editor.email,
            "editor_assignment",
            {
                "recipient_name": editor.display_name,
                "article_title": article.title,
                "authors": [a.full_name for a in article.co_authors],
                "abstract": article.abstract,
                "assignment_id": assignment.id,
                "assignment_url": f"{self._app_config.public_base_url}/editor/assignment/{assignment.id}",
                "deadline": assignment.deadline.isoformat(),
            },
        )
        await self._notifier.notify(
            editor.id,
            notification_type,
            "New Editorial Assignment",
            f'You have been assigned to review "{article.title}"',
            assignment.id,
        )
        return assignment

    async def assign_editor_to_article(self, article_id: str, assignment_reason: Optional[str] = None) -> EditorAssignment:
        article = await self._repo.get_article(article_id)
        if article is None:
            raise NotFound("Article not found")

        pool = await self._repo.list_editor_pool(ASSIGNABLE_EDITOR_ROLES)
        picked = select_editor(pool, article.category, ASSIGNABLE_EDITOR_ROLES)
        if picked is None:
            raise NoSuitableCandidate("No suitable editor found for this category")

        return await self.create_editor_assignment(
            article_id,
            picked[0].id,
            assigned_by=SYSTEM_ACTOR,
            assignment_reason=assignment_reason or f"Automatically assigned based on expertise in {article.category}",
            system_generated=True,
        )

    async def expire_old_assignments(self) -> int:
        expired = await self._repo.expire_editor_assignments(self._clock.now())
        if expired:
            logger.info("[EditorSelection] expired %s pending editor assignments", expired)
        return expired
