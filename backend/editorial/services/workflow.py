from __future__ import annotations

from typing import Optional

from editorial.core.clock import Clock, IdGenerator, SystemClock, UuidGenerator
from editorial.core.config import AppConfig, WorkflowConfig
from editorial.core.locks import SubmissionLockRegistry
from editorial.core.mail import EmailService
from editorial.services.editor_selection import EditorSelectionService
from editorial.services.editorial_assistant_service import EditorialAssistantService
from editorial.services.editorial_service import EditorialService
from editorial.services.notification_service import (
    BestEffortNotifier,
    NotificationDispatcher,
    SupabaseNotificationDispatcher,
)
from editorial.services.repository import WorkflowRepository
from editorial.services.review_service import ReviewManagementService
from editorial.services.reviewer_assignment import ReviewerAssignmentService
from editorial.services.reviewer_scoring import ReviewerScoringService
from editorial.services.submission_service import SubmissionService


class EditorialWorkflow:
    """
    工作流服务组装（显式构造，不做模块级单例）。

    中文注释:
    - 所有服务共享同一个仓储、锁表、时钟与 id 生成器，保证同一 submission 的写入串行。
    - 测试里注入 InMemoryWorkflowRepository + 记录型 dispatcher 即可跑完整流程。
    """

    def __init__(
        self,
        repository: WorkflowRepository,
        dispatcher: NotificationDispatcher,
        *,
        config: Optional[WorkflowConfig] = None,
        app_config: Optional[AppConfig] = None,
        clock: Optional[Clock] = None,
        ids: Optional[IdGenerator] = None,
        email_service: Optional[EmailService] = None,
    ) -> None:
        self.repository = repository
        self.config = config or WorkflowConfig.from_env()
        self.app_config = app_config or AppConfig.from_env()
        self.clock = clock or SystemClock()
        self.ids = ids or UuidGenerator()
        self.locks = SubmissionLockRegistry()
        self.notifier = BestEffortNotifier(dispatcher)

        shared = {"config": self.config, "clock": self.clock}
        self.editorial = EditorialService(repository, locks=self.locks, clock=self.clock)
        self.scoring = ReviewerScoringService(repository, clock=self.clock)
        self.editors = EditorSelectionService(
            repository,
            self.notifier,
            app_config=self.app_config,
            ids=self.ids,
            **shared,
        )
        self.reviewer_assignment = ReviewerAssignmentService(
            repository,
            self.editorial,
            self.scoring,
            self.notifier,
            app_config=self.app_config,
            ids=self.ids,
            token_signer=email_service.create_token if email_service is not None else None,
            locks=self.locks,
            **shared,
        )
        self.submissions = SubmissionService(
            repository,
            self.editorial,
            self.editors,
            self.notifier,
            app_config=self.app_config,
            clock=self.clock,
            ids=self.ids,
        )
        self.reviews = ReviewManagementService(repository, self.editorial, self.notifier, **shared)
        self.assistant = EditorialAssistantService(
            repository,
            self.editorial,
            self.editors,
            self.notifier,
            config=self.config,
        )

    @classmethod
    def from_supabase(cls, client=None, *, email_service: Optional[EmailService] = None) -> "EditorialWorkflow":
        """
        线上组装：Supabase 仓储 + 站内信/邮件 dispatcher。
        """
        from editorial.lib.api_client import create_supabase_admin
        from editorial.services.supabase_repository import SupabaseWorkflowRepository

        db = client or create_supabase_admin()
        email = email_service or EmailService()
        return cls(
            SupabaseWorkflowRepository(db),
            SupabaseNotificationDispatcher(db, email_service=email),
            email_service=email,
        )
