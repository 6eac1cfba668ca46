import os
import sys
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

import pytest

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from editorial.core.config import AppConfig, WorkflowConfig
from editorial.models.assignment import RecommendedReviewer
from editorial.models.profiles import EditorProfile, ReviewerProfile, UserAccount
from editorial.models.reviews import Review
from editorial.models.submission import Article, HistoryEntry, Submission
from editorial.services.memory_repository import InMemoryWorkflowRepository
from editorial.services.workflow import EditorialWorkflow

# === 全局测试配置 ===
# 中文注释:
# 1. 工作流测试全部跑在内存仓储上，不依赖 Supabase / 网络。
# 2. 时钟与 id 均可控，断言可以写死时间与 id。
# 3. dispatcher 只记录调用，可切换为“全部失败”模式验证尽力而为语义。

T0 = datetime(2026, 3, 2, 9, 0, tzinfo=timezone.utc)


class FixedClock:
    def __init__(self, start: datetime = T0):
        self.current = start

    def now(self) -> datetime:
        return self.current

    def advance(self, **kwargs) -> datetime:
        self.current = self.current + timedelta(**kwargs)
        return self.current


class SequentialIds:
    def __init__(self, prefix: str = "id"):
        self._prefix = prefix
        self._n = 0

    def new_id(self) -> str:
        self._n += 1
        return f"{self._prefix}-{self._n}"


class RecordingDispatcher:
    def __init__(self):
        self.notifications: List[Dict[str, Any]] = []
        self.emails: List[Dict[str, Any]] = []
        self.fail = False

    async def notify(self, user_id, type, title, message, related_entity_id=None):
        if self.fail:
            raise RuntimeError("notification backend down")
        self.notifications.append(
            {"user_id": user_id, "type": type, "title": title, "message": message, "related": related_entity_id}
        )

    async def send_email(self, to_address, template_kind, template_params):
        if self.fail:
            raise RuntimeError("mail backend down")
        self.emails.append({"to": to_address, "kind": template_kind, "params": dict(template_params)})

    def types_for(self, user_id: str) -> List[str]:
        return [n["type"] for n in self.notifications if n["user_id"] == user_id]


class Seeder:
    """
    直接往内存仓储里塞数据（绕过服务层），用于构造任意中间状态。
    """

    def __init__(self, repo: InMemoryWorkflowRepository, clock: FixedClock):
        self.repo = repo
        self.clock = clock

    def user(self, user_id: str, role: str = "author", *, email: Optional[str] = None, name: str = "", active=True):
        return self.repo.add_user(
            UserAccount(
                id=user_id,
                email=email or f"{user_id}@example.com",
                name=name or user_id.replace("-", " ").title(),
                role=role,
                is_active=active,
                created_at=self.clock.now(),
            )
        )

    def reviewer(self, user_id: str, *, email: Optional[str] = None, **profile: Any) -> ReviewerProfile:
        self.user(user_id, "reviewer", email=email)
        return self.repo.add_reviewer_profile(ReviewerProfile(user_id=user_id, **profile))

    def editor(self, user_id: str, role: str = "editor", **profile: Any) -> EditorProfile:
        self.user(user_id, role)
        profile.setdefault("created_at", self.clock.now())
        return self.repo.add_editor_profile(EditorProfile(user_id=user_id, **profile))

    def article(
        self,
        article_id: str = "art-1",
        *,
        status: str = "under_review",
        author_id: str = "author-1",
        keywords=("machine learning", "genomics"),
        category: str = "biology",
        editor_id: Optional[str] = None,
        reviewer_ids=(),
    ) -> Submission:
        now = self.clock.now()
        if author_id not in self.repo.users:
            self.user(author_id, "author")
        self.repo.articles[article_id] = Article(
            id=article_id,
            title=f"Title of {article_id}",
            abstract="An abstract.",
            keywords=list(keywords),
            category=category,
            author_id=author_id,
            editor_id=editor_id,
            reviewer_ids=list(reviewer_ids),
            status=status,
            submitted_date=now,
            created_at=now,
            updated_at=now,
        )
        sub = Submission(
            id=f"sub-{article_id}",
            article_id=article_id,
            author_id=author_id,
            status=status,
            status_history=[HistoryEntry(status=status, timestamp=now, actor_id=author_id)],
            submitted_at=now,
            created_at=now,
            updated_at=now,
        )
        self.repo.submissions[sub.id] = sub
        return sub

    def review(self, review_id: str, article_id: str, reviewer_id: str, *, status: str = "pending", **fields: Any):
        review = Review(
            id=review_id,
            article_id=article_id,
            reviewer_id=reviewer_id,
            status=status,
            created_at=fields.pop("created_at", self.clock.now()),
            **fields,
        )
        self.repo.reviews[review.id] = review
        return review

    def recommended(self, rec_id: str, article_id: str, email: str, **fields: Any) -> RecommendedReviewer:
        rec = RecommendedReviewer(
            id=rec_id,
            article_id=article_id,
            name=fields.pop("name", email.split("@")[0]),
            email=email,
            created_at=self.clock.now(),
            **fields,
        )
        self.repo.recommended[rec.id] = rec
        return rec


@pytest.fixture
def clock() -> FixedClock:
    return FixedClock()


@pytest.fixture
def ids() -> SequentialIds:
    return SequentialIds()


@pytest.fixture
def dispatcher() -> RecordingDispatcher:
    return RecordingDispatcher()


@pytest.fixture
def repo() -> InMemoryWorkflowRepository:
    return InMemoryWorkflowRepository()


@pytest.fixture
def seed(repo, clock) -> Seeder:
    return Seeder(repo, clock)


@pytest.fixture
def workflow_config() -> WorkflowConfig:
    return WorkflowConfig()


@pytest.fixture
def app_config() -> AppConfig:
    return AppConfig(env="test", supabase_url="", supabase_key="", public_base_url="http://testserver")


@pytest.fixture
def workflow(repo, dispatcher, clock, ids, workflow_config, app_config) -> EditorialWorkflow:
    return EditorialWorkflow(
        repo,
        dispatcher,
        config=workflow_config,
        app_config=app_config,
        clock=clock,
        ids=ids,
    )
