from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from editorial.models.workflow import WorkflowStatus

# === 稿件 / 投稿实体 (Pydantic v2) ===

SYSTEM_ACTOR = "system"


class HistoryEntry(BaseModel):
    """状态流转历史（只追加，顺序即时间顺序）"""

    status: WorkflowStatus
    timestamp: datetime
    actor_id: str
    notes: Optional[str] = None
    system_generated: bool = False

    model_config = ConfigDict(frozen=True, use_enum_values=True)


class CoAuthor(BaseModel):
    first_name: str = ""
    last_name: str = ""
    email: str = ""
    affiliation: str = ""
    is_corresponding_author: bool = False

    @field_validator("first_name", "last_name", "email", "affiliation", mode="before")
    @classmethod
    def strip_text(cls, value):
        # 中文注释: 作者信息统一 trim；完整性校验在投稿入口统一做一次
        if value is None:
            return ""
        return str(value).strip()

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()


class RecommendedReviewerInput(BaseModel):
    """作者推荐审稿人（投稿表单输入）"""

    name: str
    email: str
    affiliation: str = ""
    expertise: Optional[str] = None

    @field_validator("name", "affiliation", mode="before")
    @classmethod
    def strip_text(cls, value):
        return str(value or "").strip()

    @field_validator("email", mode="before")
    @classmethod
    def normalize_email(cls, value):
        return str(value or "").strip().lower()

    @field_validator("expertise", mode="before")
    @classmethod
    def normalize_expertise(cls, value):
        if value is None:
            return None
        trimmed = str(value).strip()
        return trimmed or None


class ArticleSubmissionInput(BaseModel):
    """
    投稿入口的显式输入结构。

    中文注释:
    - 这里只做格式归一化（trim / 去重），必填校验由 SubmissionService 在写库前统一完成，
      错误以 ValidationError(422) 返回。
    """

    title: str = ""
    abstract: str = ""
    keywords: List[str] = Field(default_factory=list)
    category: str = ""
    content: str = ""
    authors: List[CoAuthor] = Field(default_factory=list)
    recommended_reviewers: List[RecommendedReviewerInput] = Field(default_factory=list)

    @field_validator("title", "abstract", "category", "content", mode="before")
    @classmethod
    def strip_text(cls, value):
        return str(value or "").strip()

    @field_validator("keywords", mode="before")
    @classmethod
    def normalize_keywords(cls, value):
        if value is None:
            return []
        if isinstance(value, str):
            value = value.split(",")
        out: list[str] = []
        for raw in value:
            kw = str(raw or "").strip()
            if kw and kw not in out:
                out.append(kw)
        return out


class Article(BaseModel):
    id: str
    title: str
    abstract: str
    keywords: List[str] = Field(default_factory=list)
    category: str
    author_id: str
    co_authors: List[CoAuthor] = Field(default_factory=list)
    content: str = ""
    editor_id: Optional[str] = None
    reviewer_ids: List[str] = Field(default_factory=list)
    status: WorkflowStatus = WorkflowStatus.SUBMITTED
    submitted_date: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(use_enum_values=True)


class Submission(BaseModel):
    id: str
    article_id: str
    author_id: str
    status: WorkflowStatus
    status_history: List[HistoryEntry] = Field(default_factory=list)
    submitted_at: Optional[datetime] = None
    version: int = 1
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(use_enum_values=True)
