from __future__ import annotations

from datetime import datetime
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

EditorAssignmentStatus = Literal["pending", "accepted", "expired", "rejected"]
RecommendedReviewerStatus = Literal["suggested", "contacted", "accepted", "declined"]
CandidateSource = Literal["recommended_existing", "recommended_new", "system_found"]

RECOMMENDED_SOURCES = frozenset({"recommended_existing", "recommended_new"})


class EditorAssignment(BaseModel):
    """编辑分配记录（带截止时间，超时未处理自动 expired）"""

    id: str
    article_id: str
    editor_id: str
    assigned_by: Optional[str] = None
    assigned_at: datetime
    deadline: datetime
    status: EditorAssignmentStatus = "pending"
    assignment_reason: Optional[str] = None
    system_generated: bool = True


class RecommendedReviewer(BaseModel):
    """作者推荐审稿人（可能尚未注册）"""

    id: str
    article_id: str
    name: str
    email: str
    affiliation: str = ""
    expertise: Optional[str] = None
    suggested_by: Optional[str] = None
    status: RecommendedReviewerStatus = "suggested"
    contact_attempts: int = 0
    notes: Optional[str] = None
    last_contacted_at: Optional[datetime] = None
    created_at: Optional[datetime] = None


class ReviewerCriteria(BaseModel):
    expertise: List[str] = Field(default_factory=list)
    exclude_conflicts: List[str] = Field(default_factory=list)
    min_quality_score: float = 70
    limit: int = 10


class ReviewerCandidate(BaseModel):
    """
    排序池中的候选人。

    中文注释:
    - score 为原始综合分（0~1）；final_score 为推荐加权后的排序分，可能 > 1。
    - 对外展示一律使用 display_score（截断到 1.0），避免超出展示区间。
    """

    id: str
    email: str
    name: str = ""
    score: float
    final_score: float
    current_load: int = 0
    source: CandidateSource = "system_found"
    recommended_id: Optional[str] = None

    model_config = ConfigDict(frozen=True)

    @property
    def is_recommended(self) -> bool:
        return self.source in RECOMMENDED_SOURCES

    @property
    def display_score(self) -> float:
        return round(min(1.0, max(0.0, self.final_score)), 2)


class WorkflowStepCounts(BaseModel):
    recommended_retrieved: int = 0
    recommended_validated: int = 0
    system_candidates: int = 0
    total_ranked: int = 0
    final_selected: int = 0


class AssignmentResult(BaseModel):
    """
    审稿人分配结果：至少部分成功语义。

    errors 中逐条记录失败的候选人，已成功的分配不会回滚。
    """

    success: bool = False
    assigned_reviewers: List[str] = Field(default_factory=list)
    invited_reviewers: List[str] = Field(default_factory=list)
    recommended_used: int = 0
    system_found: int = 0
    errors: List[str] = Field(default_factory=list)
    workflow: WorkflowStepCounts = Field(default_factory=WorkflowStepCounts)
    selected: List[ReviewerCandidate] = Field(default_factory=list)

    @property
    def partial_failure(self) -> bool:
        return self.success and bool(self.errors)
