from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class ReviewStatus(str, Enum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    DECLINED = "declined"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    OVERDUE = "overdue"


class ReviewRecommendation(str, Enum):
    ACCEPT = "accept"
    MINOR_REVISION = "minor_revision"
    MAJOR_REVISION = "major_revision"
    REJECT = "reject"


# 仍占用审稿人工作量、尚未给出结论的状态
OUTSTANDING_REVIEW_STATUSES = frozenset(
    {
        ReviewStatus.PENDING.value,
        ReviewStatus.ACCEPTED.value,
        ReviewStatus.IN_PROGRESS.value,
        ReviewStatus.OVERDUE.value,
    }
)


class Review(BaseModel):
    """单个审稿人对单篇稿件的审稿任务"""

    id: str
    article_id: str
    reviewer_id: str
    status: ReviewStatus = ReviewStatus.PENDING
    recommendation: Optional[ReviewRecommendation] = None
    comments: Optional[str] = None
    confidential_comments: Optional[str] = None
    rating: Optional[int] = Field(None, ge=1, le=5)
    invited_by: Optional[str] = None
    due_at: Optional[datetime] = None
    responded_at: Optional[datetime] = None
    created_at: datetime
    submitted_at: Optional[datetime] = None

    model_config = ConfigDict(use_enum_values=True)


class ReviewSubmission(BaseModel):
    """审稿人提交的评审内容（公开意见 + 仅编辑可见意见）"""

    recommendation: ReviewRecommendation
    comments: str = ""
    confidential_comments: Optional[str] = None
    rating: Optional[int] = Field(None, ge=1, le=5)

    model_config = ConfigDict(use_enum_values=True)
