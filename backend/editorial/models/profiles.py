from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field


class UserAccount(BaseModel):
    """
    Minimal user record the workflow needs (one role per user).
    """

    id: str
    email: str
    name: str = ""
    role: str = "author"
    is_active: bool = True
    created_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)

    @property
    def display_name(self) -> str:
        if self.name:
            return self.name
        return self.email.split("@")[0].replace(".", " ").title()


class ReviewerProfile(BaseModel):
    """审稿人容量 / 质量档案"""

    user_id: str
    expertise: List[str] = Field(default_factory=list)
    current_review_load: int = Field(0, ge=0)
    max_reviews_per_month: int = Field(3, gt=0)
    quality_score: float = Field(70, ge=0, le=100)
    completed_reviews: int = Field(0, ge=0)
    late_reviews: int = Field(0, ge=0)
    last_review_date: Optional[datetime] = None
    availability_status: str = "available"
    is_active: bool = True

    model_config = ConfigDict(from_attributes=True)


class EditorProfile(BaseModel):
    user_id: str
    current_workload: int = Field(0, ge=0)
    max_workload: int = Field(10, gt=0)
    assigned_sections: List[str] = Field(default_factory=list)
    is_accepting_submissions: bool = True
    is_active: bool = True
    created_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)
