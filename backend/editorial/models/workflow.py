from __future__ import annotations

from enum import Enum

from editorial.core.errors import InvalidTransition


class WorkflowStatus(str, Enum):
    """
    稿件生命周期状态枚举。

    中文注释:
    - 状态机规则必须显性可见，所有状态写入都要先经过 validate_transition。
    - published / withdrawn 为终态，没有任何出边。
    """

    DRAFT = "draft"
    SUBMITTED = "submitted"
    EDITORIAL_ASSISTANT_REVIEW = "editorial_assistant_review"
    ASSOCIATE_EDITOR_ASSIGNMENT = "associate_editor_assignment"
    ASSOCIATE_EDITOR_REVIEW = "associate_editor_review"
    REVIEWER_ASSIGNMENT = "reviewer_assignment"
    UNDER_REVIEW = "under_review"
    REVISION_REQUESTED = "revision_requested"
    REVISION_SUBMITTED = "revision_submitted"
    ACCEPTED = "accepted"
    REJECTED = "rejected"
    PUBLISHED = "published"
    WITHDRAWN = "withdrawn"

    @classmethod
    def allowed_next(cls, current: str | None) -> set[str]:
        """
        draft -> submitted / withdrawn
        submitted -> editorial_assistant_review / withdrawn
        editorial_assistant_review -> associate_editor_assignment / revision_requested / withdrawn
        associate_editor_assignment -> associate_editor_review / revision_requested
        associate_editor_review -> reviewer_assignment / revision_requested / rejected
        reviewer_assignment -> under_review / revision_requested
        under_review -> revision_requested / accepted / rejected
        revision_requested -> revision_submitted / withdrawn
        revision_submitted -> editorial_assistant_review / associate_editor_review / accepted / rejected
        accepted -> published
        rejected -> withdrawn（拒稿后申诉/撤回通道）
        """
        c = normalize_status(current)
        if c is None:
            return set()
        return {s.value for s in WORKFLOW_TRANSITIONS.get(cls(c), ())}


WORKFLOW_TRANSITIONS: dict[WorkflowStatus, tuple[WorkflowStatus, ...]] = {
    WorkflowStatus.DRAFT: (WorkflowStatus.SUBMITTED, WorkflowStatus.WITHDRAWN),
    WorkflowStatus.SUBMITTED: (WorkflowStatus.EDITORIAL_ASSISTANT_REVIEW, WorkflowStatus.WITHDRAWN),
    WorkflowStatus.EDITORIAL_ASSISTANT_REVIEW: (
        WorkflowStatus.ASSOCIATE_EDITOR_ASSIGNMENT,
        WorkflowStatus.REVISION_REQUESTED,
        WorkflowStatus.WITHDRAWN,
    ),
    WorkflowStatus.ASSOCIATE_EDITOR_ASSIGNMENT: (
        WorkflowStatus.ASSOCIATE_EDITOR_REVIEW,
        WorkflowStatus.REVISION_REQUESTED,
    ),
    WorkflowStatus.ASSOCIATE_EDITOR_REVIEW: (
        WorkflowStatus.REVIEWER_ASSIGNMENT,
        WorkflowStatus.REVISION_REQUESTED,
        WorkflowStatus.REJECTED,
    ),
    WorkflowStatus.REVIEWER_ASSIGNMENT: (WorkflowStatus.UNDER_REVIEW, WorkflowStatus.REVISION_REQUESTED),
    WorkflowStatus.UNDER_REVIEW: (
        WorkflowStatus.REVISION_REQUESTED,
        WorkflowStatus.ACCEPTED,
        WorkflowStatus.REJECTED,
    ),
    WorkflowStatus.REVISION_REQUESTED: (WorkflowStatus.REVISION_SUBMITTED, WorkflowStatus.WITHDRAWN),
    WorkflowStatus.REVISION_SUBMITTED: (
        WorkflowStatus.EDITORIAL_ASSISTANT_REVIEW,
        WorkflowStatus.ASSOCIATE_EDITOR_REVIEW,
        WorkflowStatus.ACCEPTED,
        WorkflowStatus.REJECTED,
    ),
    WorkflowStatus.ACCEPTED: (WorkflowStatus.PUBLISHED,),
    WorkflowStatus.REJECTED: (WorkflowStatus.WITHDRAWN,),
    WorkflowStatus.PUBLISHED: (),
    WorkflowStatus.WITHDRAWN: (),
}

TERMINAL_STATUSES = frozenset({WorkflowStatus.PUBLISHED.value, WorkflowStatus.WITHDRAWN.value})


def normalize_status(value: str | None) -> str | None:
    if value is None:
        return None
    v = str(value.value if isinstance(value, Enum) else value).strip().lower()
    if not v:
        return None
    try:
        return WorkflowStatus(v).value
    except ValueError:
        return None


def is_terminal(status: str | None) -> bool:
    return normalize_status(status) in TERMINAL_STATUSES


def validate_transition(current: str | None, target: str | None) -> None:
    """
    校验 current -> target 是否合法；非法时抛 InvalidTransition（附带允许集合）。

    中文注释:
    - 既用于前端预检（只读），也用于任何状态写入前的强制校验。
    - 未知的 current / target 一律视为非法，不做宽松兼容。
    """
    cur = normalize_status(current)
    tgt = normalize_status(target)
    allowed = WorkflowStatus.allowed_next(cur)
    if cur is None or tgt is None or tgt not in allowed:
        raise InvalidTransition(cur or _raw(current), tgt or _raw(target), allowed)


def _raw(value: str | None) -> str | None:
    if value is None:
        return None
    return str(value.value if isinstance(value, Enum) else value)
