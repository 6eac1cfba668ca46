from __future__ import annotations

from datetime import datetime
from typing import Optional

from editorial.models.submission import SYSTEM_ACTOR, HistoryEntry, Submission
from editorial.models.workflow import WorkflowStatus, normalize_status


def is_system_actor(actor_id: Optional[str]) -> bool:
    return (actor_id or "").strip().lower() == SYSTEM_ACTOR


def build_history_entry(
    new_status: str,
    actor_id: str,
    *,
    now: datetime,
    notes: Optional[str] = None,
) -> HistoryEntry:
    status = normalize_status(new_status)
    if status is None:
        raise ValueError(f"Unknown workflow status: {new_status}")
    return HistoryEntry(
        status=WorkflowStatus(status),
        timestamp=now,
        actor_id=actor_id,
        notes=notes,
        system_generated=is_system_actor(actor_id),
    )


def append_history(
    submission: Submission,
    new_status: str,
    actor_id: str,
    notes: Optional[str] = None,
    *,
    now: datetime,
) -> Submission:
    """
    返回追加了一条历史的新 Submission（status 同步更新，version + 1）。

    中文注释:
    - 旧条目原样保留（HistoryEntry 为 frozen），只在末尾追加。
    - 这里只构造“写入后应有的样子”；状态 + 历史 + 稿件镜像的落库由仓储层一次原子完成。
    """
    entry = build_history_entry(new_status, actor_id, now=now, notes=notes)
    return submission.model_copy(
        update={
            "status": entry.status,
            "status_history": [*submission.status_history, entry],
            "version": submission.version + 1,
            "updated_at": now,
        }
    )
