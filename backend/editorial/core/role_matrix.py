from __future__ import annotations

from typing import Iterable

# 中文注释：
# - 这里集中定义“角色 -> 工作流动作”权限矩阵，避免权限判断散落在各服务。
# - 每个用户只有一个 role（与用户表一致），但接口接受集合，便于后续扩展多角色。

ADMIN_ROLE = "admin"
REVIEWER_ROLE = "reviewer"

# 自动分配编辑时参与候选的角色
AUTO_EDITOR_ROLES = frozenset({"editor", ADMIN_ROLE})
# 显式创建编辑分配（EditorAssignment）时允许的角色
ASSIGNABLE_EDITOR_ROLES = frozenset({"editor", "chief_editor", "associate_editor"})

ROLE_ACTIONS: dict[str, set[str]] = {
    # 作者只能撤回自己的稿件（归属在 SubmissionService 中校验）
    "author": {
        "submission:withdraw",
    },
    "editorial_assistant": {
        "submission:screen",
        "editor:assign_associate",
        "submission:update_status",
    },
    "associate_editor": {
        "reviewer:assign",
        "submission:update_status",
    },
    "editor": {
        "reviewer:assign",
        "editor:assign_associate",
        "submission:update_status",
    },
    "chief_editor": {
        "reviewer:assign",
        "editor:assign_associate",
        "submission:update_status",
    },
    ADMIN_ROLE: {
        "*",
    },
}


def normalize_roles(roles: Iterable[str] | str | None) -> set[str]:
    """
    将输入角色归一化（小写、去空）。
    """
    if isinstance(roles, str):
        roles = [roles]
    out: set[str] = set()
    for raw in roles or []:
        role = str(raw or "").strip().lower()
        if not role:
            continue
        out.add(role)
    return out


def can_perform_action(*, action: str, roles: Iterable[str] | str | None) -> bool:
    """
    判定角色集合是否可执行某动作（admin 拥有全局通配权限）。
    """
    normalized = normalize_roles(roles)
    if ADMIN_ROLE in normalized:
        return True

    for role in normalized:
        allowed = ROLE_ACTIONS.get(role) or set()
        if "*" in allowed or action in allowed:
            return True
    return False
