from __future__ import annotations

from typing import Iterable

from fastapi import HTTPException


class WorkflowError(HTTPException):
    """
    工作流领域错误基类。

    中文注释:
    - 沿用服务层直接抛 HTTPException 的约定，上层路由无需再做一次映射。
    - 子类只固定 status_code，detail 由调用方给出可读信息。
    """

    status_code_default = 500

    def __init__(self, detail: str) -> None:
        super().__init__(status_code=self.status_code_default, detail=detail)


class InvalidTransition(WorkflowError):
    status_code_default = 400

    def __init__(self, current: str | None, target: str | None, allowed: Iterable[str] = ()) -> None:
        self.current = current
        self.target = target
        self.allowed = sorted(allowed)
        super().__init__(f"Invalid transition: {current} -> {target}. Allowed: {self.allowed}")


class NotFound(WorkflowError):
    status_code_default = 404


class ValidationError(WorkflowError):
    status_code_default = 422


class StaleSubmission(WorkflowError):
    """并发写入冲突：version 校验失败（另一个请求已先完成流转）。"""

    status_code_default = 409


class NoSuitableCandidate(WorkflowError):
    status_code_default = 404
