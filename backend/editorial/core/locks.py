from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from typing import AsyncIterator


class SubmissionLockRegistry:
    """
    按 submission_id 串行化状态流转的进程内锁表。

    设计目标：
    - 同一稿件的 update_submission_status 严格线性化；不同稿件互不阻塞；
    - 显式构造、依赖注入，不做模块级单例（测试可并行使用独立实例）；
    - 跨进程的并发由仓储层 version 比较（CAS）兜底。
    """

    def __init__(self) -> None:
        self._locks: dict[str, asyncio.Lock] = {}
        self._waiters: dict[str, int] = {}

    @asynccontextmanager
    async def hold(self, key: str) -> AsyncIterator[None]:
        lock = self._locks.get(key)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[key] = lock
        self._waiters[key] = self._waiters.get(key, 0) + 1
        try:
            async with lock:
                yield
        finally:
            remaining = self._waiters.get(key, 1) - 1
            if remaining <= 0:
                # 没有等待者时回收，避免锁表随稿件数量无限增长
                self._waiters.pop(key, None)
                self._locks.pop(key, None)
            else:
                self._waiters[key] = remaining

    def __len__(self) -> int:
        return len(self._locks)
