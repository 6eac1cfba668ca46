from __future__ import annotations

import asyncio
import logging
from typing import Dict

from dotenv import load_dotenv

from editorial.services.workflow import EditorialWorkflow

logger = logging.getLogger(__name__)


class WorkflowScheduler:
    """
    工作流定时巡检

    中文注释:
    1) 触发方式：cron / 外部调度器调用 `python -m editorial.core.scheduler`。
    2) 幂等性：超期标记只处理 pending 审稿（CAS），编辑分配只过期 pending 且已过截止时间的记录。
    3) 两项任务互不影响：其中一项失败只记日志，另一项照常执行。
    """

    def __init__(self, workflow: EditorialWorkflow):
        self._workflow = workflow

    async def run(self) -> Dict[str, int]:
        overdue_marked = 0
        assignments_expired = 0

        try:
            overdue_marked = await self._workflow.reviews.check_overdue_reviews()
        except Exception as e:
            logger.error("[Scheduler] overdue review sweep failed: %s", e)

        try:
            assignments_expired = await self._workflow.editors.expire_old_assignments()
        except Exception as e:
            logger.error("[Scheduler] editor assignment expiry failed: %s", e)

        return {"overdue_marked": overdue_marked, "assignments_expired": assignments_expired}


def main() -> Dict[str, int]:
    load_dotenv()
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s %(message)s")
    result = asyncio.run(WorkflowScheduler(EditorialWorkflow.from_supabase()).run())
    logger.info("[Scheduler] done: %s", result)
    return result


if __name__ == "__main__":
    main()
