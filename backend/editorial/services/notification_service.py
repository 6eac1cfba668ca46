from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict, Optional, Protocol

from postgrest.exceptions import APIError

from editorial.core.mail import EmailService
from editorial.models.notification import EMAIL_SUBJECTS, EMAIL_TEMPLATES, NotificationType

logger = logging.getLogger(__name__)


class NotificationDispatcher(Protocol):
    """
    通知外部协作者接口：工作流只负责“调用”，不关心投递渠道（邮件/站内信/推送）。
    """

    async def notify(
        self,
        user_id: str,
        type: str,
        title: str,
        message: str,
        related_entity_id: Optional[str] = None,
    ) -> None: ...

    async def send_email(self, to_address: str, template_kind: str, template_params: Dict[str, Any]) -> None: ...


class BestEffortNotifier:
    """
    对任意 dispatcher 的“尽力而为”包装。

    中文注释:
    - 通知失败绝不能回滚已成功的状态流转/分配，因此这里吞掉异常并记日志。
    - 返回 bool 仅用于测试与统计，不参与业务判断。
    """

    def __init__(self, dispatcher: NotificationDispatcher) -> None:
        self._dispatcher = dispatcher

    async def notify(
        self,
        user_id: Optional[str],
        type: NotificationType,
        title: str,
        message: str,
        related_entity_id: Optional[str] = None,
    ) -> bool:
        if not user_id:
            return False
        try:
            await self._dispatcher.notify(user_id, type, title, message, related_entity_id)
            return True
        except Exception as e:
            logger.warning("[Notifications] notify %s -> %s failed (ignored): %s", type, user_id, e)
            return False

    async def send_email(self, to_address: Optional[str], template_kind: str, template_params: Dict[str, Any]) -> bool:
        if not to_address:
            return False
        try:
            await self._dispatcher.send_email(to_address, template_kind, template_params)
            return True
        except Exception as e:
            logger.warning("[Notifications] email %s -> %s failed (ignored): %s", template_kind, to_address, e)
            return False


class SupabaseNotificationDispatcher:
    """
    默认实现：站内信写 notifications 表，邮件交给 EmailService。

    中文注释:
    1) 写入使用 service_role client，避免 RLS 导致写入失败。
    2) notifications.user_id 外键指向 auth.users；对“仅展示用途”的 mock 用户写入会触发 23503，
       这种情况静默忽略。
    """

    def __init__(self, client, *, email_service: Optional[EmailService] = None) -> None:
        self._db = client
        self._email = email_service or EmailService()

    async def notify(
        self,
        user_id: str,
        type: str,
        title: str,
        message: str,
        related_entity_id: Optional[str] = None,
    ) -> None:
        payload = {
            "user_id": user_id,
            "type": type,
            "title": title,
            "message": message,
            "related_id": related_entity_id,
            "is_read": False,
        }
        try:
            self._db.table("notifications").insert(payload).execute()
        except APIError as e:
            text = str(e).lower()
            code = str(getattr(e, "code", "") or "").lower()
            if ("23503" in code or "23503" in text) and ("foreign key" in text or "notifications_user_id_fkey" in text):
                return
            raise

    async def send_email(self, to_address: str, template_kind: str, template_params: Dict[str, Any]) -> None:
        template_name = EMAIL_TEMPLATES.get(template_kind)
        if not template_name:
            raise ValueError(f"Unknown email template: {template_kind}")
        subject = str(template_params.get("subject") or EMAIL_SUBJECTS.get(template_kind) or "Editorial Notification")
        context = {"subject": subject, **template_params}
        ok = await asyncio.to_thread(
            self._email.send_template_email,
            to_email=to_address,
            subject=subject,
            template_name=template_name,
            context=context,
        )
        if not ok:
            logger.info("[Notifications] email %s -> %s not delivered", template_kind, to_address)
