from unittest.mock import MagicMock

import pytest
from postgrest.exceptions import APIError

from editorial.services.notification_service import BestEffortNotifier, SupabaseNotificationDispatcher


def _make_admin_client_raising(error: Exception) -> MagicMock:
    client = MagicMock()
    chain = MagicMock()
    client.table.return_value = chain
    chain.insert.return_value = chain
    chain.execute.side_effect = error
    return client


@pytest.mark.asyncio
async def test_best_effort_notifier_swallows_failures(dispatcher, caplog) -> None:
    dispatcher.fail = True
    notifier = BestEffortNotifier(dispatcher)

    assert await notifier.notify("u1", "REVIEW_ASSIGNED", "t", "m") is False
    assert await notifier.send_email("u1@example.com", "review_invitation", {}) is False
    assert "failed (ignored)" in caplog.text


@pytest.mark.asyncio
async def test_best_effort_notifier_skips_missing_recipient(dispatcher) -> None:
    notifier = BestEffortNotifier(dispatcher)
    assert await notifier.notify(None, "REVIEW_ASSIGNED", "t", "m") is False
    assert await notifier.send_email("", "review_invitation", {}) is False
    assert dispatcher.notifications == []

    assert await notifier.notify("u1", "REVIEW_ASSIGNED", "t", "m", "art-1") is True
    assert dispatcher.notifications[0]["related"] == "art-1"


@pytest.mark.asyncio
async def test_supabase_dispatcher_writes_notifications_row() -> None:
    client = MagicMock()
    chain = MagicMock()
    client.table.return_value = chain
    chain.insert.return_value = chain

    await SupabaseNotificationDispatcher(client, email_service=MagicMock()).notify(
        "u1", "REVIEW_ASSIGNED", "New Review", "Please review", "art-1"
    )

    client.table.assert_called_with("notifications")
    payload = chain.insert.call_args.args[0]
    assert payload["user_id"] == "u1"
    assert payload["related_id"] == "art-1"
    assert payload["is_read"] is False


@pytest.mark.asyncio
async def test_supabase_dispatcher_suppresses_fk_errors_for_orphan_users() -> None:
    """
    中文注释:
    - 允许保留“仅展示用途”的 mock 用户（不对应 auth.users）。
    - 写 notifications 时遇到外键错误应静默忽略。
    """
    api_error = APIError(
        {
            "code": "23503",
            "message": 'insert or update on table "notifications" violates foreign key constraint "notifications_user_id_fkey"',
            "details": None,
            "hint": None,
        }
    )
    dispatcher = SupabaseNotificationDispatcher(_make_admin_client_raising(api_error), email_service=MagicMock())
    assert await dispatcher.notify("u1", "system", "t", "c") is None


@pytest.mark.asyncio
async def test_supabase_dispatcher_raises_other_api_errors() -> None:
    api_error = APIError({"code": "PGRST000", "message": "some api error", "details": None, "hint": None})
    dispatcher = SupabaseNotificationDispatcher(_make_admin_client_raising(api_error), email_service=MagicMock())
    with pytest.raises(APIError):
        await dispatcher.notify("u1", "system", "t", "c")


@pytest.mark.asyncio
async def test_supabase_dispatcher_renders_known_templates() -> None:
    email = MagicMock()
    email.send_template_email.return_value = True
    dispatcher = SupabaseNotificationDispatcher(MagicMock(), email_service=email)

    await dispatcher.send_email("rev@example.com", "review_invitation", {"article_title": "T"})

    kwargs = email.send_template_email.call_args.kwargs
    assert kwargs["to_email"] == "rev@example.com"
    assert kwargs["template_name"] == "review_invitation.html"
    assert kwargs["subject"] == "Invitation to Review"
    assert kwargs["context"]["article_title"] == "T"

    with pytest.raises(ValueError):
        await dispatcher.send_email("rev@example.com", "unknown_kind", {})
