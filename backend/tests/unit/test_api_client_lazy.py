import pytest

import editorial.lib.api_client as api_client


def test_lazy_admin_client_raises_clear_error_when_missing_url(monkeypatch):
    monkeypatch.delenv("SUPABASE_URL", raising=False)
    monkeypatch.setenv("SUPABASE_SERVICE_ROLE_KEY", "k")

    client = api_client.create_supabase_admin()
    with pytest.raises(RuntimeError, match="SUPABASE_URL is required"):
        client.table("any")  # type: ignore[union-attr]


def test_lazy_admin_client_requires_service_role_key(monkeypatch):
    monkeypatch.setenv("SUPABASE_URL", "https://example.supabase.co")
    monkeypatch.delenv("SUPABASE_SERVICE_ROLE_KEY", raising=False)

    client = api_client.create_supabase_admin()
    with pytest.raises(RuntimeError, match="SUPABASE_SERVICE_ROLE_KEY"):
        client.table("any")  # type: ignore[union-attr]


def test_each_call_returns_independent_client():
    assert api_client.create_supabase_admin() is not api_client.create_supabase_admin()
