from typing import Any, Callable, Optional

from supabase import Client, create_client

from editorial.core.config import AppConfig


class _LazySupabaseClient:
    """
    延迟初始化 Supabase Client，避免在 import 时因为缺少环境变量导致整个模块导入失败。

    中文注释:
    - 单元测试直接注入 MagicMock client，因此这里必须保证“可导入”。
    - 真实运行时，如果缺少 URL/KEY，在第一次访问 client 时抛出清晰错误即可。
    """

    def __init__(self, factory: Callable[[], Client], *, name: str):
        self._factory = factory
        self._name = name
        self._client: Optional[Client] = None

    def _get(self) -> Client:
        if self._client is None:
            self._client = self._factory()
        return self._client

    def __getattr__(self, item: str) -> Any:
        return getattr(self._get(), item)


def _create_supabase_admin() -> Client:
    config = AppConfig.from_env()
    if not config.supabase_url:
        raise RuntimeError("SUPABASE_URL is required")
    if not config.supabase_key:
        raise RuntimeError("SUPABASE_SERVICE_ROLE_KEY is required")
    return create_client(config.supabase_url, config.supabase_key)


def create_supabase_admin() -> Client:
    """
    以 service_role 身份访问 PostgREST（工作流写入需要绕过 RLS）。

    每次调用返回新的延迟 client；由调用方显式持有并注入仓储，不做模块级单例。
    """
    return _LazySupabaseClient(_create_supabase_admin, name="supabase_admin")  # type: ignore[return-value]
