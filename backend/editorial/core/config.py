import os
from dataclasses import dataclass
from typing import Optional


def _env_bool(key: str, default: bool) -> bool:
    raw = os.environ.get(key)
    if raw is None:
        return default
    lowered = raw.strip().lower()
    return lowered in {"1", "true", "yes", "y", "on"}


def _env_int(key: str, default: int, *, min_value: int = 0) -> int:
    raw = (os.environ.get(key) or "").strip()
    try:
        value = int(raw) if raw else default
    except ValueError:
        value = default
    return max(min_value, value)


def _env_float(key: str, default: float) -> float:
    raw = (os.environ.get(key) or "").strip()
    try:
        return float(raw) if raw else default
    except ValueError:
        return default


@dataclass(frozen=True)
class AppConfig:
    """
    Application Environment Config
    """
    env: str  # 'development', 'staging', 'production'
    supabase_url: str
    supabase_key: str
    public_base_url: str

    @staticmethod
    def from_env() -> "AppConfig":
        env = (os.environ.get("APP_ENV") or "development").strip().lower()
        supabase_url = (os.environ.get("SUPABASE_URL") or "").strip()
        supabase_key = (os.environ.get("SUPABASE_SERVICE_ROLE_KEY") or "").strip()
        public_base_url = (os.environ.get("PUBLIC_BASE_URL") or "http://localhost:3000").strip().rstrip("/")

        return AppConfig(
            env=env,
            supabase_url=supabase_url,
            supabase_key=supabase_key,
            public_base_url=public_base_url,
        )


@dataclass(frozen=True)
class WorkflowConfig:
    """
    编辑流程 / 审稿人分配参数。

    中文注释:
    1) 推荐加权（1.2x）、推荐名额（2）、阈值（0.6）默认沿用线上观测值；
       按期刊/栏目调整时通过环境变量覆盖，避免硬编码在算法里。
    2) 所有天数均为自然日。
    """

    recommended_boost: float = 1.2
    recommended_cap: int = 2
    recommended_threshold: float = 0.6
    target_reviewers: int = 3
    min_reviewer_quality: float = 70
    candidate_limit: int = 10
    review_deadline_days: int = 21
    review_overdue_days: int = 21
    invitation_response_days: int = 7
    editor_assignment_days: int = 3
    associate_editor_days: int = 14

    @staticmethod
    def from_env() -> "WorkflowConfig":
        return WorkflowConfig(
            recommended_boost=_env_float("WORKFLOW_RECOMMENDED_BOOST", 1.2),
            recommended_cap=_env_int("WORKFLOW_RECOMMENDED_CAP", 2),
            recommended_threshold=_env_float("WORKFLOW_RECOMMENDED_THRESHOLD", 0.6),
            target_reviewers=_env_int("WORKFLOW_TARGET_REVIEWERS", 3, min_value=1),
            min_reviewer_quality=_env_float("WORKFLOW_MIN_REVIEWER_QUALITY", 70),
            candidate_limit=_env_int("WORKFLOW_CANDIDATE_LIMIT", 10, min_value=1),
            review_deadline_days=_env_int("WORKFLOW_REVIEW_DEADLINE_DAYS", 21, min_value=1),
            review_overdue_days=_env_int("WORKFLOW_REVIEW_OVERDUE_DAYS", 21, min_value=1),
            invitation_response_days=_env_int("WORKFLOW_INVITATION_RESPONSE_DAYS", 7, min_value=1),
            editor_assignment_days=_env_int("WORKFLOW_EDITOR_ASSIGNMENT_DAYS", 3, min_value=1),
            associate_editor_days=_env_int("WORKFLOW_ASSOCIATE_EDITOR_DAYS", 14, min_value=1),
        )


@dataclass(frozen=True)
class SMTPConfig:
    """
    SMTP 配置（从环境变量读取）

    中文注释:
    - 允许在本地/测试环境缺省（此时邮件发送逻辑会优雅降级为“只记录日志”）。
    """

    host: str
    port: int
    user: Optional[str]
    password: Optional[str]
    from_email: str
    use_starttls: bool

    @staticmethod
    def from_env() -> Optional["SMTPConfig"]:
        host = (os.environ.get("SMTP_HOST") or "").strip()
        if not host:
            return None

        port = _env_int("SMTP_PORT", 587, min_value=1)
        user = (os.environ.get("SMTP_USER") or "").strip() or None
        password = (os.environ.get("SMTP_PASSWORD") or "").strip() or None

        from_email = (
            os.environ.get("SMTP_FROM_EMAIL") or user or "no-reply@editorial.local"
        ).strip()

        return SMTPConfig(
            host=host,
            port=port,
            user=user,
            password=password,
            from_email=from_email,
            use_starttls=_env_bool("SMTP_USE_STARTTLS", True),
        )


@dataclass(frozen=True)
class ResendConfig:
    """
    Resend API Configuration
    """
    api_key: str
    sender: str

    @staticmethod
    def from_env() -> Optional["ResendConfig"]:
        api_key = (os.environ.get("RESEND_API_KEY") or "").strip()
        if not api_key:
            return None

        sender = (
            os.environ.get("EMAIL_SENDER") or "Editorial Office <onboarding@resend.dev>"
        ).strip()

        return ResendConfig(api_key=api_key, sender=sender)
