import logging
import smtplib
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from pathlib import Path
from typing import Any, Dict, Optional

import resend
from itsdangerous import BadSignature, SignatureExpired, URLSafeTimedSerializer
from jinja2 import Environment, FileSystemLoader, select_autoescape
from tenacity import retry, stop_after_attempt, wait_exponential

from editorial.core.config import AppConfig, ResendConfig, SMTPConfig

logger = logging.getLogger(__name__)

INVITATION_SALT = "external-review-invitation"


class EmailService:
    _SENTINEL = object()

    def __init__(
        self,
        *,
        smtp_config: SMTPConfig | None | object = _SENTINEL,
        resend_config: ResendConfig | None | object = _SENTINEL,
        secret_key: str | None = None,
    ):
        # 中文注释:
        # - smtp_config / resend_config 支持依赖注入，方便单测与不同环境切换。
        # - 若调用方显式传 None，则视为禁用该 provider。
        if smtp_config is self._SENTINEL:
            smtp_config = SMTPConfig.from_env()
        if resend_config is self._SENTINEL:
            resend_config = ResendConfig.from_env()

        self.smtp_config: SMTPConfig | None = smtp_config  # type: ignore[assignment]
        self.resend_config: ResendConfig | None = resend_config  # type: ignore[assignment]

        if self.resend_config:
            resend.api_key = self.resend_config.api_key

        templates_dir = Path(__file__).resolve().parent / "templates"
        self._jinja = Environment(
            loader=FileSystemLoader(str(templates_dir)),
            autoescape=select_autoescape(["html", "xml"]),
        )

        # 外部审稿人邀请 token 的签名密钥（仅后端持有）
        self._serializer = URLSafeTimedSerializer(secret_key or AppConfig.from_env().supabase_key or "dev-secret")

    def is_configured(self) -> bool:
        return bool(self.smtp_config or self.resend_config)

    def create_token(self, email: str, salt: str = INVITATION_SALT) -> str:
        """Generate a secure, time-bound token."""
        return self._serializer.dumps(email, salt=salt)

    def verify_token(self, token: str, salt: str = INVITATION_SALT, max_age: int = 604800) -> Optional[str]:
        """
        Verify token and return email if valid.
        Default max_age: 7 days (604800 seconds).
        """
        try:
            return self._serializer.loads(token, salt=salt, max_age=max_age)
        except (SignatureExpired, BadSignature):
            return None

    def render_template(self, template_name: str, context: Dict[str, Any]) -> str:
        return self._jinja.get_template(template_name).render(**context)

    def send_email(
        self,
        *,
        to_email: str,
        subject: str,
        html_body: str,
        text_body: str | None = None,
    ) -> bool:
        """
        发送邮件（同步）。

        中文注释:
        - 优先 SMTP；SMTP 未配置但 Resend 已配置时自动降级走 Resend。
        - 任何 provider 失败只记日志并返回 False，不抛异常。
        """
        if self.smtp_config:
            try:
                msg = MIMEMultipart("alternative")
                msg["Subject"] = subject
                msg["From"] = self.smtp_config.from_email
                msg["To"] = to_email

                if text_body:
                    msg.attach(MIMEText(text_body, "plain", "utf-8"))
                msg.attach(MIMEText(html_body, "html", "utf-8"))

                with smtplib.SMTP(self.smtp_config.host, self.smtp_config.port) as server:
                    if self.smtp_config.use_starttls:
                        server.starttls()
                    if self.smtp_config.user and self.smtp_config.password:
                        server.login(self.smtp_config.user, self.smtp_config.password)
                    server.sendmail(self.smtp_config.from_email, [to_email], msg.as_string())
                return True
            except Exception as e:
                logger.warning("[SMTP] send failed: %s", e)
                return False

        if self.resend_config:
            try:
                self._send_with_retry(to_email, subject, html_body)
                return True
            except Exception as e:
                logger.warning("[Resend] send failed: %s", e)
                return False

        return False

    def send_template_email(
        self,
        *,
        to_email: str,
        subject: str,
        template_name: str,
        context: Dict[str, Any],
    ) -> bool:
        if not self.is_configured():
            logger.info("[Email] provider not configured, skip %s -> %s", template_name, to_email)
            return False
        try:
            html = self.render_template(template_name, context)
        except Exception as e:
            logger.warning("[Email] template render failed: %s", e)
            return False
        return self.send_email(to_email=to_email, subject=subject, html_body=html)

    @retry(stop=stop_after_attempt(3), wait=wait_exponential(multiplier=1, min=2, max=10), reraise=True)
    def _send_with_retry(self, to_email: str, subject: str, html_content: str):
        params = {
            "from": self.resend_config.sender if self.resend_config else "Editorial Office <no-reply@editorial.local>",
            "to": [to_email],
            "subject": subject,
            "html": html_content,
        }
        return resend.Emails.send(params)
