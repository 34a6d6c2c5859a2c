"""
Email service with provider abstraction.

Supports a logging provider (default, for development), SMTP, Resend API and
AWS SES. Provider is selected via configuration.
"""

from __future__ import annotations

import hashlib
import ssl
from abc import ABC, abstractmethod
from collections.abc import Callable
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from typing import TYPE_CHECKING, Any

import structlog

from playdates.config import get_settings
from playdates.db.enums import NoticeKind
from playdates.email.templates import (
    game_cancelled,
    game_full,
    game_reminder,
    participant_removed,
)

if TYPE_CHECKING:
    from redis.asyncio import Redis

logger = structlog.get_logger()

# Template registry: notice kind -> renderer taking the notice context
_TEMPLATE_REGISTRY: dict[NoticeKind, Callable[[dict[str, Any]], tuple[str, str, str]]] = {
    NoticeKind.REMINDER_24H: lambda ctx: game_reminder(
        ctx.get("display_name"), 24, ctx["start_time"], ctx["venue_name"], ctx["venue_address"],
        ctx["current_participants"], ctx["max_participants"],
    ),
    NoticeKind.REMINDER_1H: lambda ctx: game_reminder(
        ctx.get("display_name"), 1, ctx["start_time"], ctx["venue_name"], ctx["venue_address"],
        ctx["current_participants"], ctx["max_participants"],
    ),
    NoticeKind.GAME_CANCELLED: lambda ctx: game_cancelled(
        ctx.get("display_name"), ctx["start_time"], ctx["venue_name"], ctx["venue_address"],
    ),
    NoticeKind.GAME_FULL: lambda ctx: game_full(
        ctx.get("display_name"), ctx["start_time"], ctx["venue_name"], ctx["venue_address"],
        ctx["max_participants"],
    ),
    NoticeKind.PARTICIPANT_REMOVED: lambda ctx: participant_removed(
        ctx.get("display_name"), ctx["start_time"], ctx["venue_name"], ctx["venue_address"],
    ),
}


def render_template(kind: NoticeKind, context: dict[str, Any]) -> tuple[str, str, str]:
    """
    Render the email for a notice kind.

    Returns:
        (subject, html_body, text_body)

    Raises:
        ValueError: If no template is registered for the kind.
    """
    template_func = _TEMPLATE_REGISTRY.get(kind)
    if template_func is None:
        msg = f"Unknown template: {kind}"
        raise ValueError(msg)
    return template_func(context)


class BaseEmailProvider(ABC):
    """Abstract base class for email delivery providers."""

    @abstractmethod
    async def send(
        self,
        to_email: str,
        subject: str,
        html_body: str,
        text_body: str,
    ) -> bool:
        """Send an email. Returns True on success."""
        ...


class LogProvider(BaseEmailProvider):
    """Log emails instead of sending them."""

    async def send(
        self,
        to_email: str,
        subject: str,
        html_body: str,
        text_body: str,
    ) -> bool:
        logger.info("email_logged", to=to_email, subject=subject, provider="log")
        return True


class SMTPProvider(BaseEmailProvider):
    """Send emails via SMTP using aiosmtplib."""

    def __init__(
        self,
        host: str,
        port: int,
        username: str,
        password: str,
        from_address: str,
        from_name: str,
        use_tls: bool = True,
    ) -> None:
        self.host = host
        self.port = port
        self.username = username
        self.password = password
        self.from_address = from_address
        self.from_name = from_name
        self.use_tls = use_tls

    async def send(
        self,
        to_email: str,
        subject: str,
        html_body: str,
        text_body: str,
    ) -> bool:
        """Send via SMTP."""
        import aiosmtplib

        msg = MIMEMultipart("alternative")
        msg["From"] = f"{self.from_name} <{self.from_address}>"
        msg["To"] = to_email
        msg["Subject"] = subject
        msg.attach(MIMEText(text_body, "plain", "utf-8"))
        msg.attach(MIMEText(html_body, "html", "utf-8"))

        try:
            tls_context = ssl.create_default_context() if self.use_tls else None
            await aiosmtplib.send(
                msg,
                hostname=self.host,
                port=self.port,
                username=self.username or None,
                password=self.password or None,
                start_tls=self.use_tls,
                tls_context=tls_context,
            )
        except aiosmtplib.SMTPException:
            logger.exception("email_send_failed", to=to_email, provider="smtp")
            return False
        logger.info("email_sent", to=to_email, subject=subject, provider="smtp")
        return True


class ResendProvider(BaseEmailProvider):
    """Send emails via Resend API."""

    def __init__(self, api_key: str, from_address: str, from_name: str) -> None:
        self.api_key = api_key
        self.from_address = from_address
        self.from_name = from_name

    async def send(
        self,
        to_email: str,
        subject: str,
        html_body: str,
        text_body: str,
    ) -> bool:
        """Send via Resend HTTP API."""
        import httpx

        try:
            async with httpx.AsyncClient() as client:
                response = await client.post(
                    "https://api.resend.com/emails",
                    headers={"Authorization": f"Bearer {self.api_key}"},
                    json={
                        "from": f"{self.from_name} <{self.from_address}>",
                        "to": [to_email],
                        "subject": subject,
                        "html": html_body,
                        "text": text_body,
                    },
                    timeout=10.0,
                )
                response.raise_for_status()
        except httpx.HTTPError:
            logger.exception("email_send_failed", to=to_email, provider="resend")
            return False
        logger.info("email_sent", to=to_email, subject=subject, provider="resend")
        return True


class SESProvider(BaseEmailProvider):
    """Send emails via AWS SES."""

    def __init__(self, region: str, from_address: str, from_name: str) -> None:
        self.region = region
        self.from_address = from_address
        self.from_name = from_name

    async def send(
        self,
        to_email: str,
        subject: str,
        html_body: str,
        text_body: str,
    ) -> bool:
        """Send via AWS SES."""
        import aioboto3
        from botocore.exceptions import BotoCoreError, ClientError

        try:
            session = aioboto3.Session()
            async with session.client("ses", region_name=self.region) as ses:
                await ses.send_email(
                    Source=f"{self.from_name} <{self.from_address}>",
                    Destination={"ToAddresses": [to_email]},
                    Message={
                        "Subject": {"Data": subject, "Charset": "UTF-8"},
                        "Body": {
                            "Text": {"Data": text_body, "Charset": "UTF-8"},
                            "Html": {"Data": html_body, "Charset": "UTF-8"},
                        },
                    },
                )
        except (BotoCoreError, ClientError):
            logger.exception("email_send_failed", to=to_email, provider="ses")
            return False
        logger.info("email_sent", to=to_email, subject=subject, provider="ses")
        return True


def _create_provider() -> BaseEmailProvider:
    """Create email provider based on configuration."""
    settings = get_settings()
    provider_name = settings.email_provider.lower()

    if provider_name == "log":
        return LogProvider()
    if provider_name == "smtp":
        return SMTPProvider(
            host=settings.smtp_host,
            port=settings.smtp_port,
            username=settings.smtp_username,
            password=settings.smtp_password,
            from_address=settings.email_from_address,
            from_name=settings.email_from_name,
            use_tls=settings.smtp_use_tls,
        )
    if provider_name == "resend":
        return ResendProvider(
            api_key=settings.resend_api_key,
            from_address=settings.email_from_address,
            from_name=settings.email_from_name,
        )
    if provider_name == "ses":
        return SESProvider(
            region=settings.ses_region,
            from_address=settings.email_from_address,
            from_name=settings.email_from_name,
        )
    msg = f"Unsupported email provider: {provider_name}"
    raise ValueError(msg)


class EmailService:
    """
    Outbound notification channel for game notices.

    Handles per-recipient rate limiting on top of the configured provider.
    """

    RATE_LIMIT_WINDOW = 3600

    def __init__(
        self,
        provider: BaseEmailProvider | None = None,
        redis: Redis | None = None,
        rate_limit_max: int | None = None,
    ) -> None:
        self.provider = provider or _create_provider()
        self._redis = redis
        self.rate_limit_max = rate_limit_max or get_settings().email_rate_limit_per_hour

    async def _check_rate_limit(self, email: str) -> bool:
        """Check if we can send another email to this address."""
        if self._redis is None:
            return True
        key = f"email_rate:{hashlib.sha256(email.lower().encode()).hexdigest()}"
        count = await self._redis.incr(key)
        if count == 1:
            await self._redis.expire(key, self.RATE_LIMIT_WINDOW)
        return count <= self.rate_limit_max

    async def send_email(
        self,
        to: str,
        subject: str,
        html_body: str,
        text_body: str,
    ) -> bool:
        """
        Send an email with rate limiting.

        Returns True if sent, False if rate limited or failed.
        """
        if not await self._check_rate_limit(to):
            logger.warning("email_rate_limited", to=to, subject=subject)
            return False
        return await self.provider.send(to, subject, html_body, text_body)

    async def send_template(
        self,
        to: str,
        kind: NoticeKind,
        context: dict[str, Any],
    ) -> bool:
        """Render the template for ``kind`` and send it."""
        subject, html_body, text_body = render_template(kind, context)
        return await self.send_email(to, subject, html_body, text_body)
