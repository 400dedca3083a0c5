"""Notification channels.

A channel delivers one ``EmailMessage`` and reports a ``DeliveryResult``.
Supported providers:
- console: structured log entry (default and fallback)
- smtp: async SMTP via aiosmtplib
- sendgrid: SendGrid v3 mail API via httpx

Real channels raise ``NotificationDeliveryError`` on failure. The dispatcher
turns that into a console fallback.
"""

import email.mime.multipart
import email.mime.text
import email.utils
import time
from abc import ABC, abstractmethod
from typing import Any

import aiosmtplib
import httpx
import structlog

from src.config import Settings
from src.errors import NotificationDeliveryError
from src.notifications.models import DeliveryResult, EmailMessage, NotificationPriority

logger = structlog.get_logger(__name__)

SENDGRID_API_URL = "https://api.sendgrid.com/v3/mail/send"

_URGENT = (NotificationPriority.HIGH, NotificationPriority.CRITICAL)


class NotificationChannel(ABC):
    """A capability that delivers a message and reports the outcome."""

    name: str = "abstract"

    @abstractmethod
    async def send(self, message: EmailMessage) -> DeliveryResult:
        """Deliver a message.

        Raises:
            NotificationDeliveryError: If the provider rejected the message.
        """


class ConsoleChannel(NotificationChannel):
    """Writes messages to the structured log instead of sending them."""

    name = "console"

    def __init__(self, sender: str = "noreply@localhost") -> None:
        self.sender = sender
        self._logger = logger.bind(component="console_channel")

    async def send(self, message: EmailMessage) -> DeliveryResult:
        log = self._logger.warning if message.priority in _URGENT else self._logger.info
        log(
            "notification_logged",
            to=message.to,
            sender=message.sender or self.sender,
            subject=message.subject,
            priority=message.priority.value,
            body=message.body,
        )
        return DeliveryResult(
            sent=False,
            logged=True,
            provider=self.name,
            message_id=f"console-{int(time.time() * 1000)}",
        )


class SMTPChannel(NotificationChannel):
    """Sends messages through an SMTP server using aiosmtplib.

    Uses STARTTLS when the server offers it, or implicit TLS when
    ``use_tls`` is set (port 465).
    """

    name = "smtp"

    def __init__(
        self,
        hostname: str,
        port: int = 587,
        *,
        username: str | None = None,
        password: str | None = None,
        use_tls: bool = False,
        sender: str = "noreply@localhost",
    ) -> None:
        """Initialize the SMTP channel.

        Args:
            hostname: SMTP server hostname.
            port: SMTP server port.
            username: SMTP login username.
            password: SMTP login password.
            use_tls: Use implicit TLS.
            sender: Default ``From`` address.
        """
        self.hostname = hostname
        self.port = port
        self.username = username
        self.password = password
        self.use_tls = use_tls
        self.sender = sender
        self._logger = logger.bind(component="smtp_channel", smtp_host=hostname)

    def _build_mime(self, message: EmailMessage) -> Any:
        if message.html:
            mime: Any = email.mime.multipart.MIMEMultipart("alternative")
            mime.attach(email.mime.text.MIMEText(message.body, "plain", "utf-8"))
            mime.attach(email.mime.text.MIMEText(message.html, "html", "utf-8"))
        else:
            mime = email.mime.text.MIMEText(message.body, "plain", "utf-8")

        mime["From"] = message.sender or self.sender
        mime["To"] = message.to
        mime["Subject"] = message.subject
        mime["Date"] = email.utils.formatdate(localtime=True)
        mime["Message-ID"] = email.utils.make_msgid()
        if message.priority in _URGENT:
            mime["X-Priority"] = "1"
            mime["Importance"] = "high"
        return mime

    async def send(self, message: EmailMessage) -> DeliveryResult:
        mime = self._build_mime(message)

        smtp_kwargs: dict[str, Any] = {
            "hostname": self.hostname,
            "port": self.port,
            "use_tls": self.use_tls,
        }
        if self.username:
            smtp_kwargs["username"] = self.username
        if self.password:
            smtp_kwargs["password"] = self.password

        try:
            await aiosmtplib.send(mime, **smtp_kwargs)
        except aiosmtplib.SMTPException as e:
            raise NotificationDeliveryError(
                f"SMTP delivery failed: {e}", provider=self.name
            ) from e
        except OSError as e:
            raise NotificationDeliveryError(
                f"SMTP connection failed: {e}", provider=self.name
            ) from e

        self._logger.info("notification_sent", to=message.to, subject=message.subject)
        return DeliveryResult(
            sent=True,
            provider=self.name,
            message_id=mime["Message-ID"],
        )


class SendGridChannel(NotificationChannel):
    """Sends messages through the SendGrid v3 mail API."""

    name = "sendgrid"

    def __init__(
        self,
        api_key: str,
        *,
        sender: str = "noreply@localhost",
        api_url: str = SENDGRID_API_URL,
        timeout: float = 10.0,
    ) -> None:
        self.api_key = api_key
        self.sender = sender
        self.api_url = api_url
        self.timeout = timeout
        self._logger = logger.bind(component="sendgrid_channel")

    def _build_payload(self, message: EmailMessage) -> dict[str, Any]:
        content = [{"type": "text/plain", "value": message.body}]
        if message.html:
            content.append({"type": "text/html", "value": message.html})
        return {
            "personalizations": [{"to": [{"email": message.to}]}],
            "from": {"email": message.sender or self.sender},
            "subject": message.subject,
            "content": content,
        }

    async def send(self, message: EmailMessage) -> DeliveryResult:
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.post(
                    self.api_url,
                    json=self._build_payload(message),
                    headers={
                        "Authorization": f"Bearer {self.api_key}",
                        "Content-Type": "application/json",
                    },
                )
        except httpx.HTTPError as e:
            raise NotificationDeliveryError(
                f"SendGrid request failed: {e}", provider=self.name
            ) from e

        if response.status_code >= 400:
            raise NotificationDeliveryError(
                f"SendGrid API error: {response.status_code} - {response.text}",
                provider=self.name,
                details={"status_code": response.status_code},
            )

        self._logger.info("notification_sent", to=message.to, subject=message.subject)
        return DeliveryResult(
            sent=True,
            provider=self.name,
            message_id=response.headers.get("x-message-id"),
        )


def build_channel(settings: Settings) -> NotificationChannel:
    """Create the channel selected by ``EMAIL_PROVIDER``.

    A provider that is unknown or missing its credentials degrades to the
    console channel with a warning.

    Args:
        settings: Control plane settings.

    Returns:
        The configured notification channel.
    """
    provider = settings.EMAIL_PROVIDER.lower()
    sender = settings.EMAIL_FROM

    if provider == "smtp":
        if settings.SMTP_HOST:
            return SMTPChannel(
                settings.SMTP_HOST,
                settings.SMTP_PORT,
                username=settings.SMTP_USER,
                password=settings.SMTP_PASSWORD,
                use_tls=settings.SMTP_USE_TLS,
                sender=sender,
            )
        logger.warning("email_provider_misconfigured", provider=provider, missing="SMTP_HOST")
    elif provider == "sendgrid":
        if settings.SENDGRID_API_KEY:
            return SendGridChannel(settings.SENDGRID_API_KEY, sender=sender)
        logger.warning(
            "email_provider_misconfigured", provider=provider, missing="SENDGRID_API_KEY"
        )
    elif provider != "console":
        logger.warning("email_provider_unsupported", provider=provider)

    return ConsoleChannel(sender=sender)
