"""Notification delivery module.

This module provides the notification channels (console, SMTP, SendGrid),
the dispatcher that applies timeouts and console fallback, and the sovereign
alert template.
"""

from src.notifications.channels import (
    ConsoleChannel,
    NotificationChannel,
    SendGridChannel,
    SMTPChannel,
    build_channel,
)
from src.notifications.dispatcher import NotificationDispatcher
from src.notifications.models import (
    DeliveryResult,
    EmailMessage,
    Notification,
    NotificationPriority,
    NotificationType,
)
from src.notifications.templates import build_sovereign_alert, format_sovereign_alert

__all__ = [
    "ConsoleChannel",
    "DeliveryResult",
    "EmailMessage",
    "Notification",
    "NotificationChannel",
    "NotificationDispatcher",
    "NotificationPriority",
    "NotificationType",
    "SMTPChannel",
    "SendGridChannel",
    "build_channel",
    "build_sovereign_alert",
    "format_sovereign_alert",
]
