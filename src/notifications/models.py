"""Notification models.

This module defines the outbound message handed to a notification channel,
the channel's delivery result, and the notification records kept by the
manual approval queue.
"""

import uuid
from datetime import UTC, datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field


class NotificationPriority(str, Enum):
    """Delivery priority of an outbound message."""

    LOW = "LOW"
    NORMAL = "NORMAL"
    HIGH = "HIGH"
    CRITICAL = "CRITICAL"


class NotificationType(str, Enum):
    """Kinds of notification records emitted by the control plane."""

    SOVEREIGN_ALERT = "SOVEREIGN_ALERT"
    APPROVAL_REQUIRED = "APPROVAL_REQUIRED"
    APPROVAL_PROCESSED = "APPROVAL_PROCESSED"
    RECORDS_ARCHIVED = "RECORDS_ARCHIVED"


class EmailMessage(BaseModel):
    """A message handed to a notification channel."""

    to: str = Field(..., description="Recipient address")
    subject: str = Field(..., description="Subject line")
    body: str = Field(..., description="Plain-text body")
    html: str | None = Field(default=None, description="Optional HTML body")
    priority: NotificationPriority = Field(
        default=NotificationPriority.NORMAL, description="Delivery priority"
    )
    sender: str | None = Field(
        default=None, description="Sender address (channel default if not set)"
    )


class DeliveryResult(BaseModel):
    """Outcome of handing a message to a channel.

    ``sent`` is true only when a real provider accepted the message. The
    console channel reports ``sent=False, logged=True``.
    """

    sent: bool = Field(..., description="Whether a real provider delivered")
    logged: bool = Field(default=False, description="Whether the message was logged")
    provider: str = Field(..., description="Channel that handled the message")
    message_id: str | None = Field(default=None, description="Provider message id")
    error: str | None = Field(default=None, description="Delivery error, if any")


def _generate_notification_id() -> str:
    return f"NOT-{uuid.uuid4().hex[:12].upper()}"


class Notification(BaseModel):
    """A notification record kept by the manual approval queue."""

    id: str = Field(
        default_factory=_generate_notification_id, description="Notification id"
    )
    type: NotificationType = Field(..., description="Notification kind")
    recipient: str = Field(..., description="Recipient address")
    payload: dict[str, Any] = Field(default_factory=dict, description="Event details")
    priority: NotificationPriority = Field(
        default=NotificationPriority.NORMAL, description="Delivery priority"
    )
    timestamp: datetime = Field(
        default_factory=lambda: datetime.now(UTC),
        description="When the notification was created",
    )
    sent: bool = Field(default=False, description="Whether a real provider delivered")
    provider: str | None = Field(default=None, description="Channel used")
    error: str | None = Field(default=None, description="Delivery error, if any")
