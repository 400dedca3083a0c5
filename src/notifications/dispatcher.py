"""Notification dispatcher.

Wraps a channel with a delivery timeout and a console fallback so that
notification failures are observable but never propagate to the caller.
"""

import asyncio

import structlog

from src.notifications.channels import ConsoleChannel, NotificationChannel
from src.notifications.models import DeliveryResult, EmailMessage

logger = structlog.get_logger(__name__)


class NotificationDispatcher:
    """Delivers messages through a channel, falling back to the console.

    Example:
        dispatcher = NotificationDispatcher(build_channel(settings), timeout=5.0)
        result = await dispatcher.dispatch(message)
    """

    def __init__(
        self,
        channel: NotificationChannel | None = None,
        *,
        fallback: ConsoleChannel | None = None,
        timeout: float = 5.0,
    ) -> None:
        """Initialize the dispatcher.

        Args:
            channel: Primary channel (console if not provided).
            fallback: Channel used when the primary fails.
            timeout: Delivery timeout in seconds.
        """
        self.fallback = fallback or ConsoleChannel()
        self.channel = channel or self.fallback
        self.timeout = timeout
        self._logger = logger.bind(component="notification_dispatcher")

    @property
    def provider(self) -> str:
        """Name of the primary channel."""
        return self.channel.name

    async def dispatch(self, message: EmailMessage) -> DeliveryResult:
        """Deliver a message. Never raises.

        Args:
            message: Message to deliver.

        Returns:
            The primary channel's result, or a fallback result carrying the
            primary's error with ``sent=False, logged=True``.
        """
        try:
            return await asyncio.wait_for(self.channel.send(message), timeout=self.timeout)
        except TimeoutError:
            error = f"Notification delivery timed out after {self.timeout}s"
        except Exception as e:
            error = str(e)

        self._logger.error(
            "notification_delivery_failed",
            provider=self.channel.name,
            to=message.to,
            subject=message.subject,
            error=error,
        )

        fallback_result = await self.fallback.send(message)
        return DeliveryResult(
            sent=False,
            logged=fallback_result.logged,
            provider=self.channel.name,
            message_id=fallback_result.message_id,
            error=error,
        )
