"""Tests for the notification dispatcher."""

import asyncio

import pytest

from src.errors import NotificationDeliveryError
from src.notifications.channels import NotificationChannel
from src.notifications.dispatcher import NotificationDispatcher
from src.notifications.models import DeliveryResult, EmailMessage


class RecordingChannel(NotificationChannel):
    """Channel that records messages and delivers successfully."""

    name = "recording"

    def __init__(self):
        self.messages = []

    async def send(self, message):
        self.messages.append(message)
        return DeliveryResult(sent=True, provider=self.name, message_id="rec-1")


class FailingChannel(NotificationChannel):
    """Channel whose provider always rejects."""

    name = "smtp"

    async def send(self, message):
        raise NotificationDeliveryError("SMTP delivery failed: 550", provider=self.name)


class SlowChannel(NotificationChannel):
    """Channel that never answers in time."""

    name = "slow"

    async def send(self, message):
        await asyncio.sleep(10)
        return DeliveryResult(sent=True, provider=self.name)


@pytest.fixture
def message():
    """A sample outbound message."""
    return EmailMessage(to="sovereign@example.com", subject="Alert", body="body")


class TestNotificationDispatcher:
    """Tests for NotificationDispatcher."""

    @pytest.mark.asyncio
    async def test_primary_delivery(self, message):
        """Test the primary channel's result is returned."""
        channel = RecordingChannel()
        dispatcher = NotificationDispatcher(channel)

        result = await dispatcher.dispatch(message)

        assert result.sent is True
        assert result.message_id == "rec-1"
        assert channel.messages == [message]
        assert dispatcher.provider == "recording"

    @pytest.mark.asyncio
    async def test_default_is_console(self, message):
        """Test a dispatcher without a channel logs to the console."""
        result = await NotificationDispatcher().dispatch(message)

        assert result.sent is False
        assert result.logged is True
        assert result.provider == "console"

    @pytest.mark.asyncio
    async def test_failure_falls_back_to_console(self, message):
        """Test provider failures are logged and never raised."""
        result = await NotificationDispatcher(FailingChannel()).dispatch(message)

        assert result.sent is False
        assert result.logged is True
        assert result.provider == "smtp"
        assert "550" in result.error
        assert result.message_id.startswith("console-")

    @pytest.mark.asyncio
    async def test_timeout_falls_back_to_console(self, message):
        """Test slow providers are abandoned after the timeout."""
        dispatcher = NotificationDispatcher(SlowChannel(), timeout=0.05)

        result = await dispatcher.dispatch(message)

        assert result.sent is False
        assert result.logged is True
        assert "timed out" in result.error
