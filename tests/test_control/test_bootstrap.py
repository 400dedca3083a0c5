"""Tests for per-domain control plane wiring."""

import pytest
from structlog.testing import capture_logs

from src.approval.authority import ApprovalAuthority, AuthorityResponse
from src.approval.models import ApprovalThresholds
from src.audit.models import Actor
from src.audit.store import InMemoryAuditStore, SQLiteAuditStore
from src.config import Settings
from src.control.bootstrap import DomainControls
from src.notifications.channels import ConsoleChannel
from src.notifications.models import NotificationType


class StubAuthority(ApprovalAuthority):
    """Authority approving everything."""

    async def submit(self, request, *, domain):
        return AuthorityResponse(status_code=200, approved=True, message="ok")


@pytest.fixture
def settings():
    """Settings for the example domain."""
    return Settings(DOMAIN="example", SOVEREIGN_EMAIL="sovereign@example.com")


@pytest.fixture
def actor():
    """A verified actor."""
    return Actor(id="user-1", email="user@example.com", verified=True)


class TestDomainControls:
    """Tests for DomainControls."""

    def test_wiring_from_settings(self, settings):
        """Test components are built from settings."""
        controls = DomainControls(settings=settings, authority=StubAuthority())

        assert controls.domain == "example"
        assert controls.database == "example_db"
        assert controls.sovereign_email == "sovereign@example.com"
        assert isinstance(controls.forensic_logger.store, InMemoryAuditStore)
        assert isinstance(controls.dispatcher.channel, ConsoleChannel)
        assert controls.approval_engine is not None
        assert controls.executor.approval_engine is controls.approval_engine

    def test_explicit_domain_wins(self, settings):
        """Test an explicit domain overrides settings."""
        controls = DomainControls("other", settings=settings)
        assert controls.forensic_logger.domain == "other"

    def test_sqlite_store_when_path_set(self, settings, tmp_path):
        """Test AUDIT_DB_PATH selects the SQLite store."""
        settings.AUDIT_DB_PATH = str(tmp_path / "audit.db")

        controls = DomainControls(settings=settings)

        assert isinstance(controls.forensic_logger.store, SQLiteAuditStore)

    @pytest.mark.asyncio
    async def test_approval_not_required(self, settings, actor):
        """Test APPROVAL_REQUIRED=false auto-approves and still flags review."""
        settings.APPROVAL_REQUIRED = False
        controls = DomainControls(settings=settings)

        result = await controls.execute_with_controls(
            "payment_create",
            {"amount": 15000, "domain": "example"},
            actor=actor,
            operation_body=lambda: "paid",
        )

        assert result.success is True
        assert result.approval_result.auto_approved is True
        assert result.approval_result.requires_manual_review is True
        assert controls.approval_engine.enabled is False
        assert controls.get_status()["approval_required"] is False

    def test_invalid_thresholds_fall_back(self, settings):
        """Test misordered thresholds warn and use the defaults."""
        settings.CRITICAL_AMOUNT = 500.0

        with capture_logs() as logs:
            controls = DomainControls(settings=settings)

        assert controls.thresholds == ApprovalThresholds()
        assert controls.approval_engine.thresholds.critical_amount == 50000.0
        warning = next(log for log in logs if log["event"] == "invalid_config_value")
        assert warning["name"] == "thresholds"
        assert warning["log_level"] == "warning"

    @pytest.mark.asyncio
    async def test_sovereign_alert_recorded(self, settings, actor):
        """Test sovereign alerts appear in the notification history."""
        controls = DomainControls(settings=settings, authority=StubAuthority())

        result = await controls.execute_with_controls(
            "transfer",
            {"amount": 20000, "destination": "wallet-1", "password": "hunter2"},
            actor=actor,
        )

        notifications = await controls.approval_queue.get_notifications()

        assert result.approval_result.notification is not None
        assert len(notifications) == 1
        alert = notifications[0]
        assert alert.type == NotificationType.SOVEREIGN_ALERT
        assert alert.recipient == "sovereign@example.com"
        assert alert.sent is False
        assert alert.provider == "console"
        assert alert.payload["operation_type"] == "transfer"
        assert alert.payload["operation_data"]["password"] == "***"
        assert alert.payload["approved"] is True

    def test_metadata(self, settings):
        """Test metadata describes the configuration."""
        metadata = DomainControls(settings=settings).get_metadata()

        assert metadata["domain"] == "example"
        assert metadata["email_provider"] == "console"
        assert metadata["thresholds"]["critical_amount"] == 50000.0

    def test_status(self, settings):
        """Test status reports flags and uptime."""
        settings.FORENSIC_ENABLED = False

        status = DomainControls(settings=settings).get_status()

        assert status["forensic_enabled"] is False
        assert status["components"]["approval_queue"] is True
        assert status["uptime_seconds"] >= 0

    @pytest.mark.asyncio
    async def test_execute_and_stats(self, settings, actor):
        """Test execution statistics derived from the audit trail."""
        controls = DomainControls(settings=settings, authority=StubAuthority())

        await controls.execute_with_controls(
            "payment_create",
            {"amount": 10, "domain": "example"},
            actor=actor,
            operation_body=lambda: "ok",
        )

        async def failing():
            raise RuntimeError("boom")

        await controls.execute_with_controls(
            "payment_create",
            {"amount": 10, "domain": "example"},
            actor=actor,
            operation_body=failing,
        )
        approval = await controls.approval_queue.request_approval("transfer", {}, "u")
        await controls.approval_queue.process_approval(approval.id, True)

        stats = await controls.get_approval_stats()

        assert stats.attempts == 2
        assert stats.executed == 2
        assert stats.not_executed == 0
        assert stats.execution_rate == 100.0

    @pytest.mark.asyncio
    async def test_stats_empty(self, settings):
        """Test statistics with no history."""
        stats = await DomainControls(settings=settings).get_approval_stats()

        assert stats.attempts == 0
        assert stats.execution_rate == 0.0

    @pytest.mark.asyncio
    async def test_close(self, settings, tmp_path):
        """Test closing releases the audit store."""
        settings.AUDIT_DB_PATH = str(tmp_path / "audit.db")
        controls = DomainControls(settings=settings)
        await controls.forensic_logger.store.initialize()

        await controls.close()

        assert controls.forensic_logger.store._connection is None
