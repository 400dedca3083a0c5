"""Tests for the forensic audit logger."""

import asyncio
from datetime import timedelta
from unittest.mock import AsyncMock

import pytest
from structlog.testing import capture_logs

from src.audit.logger import ForensicLogger, compute_entry_hash
from src.audit.models import Actor, AuditFilters, OperationRequest, RequestContext, RiskLevel
from src.audit.policy import ComplianceCounter
from src.audit.store import InMemoryAuditStore
from src.errors import AuditPersistenceError

# ============================================================================
# Fixtures
# ============================================================================


@pytest.fixture
def store():
    """Create an in-memory audit store."""
    return InMemoryAuditStore()


@pytest.fixture
def forensic(store):
    """Create a forensic logger for the example domain."""
    return ForensicLogger("example", store)


@pytest.fixture
def actor():
    """A verified actor."""
    return Actor(id="user-1", email="user@example.com", verified=True)


def transfer(amount=100, actor=None, **extra):
    """Build a transfer request."""
    return OperationRequest(
        operation_type="transfer",
        operation_data={"amount": amount, "destination": "wallet-1", **extra},
        actor=actor or Actor(id="user-1", email="user@example.com", verified=True),
        context=RequestContext(domain="example", ip="10.0.0.1"),
    )


# ============================================================================
# Logging
# ============================================================================


class TestLog:
    """Tests for recording entries."""

    @pytest.mark.asyncio
    async def test_log_records_entry(self, forensic, store):
        """Test a logged request produces one entry."""
        result = await forensic.log(transfer(20000))

        assert result.logged is True
        assert result.audit_entry_id
        assert result.risk_level == RiskLevel.HIGH
        assert result.checks_passed is True

        entries = await store.history("example")
        assert len(entries) == 1
        entry = entries[0]
        assert entry.id == result.audit_entry_id
        assert entry.approved is False
        assert entry.database == "example_db"
        assert entry.identity_verified is True
        assert entry.context["ip"] == "10.0.0.1"

    @pytest.mark.asyncio
    async def test_log_records_check_failures(self, forensic, store):
        """Test failing checks are recorded, not raised."""
        request = OperationRequest(operation_type="transfer", operation_data={})

        result = await forensic.log(request)

        assert result.logged is True
        assert result.checks_passed is False
        entry = (await store.history("example"))[0]
        assert entry.identity_verified is False
        assert "Missing destination" in entry.validation_errors

    @pytest.mark.asyncio
    async def test_secrets_are_redacted(self, forensic, store):
        """Test secrets never reach the store."""
        await forensic.log(transfer(password="hunter2"))

        entry = (await store.history("example"))[0]
        assert entry.operation_data["password"] == "***"
        assert "hunter2" not in entry.model_dump_json()

    @pytest.mark.asyncio
    async def test_non_json_values_are_stringified(self, forensic, store):
        """Test arbitrary payload values are persisted."""
        marker = object()

        result = await forensic.log(transfer(note=marker))

        assert result.logged is True
        entry = (await store.history("example"))[0]
        assert entry.operation_data["note"] == str(marker)

    @pytest.mark.asyncio
    async def test_entries_scoped_to_logger_domain(self, store):
        """Test the logger's domain wins over the request context."""
        forensic = ForensicLogger("bound", store)
        request = transfer()
        request.context.domain = "other"

        await forensic.log(request)

        assert len(await store.history("bound")) == 1
        assert await store.history("other") == []

    @pytest.mark.asyncio
    async def test_store_failure_returns_error(self, store):
        """Test persistence failures never raise."""
        store.append = AsyncMock(
            side_effect=AuditPersistenceError("Failed to persist audit entry: disk full")
        )
        forensic = ForensicLogger("example", store)

        result = await forensic.log(transfer())

        assert result.logged is False
        assert "disk full" in result.error

    @pytest.mark.asyncio
    async def test_compliance_counter_feeds_suspicion(self, store):
        """Test recent operation counts raise rapid-operation indicators."""

        class BusyCounter(ComplianceCounter):
            async def count_recent(self, actor_id, operation_type, window):
                assert window == timedelta(minutes=1)
                return 10

        forensic = ForensicLogger("example", store, compliance_counter=BusyCounter())

        await forensic.log(transfer())

        entry = (await store.history("example"))[0]
        assert "Rapid repeated operations detected" in entry.suspicion_indicators

    @pytest.mark.asyncio
    async def test_counter_failure_counts_zero(self, store):
        """Test a failing counter does not block logging."""
        counter = AsyncMock(spec=ComplianceCounter)
        counter.count_recent.side_effect = RuntimeError("counter down")
        forensic = ForensicLogger("example", store, compliance_counter=counter)

        result = await forensic.log(transfer())

        assert result.logged is True


# ============================================================================
# Disabled logger
# ============================================================================


class TestDisabled:
    """Tests for a disabled logger."""

    def test_construction_warns(self, store):
        """Test disabling logging is announced."""
        with capture_logs() as logs:
            ForensicLogger("example", store, enabled=False)

        assert any(
            log["event"] == "forensic_logging_disabled" and log["log_level"] == "warning"
            for log in logs
        )

    @pytest.mark.asyncio
    async def test_disabled_writes_nothing(self, store):
        """Test calls succeed without writing."""
        forensic = ForensicLogger("example", store, enabled=False)

        result = await forensic.log(transfer())

        assert result.logged is False
        assert result.reason == "disabled"
        assert await store.history("example") == []
        assert await forensic.get_audit_logs() == []
        assert await forensic.get_audit_log_count() == 0


# ============================================================================
# Hash chain
# ============================================================================


class TestHashChain:
    """Tests for hash chaining and integrity verification."""

    @pytest.mark.asyncio
    async def test_entries_are_chained(self, forensic, store):
        """Test each entry links to its predecessor."""
        for amount in (1, 2, 3):
            await forensic.log(transfer(amount))

        entries = await store.history("example")
        assert entries[0].previous_hash is None
        assert entries[1].previous_hash == entries[0].hash
        assert entries[2].previous_hash == entries[1].hash
        assert all(compute_entry_hash(e) == e.hash for e in entries)

    @pytest.mark.asyncio
    async def test_concurrent_logs_keep_chain_linear(self, forensic):
        """Test concurrent writers never fork the chain."""
        await asyncio.gather(*(forensic.log(transfer(i + 1)) for i in range(20)))

        report = await forensic.verify_integrity()

        assert report.valid is True
        assert report.total_entries == 20

    @pytest.mark.asyncio
    async def test_verify_empty(self, forensic):
        """Test verifying an empty trail."""
        report = await forensic.verify_integrity()
        assert report.valid is True
        assert report.message == "No entries to verify"

    @pytest.mark.asyncio
    async def test_verify_detects_tampering(self, forensic, store):
        """Test a modified entry is detected."""
        for amount in (1, 2, 3):
            await forensic.log(transfer(amount))

        tampered = store._entries[1].model_copy(
            update={"operation_data": {"amount": 999999, "destination": "attacker"}}
        )
        store._entries[1] = tampered

        report = await forensic.verify_integrity()

        assert report.valid is False
        assert report.entry_id == tampered.id
        assert report.message == f"Hash mismatch at entry {tampered.id}"

    @pytest.mark.asyncio
    async def test_verify_detects_removed_entry(self, forensic, store):
        """Test a deleted entry breaks the chain."""
        for amount in (1, 2, 3):
            await forensic.log(transfer(amount))

        del store._entries[1]

        report = await forensic.verify_integrity()

        assert report.valid is False
        assert report.message.startswith("Chain broken at entry")


# ============================================================================
# Reads
# ============================================================================


class TestReads:
    """Tests for audit reads."""

    @pytest.mark.asyncio
    async def test_reads_ignore_foreign_domain_filter(self, store):
        """Test a logger never reads another domain's entries."""
        await ForensicLogger("a", store).log(transfer())
        forensic_b = ForensicLogger("b", store)
        await forensic_b.log(transfer())

        logs = await forensic_b.get_audit_logs(AuditFilters(domain="a"))

        assert len(logs) == 1
        assert logs[0].domain == "b"

    @pytest.mark.asyncio
    async def test_limit_clamped_and_offset_floored(self, forensic):
        """Test out-of-range pagination is normalized."""
        for amount in range(1, 4):
            await forensic.log(transfer(amount))

        assert len(await forensic.get_audit_logs(AuditFilters(limit=0))) == 1
        assert len(await forensic.get_audit_logs(AuditFilters(limit=5000))) == 3
        assert len(await forensic.get_audit_logs(AuditFilters(offset=-5))) == 3

    @pytest.mark.asyncio
    async def test_filter_by_actor_and_count(self, forensic):
        """Test filters apply to reads and counts."""
        await forensic.log(transfer(actor=Actor(id="alice", email="a@x.io")))
        await forensic.log(transfer(actor=Actor(id="bob", email="b@x.io")))

        logs = await forensic.get_audit_logs(AuditFilters(actor_id="alice"))

        assert [e.actor.id for e in logs] == ["alice"]
        assert await forensic.get_audit_log_count(AuditFilters(actor_id="bob")) == 1

    @pytest.mark.asyncio
    async def test_forensic_trail(self, forensic):
        """Test entries are found by entity reference."""
        await forensic.log(transfer(deedId="deed-1"))
        await forensic.log(transfer(approval_id="deed-1"))
        await forensic.log(transfer(deedId="deed-2"))

        trail = await forensic.get_forensic_trail("deed-1")

        assert len(trail) == 2
        assert trail[0].sequence < trail[1].sequence

    @pytest.mark.asyncio
    async def test_export(self, forensic):
        """Test the export bundles entries with an integrity report."""
        await forensic.log(transfer())

        export = await forensic.export_logs()

        assert export["domain"] == "example"
        assert export["total_entries"] == 1
        assert export["integrity"]["valid"] is True
        assert len(export["entries"]) == 1
