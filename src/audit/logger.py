"""Forensic audit logger.

Every operation attempt and its outcome is recorded as an immutable,
hash-chained audit entry scoped to a single domain.
"""

import asyncio
import hashlib
import json
from datetime import UTC, datetime
from typing import Any

import structlog
from pydantic_core import to_jsonable_python

from src.audit.models import (
    AuditEntry,
    AuditFilters,
    IntegrityReport,
    LogResult,
    OperationRequest,
)
from src.audit.policy import (
    ApprovalThresholds,
    ComplianceCounter,
    NullComplianceCounter,
    SuspicionThresholds,
    classify_risk,
    redact_sensitive_fields,
    run_audit_checks,
)
from src.audit.store import AuditStore, InMemoryAuditStore

logger = structlog.get_logger(__name__)

MIN_PAGE_SIZE = 1
MAX_PAGE_SIZE = 1000

# Payload keys that tie an entry to an entity for forensic trails
TRAIL_KEYS = (
    "entity_id",
    "entityId",
    "identity_id",
    "identityId",
    "deed_id",
    "deedId",
    "approval_id",
    "approvalId",
)


def compute_entry_hash(entry: AuditEntry) -> str:
    """Compute the SHA-256 of an entry's canonical content.

    Covers every field except the store-assigned ``id``/``sequence`` and the
    hash itself. ``previous_hash`` is included, which chains the entries.
    """
    content = entry.model_dump(mode="json", exclude={"id", "sequence", "hash"})
    canonical = json.dumps(content, sort_keys=True, separators=(",", ":"), default=str)
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()


class ForensicLogger:
    """Records operation attempts and outcomes for a single domain.

    Logging never blocks the pipeline: persistence failures come back as
    ``LogResult(logged=False, error=...)``. When disabled, every call returns
    ``LogResult(logged=False, reason="disabled")``.

    Example:
        forensic = ForensicLogger("example.pi", store=SQLiteAuditStore("audit.db"))
        result = await forensic.log(request)
        report = await forensic.verify_integrity()
    """

    def __init__(
        self,
        domain: str,
        store: AuditStore | None = None,
        *,
        database: str | None = None,
        enabled: bool = True,
        thresholds: ApprovalThresholds | None = None,
        suspicion_thresholds: SuspicionThresholds | None = None,
        compliance_counter: ComplianceCounter | None = None,
    ) -> None:
        """Initialize the forensic logger.

        Args:
            domain: Domain every entry and read is scoped to.
            store: Audit store (in-memory if not provided).
            database: Database identifier recorded in entries.
            enabled: Whether logging is active.
            thresholds: Amount thresholds for risk classification.
            suspicion_thresholds: Thresholds for suspicious activity detection.
            compliance_counter: Hook reporting an actor's recent operations.
        """
        self.domain = domain
        self.database = database or f"{domain}_db"
        self.enabled = enabled
        self.thresholds = thresholds or ApprovalThresholds()
        self._suspicion_thresholds = suspicion_thresholds or SuspicionThresholds()
        self._store = store or InMemoryAuditStore()
        self._compliance_counter = compliance_counter or NullComplianceCounter()
        self._chain_lock = asyncio.Lock()
        self._logger = logger.bind(component="forensic_logger", domain=domain)

        if not enabled:
            self._logger.warning("forensic_logging_disabled")

    @property
    def store(self) -> AuditStore:
        """The backing audit store."""
        return self._store

    async def log(self, request: OperationRequest, *, approved: bool = False) -> LogResult:
        """Record an operation attempt or outcome.

        Args:
            request: The operation to record.
            approved: ``True`` for outcome entries written after execution.

        Returns:
            Result describing whether and how the entry was recorded.
        """
        if not self.enabled:
            return LogResult(logged=False, reason="disabled")

        risk_level = classify_risk(
            request.base_type, request.amount, self.thresholds
        )
        recent = await self._recent_operation_count(request)
        checks = run_audit_checks(
            request,
            thresholds=self.thresholds,
            recent_operation_count=recent,
            suspicion_thresholds=self._suspicion_thresholds,
        )

        entry = AuditEntry(
            operation_type=request.operation_type,
            operation_data=to_jsonable_python(
                redact_sensitive_fields(request.operation_data), fallback=str
            ),
            actor=request.actor,
            domain=self.domain,
            database=self.database,
            timestamp=datetime.now(UTC),
            approved=approved,
            risk_level=risk_level,
            context=request.context.model_dump(mode="json"),
            identity_verified=checks.identity.verified,
            validation_errors=checks.validation.errors,
            suspicion_indicators=checks.suspicion.indicators,
        )

        try:
            async with self._chain_lock:
                previous = await self._store.last(self.domain)
                linked = entry.model_copy(
                    update={"previous_hash": previous.hash if previous else None}
                )
                linked = linked.model_copy(update={"hash": compute_entry_hash(linked)})
                stored = await self._store.append(linked)
        except Exception as e:
            self._logger.error(
                "audit_log_failed",
                operation_type=request.operation_type,
                error=str(e),
            )
            return LogResult(
                logged=False,
                approved=approved,
                risk_level=risk_level,
                checks_passed=checks.passed,
                error=str(e),
            )

        self._logger.info(
            "operation_logged",
            audit_entry_id=stored.id,
            operation_type=stored.operation_type,
            actor_id=stored.actor.id,
            risk_level=risk_level.value,
            checks_passed=checks.passed,
        )

        return LogResult(
            logged=True,
            audit_entry_id=stored.id,
            approved=approved,
            risk_level=risk_level,
            checks_passed=checks.passed,
        )

    async def _recent_operation_count(self, request: OperationRequest) -> int:
        try:
            return await self._compliance_counter.count_recent(
                request.actor.id,
                request.operation_type,
                self._suspicion_thresholds.rapid_operations_window,
            )
        except Exception as e:
            self._logger.warning("compliance_counter_failed", error=str(e))
            return 0

    def _scoped(self, filters: AuditFilters | None) -> AuditFilters:
        filters = filters or AuditFilters()
        return filters.model_copy(
            update={
                "domain": self.domain,
                "limit": max(MIN_PAGE_SIZE, min(filters.limit, MAX_PAGE_SIZE)),
                "offset": max(0, filters.offset),
            }
        )

    async def get_audit_logs(self, filters: AuditFilters | None = None) -> list[AuditEntry]:
        """Read audit entries for the bound domain, newest first.

        A domain in the filters is ignored. The limit is clamped to
        [1, 1000] and a negative offset is treated as 0.
        """
        if not self.enabled:
            return []
        return await self._store.query(self._scoped(filters))

    async def get_audit_log_count(self, filters: AuditFilters | None = None) -> int:
        """Count audit entries for the bound domain."""
        if not self.enabled:
            return 0
        return await self._store.count(self._scoped(filters))

    async def verify_integrity(self) -> IntegrityReport:
        """Walk the domain's hash chain and check every link.

        Returns:
            Report naming the first broken entry, if any.
        """
        if not self.enabled:
            return IntegrityReport(valid=True, message="Forensic logging disabled")

        history = await self._store.history(self.domain)
        if not history:
            return IntegrityReport(valid=True, message="No entries to verify")

        previous_hash: str | None = None
        for entry in history:
            if entry.previous_hash != previous_hash:
                self._logger.error("audit_chain_broken", entry_id=entry.id)
                return IntegrityReport(
                    valid=False,
                    message=f"Chain broken at entry {entry.id}",
                    total_entries=len(history),
                    entry_id=entry.id,
                )
            if compute_entry_hash(entry) != entry.hash:
                self._logger.error("audit_hash_mismatch", entry_id=entry.id)
                return IntegrityReport(
                    valid=False,
                    message=f"Hash mismatch at entry {entry.id}",
                    total_entries=len(history),
                    entry_id=entry.id,
                )
            previous_hash = entry.hash

        return IntegrityReport(
            valid=True,
            message=f"All {len(history)} entries verified",
            total_entries=len(history),
            last_hash=previous_hash,
        )

    async def get_forensic_trail(self, entity_id: str) -> list[AuditEntry]:
        """Return the entries referencing an entity, oldest first."""
        if not self.enabled:
            return []
        history = await self._store.history(self.domain)
        return [
            entry
            for entry in history
            if any(entry.operation_data.get(key) == entity_id for key in TRAIL_KEYS)
        ]

    async def export_logs(self) -> dict[str, Any]:
        """Export the domain's full audit trail with an integrity report."""
        history = await self._store.history(self.domain) if self.enabled else []
        report = await self.verify_integrity()
        return {
            "domain": self.domain,
            "database": self.database,
            "exported_at": datetime.now(UTC).isoformat(),
            "total_entries": len(history),
            "integrity": report.model_dump(),
            "entries": [entry.model_dump(mode="json") for entry in history],
        }
