"""Forensic audit logging module.

This module records every operation attempt and outcome as an immutable,
hash-chained audit entry, and provides the policy checks applied to each
request.
"""

from src.audit.logger import ForensicLogger, compute_entry_hash
from src.audit.models import (
    Actor,
    AuditEntry,
    AuditFilters,
    IntegrityReport,
    LogResult,
    OperationRequest,
    OperationType,
    RequestContext,
    RiskLevel,
)
from src.audit.policy import (
    ApprovalThresholds,
    ComplianceCounter,
    classify_risk,
    redact_sensitive_fields,
)
from src.audit.store import AuditStore, InMemoryAuditStore, SQLiteAuditStore

__all__ = [
    "Actor",
    "ApprovalThresholds",
    "AuditEntry",
    "AuditFilters",
    "AuditStore",
    "ComplianceCounter",
    "ForensicLogger",
    "InMemoryAuditStore",
    "IntegrityReport",
    "LogResult",
    "OperationRequest",
    "OperationType",
    "RequestContext",
    "RiskLevel",
    "SQLiteAuditStore",
    "classify_risk",
    "compute_entry_hash",
    "redact_sensitive_fields",
]
