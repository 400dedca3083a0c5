"""Audit policy: risk classification and forensic checks.

This module holds the deterministic policy functions shared by the forensic
logger and the reference approval authority:

- Threshold-based risk classification
- Identity verification
- Operation validation against the typed payload of each operation type
- Suspicious activity detection
- Redaction of secrets from payloads before they are persisted
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from typing import Any

from pydantic import BaseModel, Field, ValidationError, model_validator

from src.audit.models import (
    Actor,
    OperationRequest,
    OperationType,
    RiskLevel,
    max_risk,
)

_MAX_REDACT_DEPTH = 20

# Substring match, case-insensitive
SENSITIVE_KEY_MARKERS: tuple[str, ...] = (
    "password",
    "secret",
    "token",
    "apikey",
    "api_key",
    "privatekey",
    "private_key",
    "credential",
    "authorization",
    "seed",
    "mnemonic",
    "pin",
    "cvv",
)

# Words containing a marker that are not secrets, removed before matching
_SAFE_WORDS: tuple[str, ...] = ("shipping", "mapping", "spinner", "opinion")

# Base risk tier per operation type, before amount is considered
_BASE_RISK: dict[str, RiskLevel] = {
    OperationType.WITHDRAWAL.value: RiskLevel.MEDIUM,
    OperationType.TRANSFER.value: RiskLevel.MEDIUM,
    OperationType.DOMAIN_PURCHASE.value: RiskLevel.MEDIUM,
}

# IPs never accepted by identity verification
BLACKLISTED_IPS: frozenset[str] = frozenset({"0.0.0.0"})


class ApprovalThresholds(BaseModel):
    """Amount thresholds driving risk tiers and approval policy."""

    auto_approve_amount: float = Field(
        default=1000.0, description="Amounts below this are routine"
    )
    manual_review_amount: float = Field(
        default=10000.0, description="Amounts at or above this need human review"
    )
    critical_amount: float = Field(
        default=50000.0, description="Amounts at or above this fail closed on error"
    )

    @model_validator(mode="after")
    def _check_order(self) -> "ApprovalThresholds":
        if not (
            0 <= self.auto_approve_amount
            <= self.manual_review_amount
            <= self.critical_amount
        ):
            raise ValueError(
                "thresholds must satisfy 0 <= auto_approve <= manual_review <= critical"
            )
        return self


@dataclass
class SuspicionThresholds:
    """Thresholds for suspicious activity detection.

    Attributes:
        rapid_operations_count: Operations per window before flagging.
        rapid_operations_window: Window for rapid operation counting.
        large_transaction_amount: Amount considered unusually large.
        new_account_large_amount: Large amount for a new account.
        new_account_age: Age below which an account counts as new.
    """

    rapid_operations_count: int = 5
    rapid_operations_window: timedelta = field(
        default_factory=lambda: timedelta(minutes=1)
    )
    large_transaction_amount: float = 50000.0
    new_account_large_amount: float = 1000.0
    new_account_age: timedelta = field(default_factory=lambda: timedelta(hours=24))


class IdentityCheck(BaseModel):
    """Outcome of identity verification."""

    verified: bool
    reason: str | None = None
    risk_level: RiskLevel = RiskLevel.LOW
    suspicious_patterns: list[str] = Field(default_factory=list)


class ValidationResult(BaseModel):
    """Outcome of operation validation."""

    valid: bool
    errors: list[str] = Field(default_factory=list)
    risk_level: RiskLevel = RiskLevel.LOW


class SuspicionResult(BaseModel):
    """Outcome of suspicious activity detection."""

    suspicious: bool
    indicators: list[str] = Field(default_factory=list)
    threat_level: RiskLevel = RiskLevel.LOW
    should_block: bool = False


class AuditChecks(BaseModel):
    """Combined outcome of all forensic checks for one request."""

    identity: IdentityCheck
    validation: ValidationResult
    suspicion: SuspicionResult

    @property
    def passed(self) -> bool:
        """Whether the request passes every check."""
        return (
            self.identity.verified
            and self.validation.valid
            and not self.suspicion.should_block
        )

    def rejection_reasons(self) -> list[str]:
        """Human-readable reasons the checks failed."""
        reasons: list[str] = []
        if not self.identity.verified and self.identity.reason:
            reasons.append(self.identity.reason)
        if not self.validation.valid:
            reasons.extend(self.validation.errors)
        if self.suspicion.suspicious:
            reasons.extend(self.suspicion.indicators)
        return reasons


class ComplianceCounter(ABC):
    """External hook counting an actor's recent operations.

    Real rate-limit enforcement lives behind this hook; its backing counter is
    owned by the deployment.
    """

    @abstractmethod
    async def count_recent(
        self, actor_id: str, operation_type: str, window: timedelta
    ) -> int:
        """Count the actor's operations of this type inside the window."""


class NullComplianceCounter(ComplianceCounter):
    """Counter that reports no recent operations."""

    async def count_recent(
        self, actor_id: str, operation_type: str, window: timedelta  # noqa: ARG002
    ) -> int:
        return 0


# ============================================================================
# Redaction
# ============================================================================


def _is_sensitive_key(key: str) -> bool:
    lowered = key.lower()
    for word in _SAFE_WORDS:
        lowered = lowered.replace(word, "")
    return any(marker in lowered for marker in SENSITIVE_KEY_MARKERS)


def redact_sensitive_fields(
    value: Any,
    *,
    mask: str = "***",
    depth: int = 0,
    max_depth: int = _MAX_REDACT_DEPTH,
) -> Any:
    """Recursively replace sensitive values in dicts/lists.

    Keys are matched by substring against ``SENSITIVE_KEY_MARKERS``
    (case-insensitive). When ``max_depth`` is exceeded the entire sub-tree is
    replaced with ``mask``.
    """
    if depth >= max_depth:
        return mask
    if isinstance(value, dict):
        redacted: dict[str, Any] = {}
        for key, val in value.items():
            if isinstance(key, str) and _is_sensitive_key(key):
                redacted[key] = mask
            else:
                redacted[key] = redact_sensitive_fields(
                    val, mask=mask, depth=depth + 1, max_depth=max_depth
                )
        return redacted
    if isinstance(value, list | tuple):
        return [
            redact_sensitive_fields(item, mask=mask, depth=depth + 1, max_depth=max_depth)
            for item in value
        ]
    return value


# ============================================================================
# Risk classification
# ============================================================================


def classify_risk(
    operation_type: str,
    amount: float,
    thresholds: ApprovalThresholds | None = None,
) -> RiskLevel:
    """Classify an operation's risk level.

    Deterministic for identical inputs. The amount tier only ever raises the
    operation type's base tier, so an amount of 0 leaves the base tier as is.

    Args:
        operation_type: Operation type tag.
        amount: Operation amount (0 when absent).
        thresholds: Amount thresholds (defaults if not provided).

    Returns:
        The operation's risk level.
    """
    thresholds = thresholds or ApprovalThresholds()
    base = _BASE_RISK.get(operation_type, RiskLevel.LOW)

    if amount >= thresholds.critical_amount:
        return RiskLevel.CRITICAL
    if amount >= thresholds.manual_review_amount:
        return max_risk(base, RiskLevel.HIGH)
    if amount >= thresholds.auto_approve_amount and amount > 0:
        return max_risk(base, RiskLevel.MEDIUM)
    return base


# ============================================================================
# Forensic checks
# ============================================================================


def verify_identity(actor: Actor | None, ip: str | None = None) -> IdentityCheck:
    """Verify the requester's identity.

    Args:
        actor: Requester identity, if any.
        ip: Client IP used for blacklist checks (never for authorization).

    Returns:
        Identity verification result.
    """
    if actor is None or actor.id in ("", "unknown"):
        return IdentityCheck(
            verified=False,
            reason="No user session found",
            risk_level=RiskLevel.CRITICAL,
        )

    patterns: list[str] = []
    if not actor.email and not actor.pi_id:
        patterns.append("Missing user identification")
    if ip and ip in BLACKLISTED_IPS:
        patterns.append("Blacklisted IP address")

    if patterns:
        return IdentityCheck(
            verified=False,
            reason="; ".join(patterns),
            risk_level=RiskLevel.HIGH,
            suspicious_patterns=patterns,
        )

    return IdentityCheck(verified=True, risk_level=RiskLevel.LOW)


def validate_operation(
    request: OperationRequest,
    thresholds: ApprovalThresholds | None = None,
) -> ValidationResult:
    """Validate an operation's payload against its type.

    Args:
        request: The operation request.
        thresholds: Amount thresholds used for payment risk.

    Returns:
        Validation result with any errors found.
    """
    thresholds = thresholds or ApprovalThresholds()
    op_type = request.base_type
    errors: list[str] = []
    risk = RiskLevel.LOW

    try:
        data = request.typed_data()
    except ValidationError as e:
        return ValidationResult(
            valid=False,
            errors=[f"Malformed {op_type} payload: {err['msg']}" for err in e.errors()],
            risk_level=RiskLevel.HIGH,
        )

    amount = request.amount
    domain = request.operation_data.get("domain") or request.context.domain

    if op_type in (
        OperationType.PAYMENT_CREATE.value,
        OperationType.PAYMENT_APPROVE.value,
    ):
        if amount <= 0:
            errors.append("Invalid payment amount")
        if amount > thresholds.manual_review_amount:
            risk = RiskLevel.HIGH
        if not domain:
            errors.append("Missing domain information")
    elif op_type == OperationType.NFT_MINT.value:
        if not getattr(data, "domain_name", None):
            errors.append("Missing NFT domain name")
    elif op_type in (OperationType.WITHDRAWAL.value, OperationType.TRANSFER.value):
        if amount <= 0:
            errors.append("Invalid amount")
        if not getattr(data, "destination", None):
            errors.append("Missing destination")
        risk = RiskLevel.MEDIUM
    elif op_type == OperationType.DOMAIN_PURCHASE.value:
        if not getattr(data, "domain", None):
            errors.append("Missing domain name")
        risk = RiskLevel.MEDIUM
    elif op_type not in {t.value for t in OperationType}:
        errors.append("Unknown operation type")
        risk = RiskLevel.HIGH

    return ValidationResult(valid=not errors, errors=errors, risk_level=risk)


def detect_suspicious_activity(
    request: OperationRequest,
    *,
    recent_operation_count: int = 0,
    account_created_at: datetime | None = None,
    thresholds: SuspicionThresholds | None = None,
) -> SuspicionResult:
    """Detect suspicious activity patterns.

    Args:
        request: The operation request.
        recent_operation_count: Actor's operations inside the rapid window.
        account_created_at: When the actor's account was created, if known.
        thresholds: Detection thresholds (defaults if not provided).

    Returns:
        Suspicion detection result. Critical threat means the request is
        blocked.
    """
    thresholds = thresholds or SuspicionThresholds()
    indicators: list[str] = []
    threat = RiskLevel.LOW
    amount = request.amount

    if recent_operation_count > thresholds.rapid_operations_count:
        indicators.append("Rapid repeated operations detected")
        threat = max_risk(threat, RiskLevel.HIGH)

    if amount > thresholds.large_transaction_amount:
        indicators.append("Unusually large transaction amount")
        threat = RiskLevel.CRITICAL

    if account_created_at is not None:
        age = datetime.now(UTC) - account_created_at
        if age < thresholds.new_account_age and amount > thresholds.new_account_large_amount:
            indicators.append("Large transaction from new account")
            threat = max_risk(threat, RiskLevel.HIGH)

    actor = request.actor
    if actor.id not in ("", "unknown") and (not actor.verified or not actor.email):
        indicators.append("Unverified user attempting operation")
        threat = max_risk(threat, RiskLevel.HIGH)

    return SuspicionResult(
        suspicious=bool(indicators),
        indicators=indicators,
        threat_level=threat,
        should_block=threat == RiskLevel.CRITICAL,
    )


def run_audit_checks(
    request: OperationRequest,
    *,
    thresholds: ApprovalThresholds | None = None,
    recent_operation_count: int = 0,
    suspicion_thresholds: SuspicionThresholds | None = None,
) -> AuditChecks:
    """Run identity, validation and suspicion checks for a request."""
    return AuditChecks(
        identity=verify_identity(request.actor, request.context.ip),
        validation=validate_operation(request, thresholds),
        suspicion=detect_suspicious_activity(
            request,
            recent_operation_count=recent_operation_count,
            thresholds=suspicion_thresholds,
        ),
    )
