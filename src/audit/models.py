"""Operation request and audit entry models.

This module defines the unit of work submitted to the control plane and the
immutable audit records produced for it.
"""

import math
import uuid
from datetime import UTC, datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator


class OperationType(str, Enum):
    """Catalog of operation types known to the control plane."""

    PAYMENT_CREATE = "payment_create"
    PAYMENT_APPROVE = "payment_approve"
    PAYMENT_COMPLETE = "payment_complete"
    PAYMENT_CANCEL = "payment_cancel"
    NFT_MINT = "nft_mint"
    SUBSCRIPTION_CREATE = "subscription_create"
    WITHDRAWAL = "withdrawal"
    TRANSFER = "transfer"
    DOMAIN_PURCHASE = "domain_purchase"
    GENERIC = "generic"

    # Manual approval workflow events
    APPROVAL_REQUESTED = "approval_requested"
    APPROVAL_GRANTED = "approval_granted"
    APPROVAL_REJECTED = "approval_rejected"


# Operation types accepted by the approval authority
AUTHORITY_OPERATION_TYPES: tuple[str, ...] = tuple(
    t.value
    for t in OperationType
    if t is not OperationType.GENERIC and not t.value.startswith("approval_")
)

# Operations that always trigger a sovereign notification
CRITICAL_OPERATION_TYPES: frozenset[str] = frozenset(
    {
        OperationType.WITHDRAWAL.value,
        OperationType.TRANSFER.value,
        OperationType.DOMAIN_PURCHASE.value,
    }
)


class RiskLevel(str, Enum):
    """Risk level classification for operations."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"

    @property
    def rank(self) -> int:
        """Numeric rank for comparisons (low=0 .. critical=3)."""
        return _RISK_RANK[self]


_RISK_RANK = {
    RiskLevel.LOW: 0,
    RiskLevel.MEDIUM: 1,
    RiskLevel.HIGH: 2,
    RiskLevel.CRITICAL: 3,
}


def max_risk(*levels: RiskLevel) -> RiskLevel:
    """Return the highest of the given risk levels."""
    return max(levels, key=lambda level: level.rank)


def normalize_operation_type(value: Any) -> str:
    """Normalize an operation type to its plain string tag."""
    if isinstance(value, Enum):
        return str(value.value)
    return str(value)


class Actor(BaseModel):
    """Identity of the requester."""

    id: str = Field(default="unknown", description="Actor identifier")
    email: str | None = Field(default=None, description="Actor email address")
    pi_id: str | None = Field(default=None, description="External wallet identity")
    verified: bool = Field(default=False, description="Whether the actor is verified")

    @property
    def display_name(self) -> str:
        """Email, falling back to id."""
        return self.email or self.id


class RequestContext(BaseModel):
    """Request metadata attached to an operation."""

    timestamp: datetime = Field(
        default_factory=lambda: datetime.now(UTC),
        description="When the request was received",
    )
    domain: str | None = Field(default=None, description="Originating domain/tenant")
    correlation_id: str = Field(
        default_factory=lambda: uuid.uuid4().hex,
        description="Correlation id propagated to downstream calls",
    )
    ip: str | None = Field(default=None, description="Client IP (logging only)")
    user_agent: str | None = Field(default=None, description="Client user agent")
    origin: str | None = Field(default=None, description="Request origin/referer")
    extra: dict[str, Any] = Field(
        default_factory=dict, description="Additional request metadata"
    )


# ============================================================================
# Typed operation payloads
# ============================================================================


class PaymentData(BaseModel):
    """Payload of payment operations."""

    model_config = ConfigDict(extra="allow")

    amount: float | None = None
    domain: str | None = None


class TransferData(BaseModel):
    """Payload of withdrawals and transfers."""

    model_config = ConfigDict(extra="allow")

    amount: float | None = None
    destination: str | None = None


class DomainPurchaseData(BaseModel):
    """Payload of domain purchases."""

    model_config = ConfigDict(extra="allow")

    domain: str | None = None
    amount: float | None = None


class NftMintData(BaseModel):
    """Payload of NFT mints."""

    model_config = ConfigDict(extra="allow")

    domain_name: str | None = Field(default=None, alias="domainName")


PAYLOAD_MODELS: dict[str, type[BaseModel]] = {
    OperationType.PAYMENT_CREATE.value: PaymentData,
    OperationType.PAYMENT_APPROVE.value: PaymentData,
    OperationType.PAYMENT_COMPLETE.value: PaymentData,
    OperationType.PAYMENT_CANCEL.value: PaymentData,
    OperationType.WITHDRAWAL.value: TransferData,
    OperationType.TRANSFER.value: TransferData,
    OperationType.DOMAIN_PURCHASE.value: DomainPurchaseData,
    OperationType.NFT_MINT.value: NftMintData,
}


class OperationRequest(BaseModel):
    """A unit of work submitted to the control plane.

    ``operation_data`` is an open payload. When thresholds apply it carries a
    numeric ``amount``; a missing amount counts as 0.
    """

    operation_type: str = Field(..., min_length=1, description="Operation type tag")
    operation_data: dict[str, Any] = Field(..., description="Operation payload")
    actor: Actor = Field(default_factory=Actor, description="Requester identity")
    context: RequestContext = Field(
        default_factory=RequestContext, description="Request metadata"
    )

    @field_validator("operation_type", mode="before")
    @classmethod
    def _normalize_type(cls, value: Any) -> Any:
        if value is None:
            return value
        return normalize_operation_type(value)

    @field_validator("operation_data")
    @classmethod
    def _validate_amount(cls, value: dict[str, Any]) -> dict[str, Any]:
        amount = value.get("amount")
        if amount is None:
            return value
        if isinstance(amount, bool) or not isinstance(amount, int | float):
            raise ValueError("amount must be numeric")
        if not math.isfinite(amount) or amount < 0:
            raise ValueError("amount must be a finite, non-negative number")
        return value

    @property
    def base_type(self) -> str:
        """Operation type with any outcome suffix removed."""
        return self.operation_type.removesuffix("_success").removesuffix("_failed")

    @property
    def amount(self) -> float:
        """Operation amount, 0 when absent."""
        amount = self.operation_data.get("amount")
        return float(amount) if amount is not None else 0.0

    def typed_data(self) -> BaseModel | dict[str, Any]:
        """Parse the payload into its typed model, if the type has one.

        Returns:
            The typed payload model, or the raw payload for generic types.
        """
        model = PAYLOAD_MODELS.get(self.base_type)
        if model is None:
            return self.operation_data
        return model.model_validate(self.operation_data)


# ============================================================================
# Audit records
# ============================================================================


class AuditEntry(BaseModel):
    """An immutable record of an attempted operation or its outcome.

    ``id`` and ``sequence`` are assigned by the store when the entry is
    persisted. ``hash`` covers every other field, including ``previous_hash``,
    which links the entry to its predecessor in the same domain.
    """

    model_config = ConfigDict(frozen=True)

    id: str | None = Field(default=None, description="Store-assigned identifier")
    sequence: int | None = Field(default=None, description="Store insertion order")
    operation_type: str
    operation_data: dict[str, Any] = Field(default_factory=dict)
    actor: Actor = Field(default_factory=Actor)
    domain: str
    database: str | None = None
    timestamp: datetime = Field(default_factory=lambda: datetime.now(UTC))
    approved: bool = False
    risk_level: RiskLevel = RiskLevel.LOW
    context: dict[str, Any] = Field(default_factory=dict)
    identity_verified: bool = False
    validation_errors: list[str] = Field(default_factory=list)
    suspicion_indicators: list[str] = Field(default_factory=list)
    previous_hash: str | None = None
    hash: str | None = None

    @property
    def is_outcome(self) -> bool:
        """Whether this entry records an execution outcome."""
        return self.operation_type.endswith(("_success", "_failed"))


class AuditFilters(BaseModel):
    """Query filters for audit log reads."""

    actor_id: str | None = None
    operation_type: str | None = None
    approved: bool | None = None
    domain: str | None = None
    limit: int = 50
    offset: int = 0


class LogResult(BaseModel):
    """Result of a forensic log call."""

    logged: bool
    audit_entry_id: str | None = None
    approved: bool | None = None
    risk_level: RiskLevel | None = None
    checks_passed: bool | None = None
    reason: str | None = None
    error: str | None = None


class IntegrityReport(BaseModel):
    """Result of verifying a domain's audit chain."""

    valid: bool
    message: str
    total_entries: int = 0
    entry_id: str | None = None
    last_hash: str | None = None
