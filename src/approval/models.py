"""Approval decision and manual approval models.

This module defines the decisions produced by the approval decision engine
and the records kept by the manual approval queue.
"""

import uuid
from datetime import UTC, datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field

from src.audit.models import RiskLevel
from src.audit.policy import ApprovalThresholds
from src.notifications.models import DeliveryResult, Notification

__all__ = [
    "ApprovalDecision",
    "ApprovalPriority",
    "ApprovalThresholds",
    "ArchiveResult",
    "ManualApproval",
    "ManualApprovalStatus",
]


class ApprovalDecision(BaseModel):
    """Outcome of an approval request.

    Decisions made while the authority was unreachable or misbehaving carry
    ``fail_safe=True``; they are never silent approvals.
    """

    approved: bool = Field(..., description="Whether the operation may proceed")
    reason: str = Field(..., min_length=1, description="Human-readable reason")
    risk_level: RiskLevel | None = Field(
        default=None, description="Risk level reported by the authority"
    )
    requires_manual_review: bool = Field(
        default=False, description="Whether the amount calls for human review"
    )
    audit_log_id: str | None = Field(
        default=None, description="Authority-side audit entry id"
    )
    fail_safe: bool = Field(
        default=False, description="Decision was made under error"
    )
    network_error: bool = Field(
        default=False, description="The authority could not be reached"
    )
    auto_approved: bool = Field(
        default=False, description="Approved without consulting the authority"
    )
    error: str | None = Field(default=None, description="Underlying error, if any")
    http_status: int | None = Field(
        default=None, description="Authority HTTP status on explicit denial"
    )
    notification: DeliveryResult | None = Field(
        default=None, description="Sovereign notification delivery, if one was sent"
    )


class ManualApprovalStatus(str, Enum):
    """Status of a manual approval."""

    PENDING = "PENDING"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"


class ApprovalPriority(str, Enum):
    """Review priority of a manual approval."""

    CRITICAL = "CRITICAL"
    HIGH = "HIGH"
    NORMAL = "NORMAL"
    LOW = "LOW"

    @property
    def rank(self) -> int:
        """Sort rank, most urgent first."""
        return _PRIORITY_RANK[self]


_PRIORITY_RANK = {
    ApprovalPriority.CRITICAL: 0,
    ApprovalPriority.HIGH: 1,
    ApprovalPriority.NORMAL: 2,
    ApprovalPriority.LOW: 3,
}


def _generate_approval_id() -> str:
    return f"APR-{uuid.uuid4().hex[:12].upper()}"


class ManualApproval(BaseModel):
    """A request awaiting a human decision.

    Tracks the lifecycle PENDING -> APPROVED | REJECTED. Terminal states are
    final.
    """

    id: str = Field(default_factory=_generate_approval_id, description="Approval id")
    type: str = Field(..., description="Kind of operation awaiting approval")
    payload: dict[str, Any] = Field(default_factory=dict, description="Operation details")
    requested_by: str = Field(..., description="Who asked for the approval")
    requested_at: datetime = Field(
        default_factory=lambda: datetime.now(UTC),
        description="When the approval was requested",
    )
    priority: ApprovalPriority = Field(
        default=ApprovalPriority.NORMAL, description="Review priority"
    )
    status: ManualApprovalStatus = Field(
        default=ManualApprovalStatus.PENDING, description="Current status"
    )
    decided_by: str | None = Field(default=None, description="Who decided")
    processed_at: datetime | None = Field(default=None, description="When decided")
    comments: str | None = Field(default=None, description="Reviewer comments")

    def is_pending(self) -> bool:
        """Check if the approval is still pending."""
        return self.status == ManualApprovalStatus.PENDING

    def approve(self, decided_by: str, comments: str | None = None) -> None:
        """Approve the request."""
        self._decide(ManualApprovalStatus.APPROVED, decided_by, comments)

    def reject(self, decided_by: str, comments: str | None = None) -> None:
        """Reject the request."""
        self._decide(ManualApprovalStatus.REJECTED, decided_by, comments)

    def _decide(
        self, status: ManualApprovalStatus, decided_by: str, comments: str | None
    ) -> None:
        self.status = status
        self.decided_by = decided_by
        self.comments = comments
        self.processed_at = datetime.now(UTC)


class ArchiveResult(BaseModel):
    """Outcome of an archival sweep."""

    approvals_archived: int = Field(default=0, description="Approvals removed")
    notifications_archived: int = Field(default=0, description="Notifications removed")
    cutoff: datetime = Field(..., description="Records before this were archived")
    approvals: list[ManualApproval] = Field(
        default_factory=list, description="Archived approvals"
    )
    notifications: list[Notification] = Field(
        default_factory=list, description="Archived notifications"
    )
