"""Approval workflow module.

This module provides the approval decision engine that consults the external
approval authority, and the manual approval queue for operations that need a
human decision.
"""

from src.approval.authority import (
    ApprovalAuthority,
    AuthorityResponse,
    HttpApprovalAuthority,
)
from src.approval.engine import ApprovalDecisionEngine
from src.approval.models import (
    ApprovalDecision,
    ApprovalPriority,
    ApprovalThresholds,
    ArchiveResult,
    ManualApproval,
    ManualApprovalStatus,
)
from src.approval.queue import ApprovalStore, InMemoryApprovalStore, ManualApprovalQueue

__all__ = [
    "ApprovalAuthority",
    "ApprovalDecision",
    "ApprovalDecisionEngine",
    "ApprovalPriority",
    "ApprovalStore",
    "ApprovalThresholds",
    "ArchiveResult",
    "AuthorityResponse",
    "HttpApprovalAuthority",
    "InMemoryApprovalStore",
    "ManualApproval",
    "ManualApprovalQueue",
    "ManualApprovalStatus",
]
