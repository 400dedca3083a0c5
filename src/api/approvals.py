"""API routes for the manual approval queue.

This module provides endpoints for managing manual approvals:
- List pending approvals
- Request a new approval
- Get approval details
- Approve/reject pending approvals
- Notification history and archival
"""

from typing import Any

import structlog
from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field

from src.api.dependencies import get_controls
from src.approval.models import ApprovalPriority, ArchiveResult, ManualApproval
from src.control.bootstrap import DomainControls
from src.errors import AlreadyProcessedError, NotFoundError
from src.notifications.models import Notification

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/approvals", tags=["Approvals"])


# ============================================================================
# Request/Response Models
# ============================================================================


class CreateApprovalRequest(BaseModel):
    """Request to queue an operation for manual approval."""

    type: str = Field(..., min_length=1, description="Kind of operation")
    payload: dict[str, Any] = Field(default_factory=dict, description="Operation details")
    requested_by: str = Field(..., min_length=1, description="Who asks for approval")
    priority: ApprovalPriority = Field(
        default=ApprovalPriority.NORMAL, description="Review priority"
    )


class DecisionRequest(BaseModel):
    """Request to approve or reject a pending approval."""

    comments: str | None = Field(default=None, description="Reviewer comments")
    decided_by: str | None = Field(
        default=None, description="Decider (sovereign recipient if not set)"
    )


class ArchiveRequest(BaseModel):
    """Request to archive old records."""

    days_old: int | None = Field(
        default=None, ge=0, description="Age threshold (retention setting if not set)"
    )


# ============================================================================
# Helper Functions
# ============================================================================


async def _decide(
    controls: DomainControls,
    approval_id: str,
    approved: bool,
    request: DecisionRequest,
) -> ManualApproval:
    try:
        return await controls.approval_queue.process_approval(
            approval_id,
            approved,
            comments=request.comments,
            decided_by=request.decided_by,
        )
    except NotFoundError as e:
        raise HTTPException(
            status_code=404,
            detail=f"Approval '{approval_id}' not found",
        ) from e
    except AlreadyProcessedError as e:
        raise HTTPException(
            status_code=409,
            detail=f"Approval already processed (current: {e.status})",
        ) from e


# ============================================================================
# Routes
# ============================================================================


@router.get(
    "",
    response_model=list[ManualApproval],
    summary="List pending approvals",
    description="Pending approvals ordered CRITICAL, HIGH, NORMAL, LOW.",
)
async def list_approvals(
    controls: DomainControls = Depends(get_controls),
) -> list[ManualApproval]:
    """List pending approvals, most urgent first."""
    approvals = await controls.approval_queue.get_pending_approvals()
    logger.info("approvals_listed", count=len(approvals))
    return approvals


@router.post(
    "",
    response_model=ManualApproval,
    status_code=201,
    summary="Request manual approval",
)
async def create_approval(
    request: CreateApprovalRequest,
    controls: DomainControls = Depends(get_controls),
) -> ManualApproval:
    """Queue an operation for a sovereign decision."""
    return await controls.approval_queue.request_approval(
        request.type,
        request.payload,
        request.requested_by,
        priority=request.priority,
    )


@router.get(
    "/notifications",
    response_model=list[Notification],
    summary="Notification history",
)
async def list_notifications(
    limit: int = 50,
    controls: DomainControls = Depends(get_controls),
) -> list[Notification]:
    """Most recent notifications, newest first."""
    return await controls.approval_queue.get_notifications(limit=limit)


@router.post(
    "/archive",
    response_model=ArchiveResult,
    summary="Archive old records",
)
async def archive_records(
    request: ArchiveRequest | None = None,
    controls: DomainControls = Depends(get_controls),
) -> ArchiveResult:
    """Remove terminal approvals and notifications past the retention period."""
    days_old = request.days_old if request else None
    if days_old is None:
        days_old = controls.settings.ARCHIVE_RETENTION_DAYS
    return await controls.approval_queue.archive_old_records(days_old=days_old)


@router.get(
    "/{approval_id}",
    response_model=ManualApproval,
    summary="Get approval details",
    responses={404: {"description": "Approval not found"}},
)
async def get_approval(
    approval_id: str,
    controls: DomainControls = Depends(get_controls),
) -> ManualApproval:
    """Get a manual approval by id.

    Raises:
        HTTPException: If the approval does not exist.
    """
    approval = await controls.approval_queue.get_approval(approval_id)
    if approval is None:
        raise HTTPException(
            status_code=404,
            detail=f"Approval '{approval_id}' not found",
        )
    return approval


@router.post(
    "/{approval_id}/approve",
    response_model=ManualApproval,
    summary="Approve a pending approval",
    responses={
        404: {"description": "Approval not found"},
        409: {"description": "Approval already processed"},
    },
)
async def approve(
    approval_id: str,
    request: DecisionRequest,
    controls: DomainControls = Depends(get_controls),
) -> ManualApproval:
    """Approve a pending approval."""
    return await _decide(controls, approval_id, True, request)


@router.post(
    "/{approval_id}/reject",
    response_model=ManualApproval,
    summary="Reject a pending approval",
    responses={
        404: {"description": "Approval not found"},
        409: {"description": "Approval already processed"},
    },
)
async def reject(
    approval_id: str,
    request: DecisionRequest,
    controls: DomainControls = Depends(get_controls),
) -> ManualApproval:
    """Reject a pending approval."""
    return await _decide(controls, approval_id, False, request)
