"""API routes for reading the domain's audit trail."""

from typing import Any

from fastapi import APIRouter, Depends, Query

from src.api.dependencies import get_controls
from src.audit.logger import MAX_PAGE_SIZE
from src.audit.models import AuditEntry, AuditFilters, IntegrityReport
from src.control.bootstrap import ApprovalStats, DomainControls

router = APIRouter(prefix="/audit", tags=["Audit"])


def _filters(
    actor_id: str | None = None,
    operation_type: str | None = None,
    approved: bool | None = None,
    limit: int = Query(default=50, ge=1, le=MAX_PAGE_SIZE),
    offset: int = Query(default=0, ge=0),
) -> AuditFilters:
    return AuditFilters(
        actor_id=actor_id,
        operation_type=operation_type,
        approved=approved,
        limit=limit,
        offset=offset,
    )


@router.get("/logs", response_model=list[AuditEntry], summary="List audit entries")
async def get_logs(
    filters: AuditFilters = Depends(_filters),
    controls: DomainControls = Depends(get_controls),
) -> list[AuditEntry]:
    """Audit entries for the application's domain, newest first."""
    return await controls.forensic_logger.get_audit_logs(filters)


@router.get("/logs/count", summary="Count audit entries")
async def count_logs(
    filters: AuditFilters = Depends(_filters),
    controls: DomainControls = Depends(get_controls),
) -> dict[str, int]:
    """Number of matching audit entries."""
    return {"count": await controls.forensic_logger.get_audit_log_count(filters)}


@router.get("/integrity", response_model=IntegrityReport, summary="Verify hash chain")
async def verify_integrity(
    controls: DomainControls = Depends(get_controls),
) -> IntegrityReport:
    """Walk the domain's audit chain and report the first broken link."""
    return await controls.forensic_logger.verify_integrity()


@router.get(
    "/trail/{entity_id}",
    response_model=list[AuditEntry],
    summary="Forensic trail of an entity",
)
async def get_trail(
    entity_id: str,
    controls: DomainControls = Depends(get_controls),
) -> list[AuditEntry]:
    """Entries referencing the entity, oldest first."""
    return await controls.forensic_logger.get_forensic_trail(entity_id)


@router.get("/export", summary="Export the audit trail")
async def export_logs(
    controls: DomainControls = Depends(get_controls),
) -> dict[str, Any]:
    """Full audit trail with an integrity report."""
    return await controls.forensic_logger.export_logs()


@router.get("/stats", response_model=ApprovalStats, summary="Execution statistics")
async def get_stats(
    controls: DomainControls = Depends(get_controls),
) -> ApprovalStats:
    """Attempts and executions derived from the audit history."""
    return await controls.get_approval_stats()
