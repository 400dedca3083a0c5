"""Reference approval authority endpoint.

``POST /api/approval`` is the central authority the approval decision engine
calls. It verifies the requester's identity, validates the operation, looks
for suspicious activity, records an audit entry, and answers with an
approval (200) or a rejection with reasons (403). In sandbox mode every
operation is approved without checks.
"""

import uuid
from datetime import UTC, datetime
from typing import Any

import structlog
from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field, ValidationError

from src.api.dependencies import get_controls
from src.audit.models import (
    AUTHORITY_OPERATION_TYPES,
    Actor,
    OperationRequest,
    RequestContext,
    RiskLevel,
)
from src.audit.policy import AuditChecks, run_audit_checks
from src.control.bootstrap import DomainControls

logger = structlog.get_logger(__name__)

router = APIRouter(tags=["Approval Authority"])

AUTHORITY_PATH = "/api/approval"


# ============================================================================
# Request Models
# ============================================================================


class AuthorityRequest(BaseModel):
    """Body of an approval request."""

    operationType: str | None = Field(default=None, description="Operation type tag")
    operationData: dict[str, Any] | None = Field(
        default=None, description="Operation payload"
    )
    domain: str | None = Field(default=None, description="Requesting domain")
    context: dict[str, Any] = Field(
        default_factory=dict, description="Requester and correlation metadata"
    )


# ============================================================================
# Helper Functions
# ============================================================================


def _bad_request(error: str, message: str) -> JSONResponse:
    return JSONResponse(
        status_code=400,
        content={"approved": False, "error": error, "message": message},
    )


def _actor_from_context(context: dict[str, Any]) -> Actor:
    return Actor(
        id=str(context.get("requestedBy") or "unknown"),
        email=context.get("requestedByEmail"),
        verified=bool(context.get("requestedByVerified", False)),
    )


def _request_context(
    http_request: Request, body: AuthorityRequest, domain: str
) -> RequestContext:
    headers = http_request.headers
    forwarded = headers.get("x-forwarded-for")
    ip = forwarded.split(",")[0].strip() if forwarded else None
    if ip is None and http_request.client is not None:
        ip = http_request.client.host

    correlation_id = headers.get("x-correlation-id") or body.context.get("correlationId")
    return RequestContext(
        domain=domain,
        correlation_id=correlation_id or uuid.uuid4().hex,
        ip=ip,
        user_agent=headers.get("user-agent"),
        origin=headers.get("origin") or headers.get("referer"),
        extra={**body.context, "endpoint": AUTHORITY_PATH},
    )


def _check_details(checks: AuditChecks) -> dict[str, Any]:
    return {
        "identityCheck": checks.identity.model_dump(mode="json"),
        "validationResult": checks.validation.model_dump(mode="json"),
        "suspicionResult": checks.suspicion.model_dump(mode="json"),
    }


# ============================================================================
# Routes
# ============================================================================


@router.api_route(
    AUTHORITY_PATH,
    methods=["GET", "PUT", "PATCH", "DELETE"],
    include_in_schema=False,
)
async def method_not_allowed() -> JSONResponse:
    """Reject anything but POST."""
    return JSONResponse(
        status_code=405,
        content={
            "approved": False,
            "error": "Method not allowed",
            "message": "This endpoint only accepts POST requests",
        },
    )


@router.post(
    AUTHORITY_PATH,
    summary="Request approval",
    description="Approve or reject an operation after forensic checks.",
    responses={
        400: {"description": "Missing or invalid fields"},
        403: {"description": "Operation rejected"},
    },
)
async def request_approval(
    body: AuthorityRequest,
    http_request: Request,
    controls: DomainControls = Depends(get_controls),
) -> JSONResponse:
    """Decide an approval request.

    Returns:
        200 with the approval, 400 for malformed requests, 403 with the
        rejection reasons.
    """
    if controls.settings.SANDBOX_MODE:
        logger.info("sandbox_auto_approved", operation_type=body.operationType)
        return JSONResponse(
            status_code=200,
            content={
                "approved": True,
                "rejected": False,
                "operationType": body.operationType or "unknown",
                "domain": body.domain or "unknown",
                "auditLogId": f"audit-{uuid.uuid4().hex}",
                "timestamp": datetime.now(UTC).isoformat(),
                "riskLevel": RiskLevel.LOW.value,
                "reason": "Sandbox mode - auto-approved",
                "message": "Operation approved and logged (sandbox mode)",
            },
        )

    if not body.operationType:
        return _bad_request("Missing operation type", "operationType is required")
    if body.operationData is None:
        return _bad_request("Missing operation data", "operationData is required")
    if not body.domain:
        return _bad_request(
            "Missing domain",
            "domain field is required to identify the requesting service",
        )
    if body.operationType not in AUTHORITY_OPERATION_TYPES:
        return _bad_request(
            "Invalid operation type",
            f"operationType must be one of: {', '.join(AUTHORITY_OPERATION_TYPES)}",
        )

    try:
        operation = OperationRequest(
            operation_type=body.operationType,
            operation_data={**body.operationData, "domain": body.domain},
            actor=_actor_from_context(body.context),
            context=_request_context(http_request, body, body.domain),
        )
    except ValidationError as e:
        return _bad_request("Invalid operation data", str(e))

    checks = run_audit_checks(operation, thresholds=controls.thresholds)
    log_result = await controls.forensic_logger.log(operation, approved=checks.passed)

    logger.info(
        "authority_decided",
        operation_type=operation.operation_type,
        domain=body.domain,
        actor_id=operation.actor.id,
        approved=checks.passed,
        audit_log_id=log_result.audit_entry_id,
    )

    if not checks.passed:
        return JSONResponse(
            status_code=403,
            content={
                "approved": False,
                "rejected": True,
                "reason": "; ".join(checks.rejection_reasons()),
                "details": _check_details(checks),
                "auditLogId": log_result.audit_entry_id,
                "message": "Operation rejected due to security concerns",
            },
        )

    return JSONResponse(
        status_code=200,
        content={
            "approved": True,
            "rejected": False,
            "operationType": operation.operation_type,
            "domain": body.domain,
            "auditLogId": log_result.audit_entry_id,
            "timestamp": datetime.now(UTC).isoformat(),
            "riskLevel": checks.validation.risk_level.value,
            "message": "Operation approved and logged",
            "details": {
                "identityVerified": checks.identity.verified,
                "operationValid": checks.validation.valid,
                "noSuspiciousActivity": not checks.suspicion.suspicious,
            },
        },
    )
