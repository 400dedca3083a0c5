"""Approval decision engine.

Decides whether an operation may proceed by consulting the external approval
authority, applying a fail-safe rule when the authority cannot be consulted,
and alerting the sovereign recipient about high-value or critical operations.
"""

from typing import Any

import structlog

from src.approval.authority import (
    ApprovalAuthority,
    AuthorityResponse,
    HttpApprovalAuthority,
)
from src.approval.models import ApprovalDecision, ApprovalThresholds
from src.approval.queue import ApprovalStore
from src.audit.models import CRITICAL_OPERATION_TYPES, OperationRequest, RiskLevel
from src.audit.policy import redact_sensitive_fields
from src.config import DEFAULT_SOVEREIGN_EMAIL
from src.errors import AuthorityUnavailableError
from src.notifications.dispatcher import NotificationDispatcher
from src.notifications.models import (
    DeliveryResult,
    Notification,
    NotificationPriority,
    NotificationType,
)
from src.notifications.templates import build_sovereign_alert

logger = structlog.get_logger(__name__)

DEFAULT_APPROVAL_ENDPOINT = "http://localhost:8000/api/approval"

# Fail-safe reasons
NETWORK_DENIED = "Network error during approval - denied for security"
NETWORK_ALLOWED = "Network error during approval - allowed with audit trail"
ERROR_DENIED = "Approval failed for critical operation - denied for security"
ERROR_ALLOWED = "Approval system error - allowed with audit trail"


def _parse_risk_level(value: str | None) -> RiskLevel | None:
    if not value:
        return None
    try:
        return RiskLevel(value.lower())
    except ValueError:
        return None


class ApprovalDecisionEngine:
    """Produces approval decisions for operations in one domain.

    Decision rules:
    - Disabled engine: approve immediately without consulting the authority.
    - Authority unreachable or misbehaving: deny critical-amount operations,
      allow the rest, and mark the decision as fail-safe.
    - Authority answered non-2xx: explicit denial with the authority's reason.
    - High-value or critical-type operations trigger a sovereign alert on
      every outcome; delivery never changes the decision.

    Example:
        engine = ApprovalDecisionEngine(
            "example",
            authority=HttpApprovalAuthority(settings.APPROVAL_API_ENDPOINT),
            dispatcher=NotificationDispatcher(build_channel(settings)),
        )
        decision = await engine.request_approval(request)
    """

    def __init__(
        self,
        domain: str,
        authority: ApprovalAuthority | None = None,
        dispatcher: NotificationDispatcher | None = None,
        *,
        sovereign_email: str | None = None,
        thresholds: ApprovalThresholds | None = None,
        enabled: bool = True,
        notification_store: ApprovalStore | None = None,
    ) -> None:
        """Initialize the decision engine.

        Args:
            domain: Domain decisions are made for.
            authority: Approval authority (HTTP to the default endpoint if not
                provided).
            dispatcher: Notification dispatcher (console if not provided).
            sovereign_email: Recipient of sovereign alerts.
            thresholds: Amount thresholds.
            enabled: Whether the authority is consulted at all.
            notification_store: Store receiving a record of each sovereign
                alert (not recorded if absent).
        """
        self.domain = domain
        self.authority = authority or HttpApprovalAuthority(DEFAULT_APPROVAL_ENDPOINT)
        self.dispatcher = dispatcher or NotificationDispatcher()
        self.sovereign_email = sovereign_email or DEFAULT_SOVEREIGN_EMAIL
        self.thresholds = thresholds or ApprovalThresholds()
        self.enabled = enabled
        self.notification_store = notification_store
        self._logger = logger.bind(component="approval_engine", domain=domain)

    def is_critical_operation(self, request: OperationRequest) -> bool:
        """Whether the amount is at or above the critical threshold."""
        return request.amount >= self.thresholds.critical_amount

    def requires_manual_review(self, request: OperationRequest) -> bool:
        """Whether the amount is at or above the manual review threshold."""
        return request.amount >= self.thresholds.manual_review_amount

    def requires_notification(self, request: OperationRequest) -> bool:
        """Whether the operation triggers a sovereign alert."""
        return (
            self.requires_manual_review(request)
            or request.operation_type in CRITICAL_OPERATION_TYPES
        )

    async def request_approval(self, request: OperationRequest) -> ApprovalDecision:
        """Decide whether an operation may proceed. Never raises.

        Args:
            request: The operation to decide.

        Returns:
            The approval decision.
        """
        manual_review = self.requires_manual_review(request)

        if not self.enabled:
            return ApprovalDecision(
                approved=True,
                reason="Approval engine disabled",
                auto_approved=True,
                requires_manual_review=manual_review,
            )

        critical = self.is_critical_operation(request)

        try:
            response = await self.authority.submit(request, domain=self.domain)
        except AuthorityUnavailableError as e:
            self._logger.error(
                "approval_authority_unreachable",
                operation_type=request.operation_type,
                critical=critical,
                timed_out=e.timed_out,
                error=e.message,
            )
            decision = ApprovalDecision(
                approved=not critical,
                reason=NETWORK_DENIED if critical else NETWORK_ALLOWED,
                requires_manual_review=manual_review,
                fail_safe=True,
                network_error=True,
                error=e.message,
            )
        except Exception as e:
            self._logger.error(
                "approval_request_failed",
                operation_type=request.operation_type,
                critical=critical,
                error=str(e),
            )
            decision = ApprovalDecision(
                approved=not critical,
                reason=ERROR_DENIED if critical else ERROR_ALLOWED,
                requires_manual_review=manual_review,
                fail_safe=True,
                error=str(e),
            )
        else:
            decision = self._from_response(response, manual_review)

        if self.requires_notification(request):
            decision.notification = await self._notify(request, decision, critical)

        self._logger.info(
            "approval_decided",
            operation_type=request.operation_type,
            approved=decision.approved,
            fail_safe=decision.fail_safe,
            requires_manual_review=decision.requires_manual_review,
            correlation_id=request.context.correlation_id,
        )
        return decision

    def _from_response(
        self, response: AuthorityResponse, manual_review: bool
    ) -> ApprovalDecision:
        if not response.ok:
            return ApprovalDecision(
                approved=False,
                reason=response.denial_reason(),
                requires_manual_review=manual_review,
                audit_log_id=response.audit_log_id,
                error=response.reason,
                http_status=response.status_code,
            )

        return ApprovalDecision(
            approved=response.approved,
            reason=response.message or "Processed by approval authority",
            risk_level=_parse_risk_level(response.risk_level),
            requires_manual_review=manual_review,
            audit_log_id=response.audit_log_id,
        )

    async def _notify(
        self,
        request: OperationRequest,
        decision: ApprovalDecision,
        critical: bool,
    ) -> DeliveryResult:
        operation_data = redact_sensitive_fields(request.operation_data)
        try:
            message = build_sovereign_alert(
                recipient=self.sovereign_email,
                critical=critical,
                operation_type=request.operation_type,
                operation_data=operation_data,
                actor=request.actor,
                domain=self.domain,
                approved=decision.approved,
                risk_level=decision.risk_level.value if decision.risk_level else None,
                audit_log_id=decision.audit_log_id,
                reason=decision.reason,
            )
            result = await self.dispatcher.dispatch(message)
        except Exception as e:
            self._logger.error("sovereign_notification_failed", error=str(e))
            result = DeliveryResult(
                sent=False,
                logged=False,
                provider=self.dispatcher.provider,
                error=str(e),
            )

        await self._record(request, decision, operation_data, critical, result)
        return result

    async def _record(
        self,
        request: OperationRequest,
        decision: ApprovalDecision,
        operation_data: dict[str, Any],
        critical: bool,
        result: DeliveryResult,
    ) -> None:
        if self.notification_store is None:
            return
        notification = Notification(
            type=NotificationType.SOVEREIGN_ALERT,
            recipient=self.sovereign_email,
            payload={
                "domain": self.domain,
                "operation_type": request.operation_type,
                "operation_data": operation_data,
                "approved": decision.approved,
                "reason": decision.reason,
                "audit_log_id": decision.audit_log_id,
            },
            priority=(
                NotificationPriority.CRITICAL if critical else NotificationPriority.HIGH
            ),
            sent=result.sent,
            provider=result.provider,
            error=result.error,
        )
        try:
            await self.notification_store.save_notification(notification)
        except Exception as e:
            self._logger.error("sovereign_notification_record_failed", error=str(e))
