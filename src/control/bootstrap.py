"""Per-domain control plane wiring.

``DomainControls`` builds the forensic logger, approval engine, manual
approval queue and controlled executor for one domain from ``Settings`` and
any injected collaborators.
"""

import time
from datetime import UTC, datetime
from typing import Any

import structlog
from pydantic import BaseModel, Field, ValidationError

from src.approval.authority import ApprovalAuthority, HttpApprovalAuthority
from src.approval.engine import ApprovalDecisionEngine
from src.approval.models import ApprovalThresholds
from src.approval.queue import ApprovalStore, InMemoryApprovalStore, ManualApprovalQueue
from src.audit.logger import ForensicLogger
from src.audit.models import Actor, RequestContext
from src.audit.policy import ComplianceCounter
from src.audit.store import AuditStore, InMemoryAuditStore, SQLiteAuditStore
from src.config import Settings, settings as default_settings
from src.control.executor import ControlledExecutor, ExecutionResult, OperationBody
from src.notifications.channels import NotificationChannel, build_channel
from src.notifications.dispatcher import NotificationDispatcher

logger = structlog.get_logger(__name__)

# Upper bound on entries read when computing statistics
STATS_HISTORY_LIMIT = 100_000


class ApprovalStats(BaseModel):
    """Execution statistics derived from a domain's audit history."""

    domain: str
    attempts: int = Field(default=0, description="Operations submitted")
    executed: int = Field(default=0, description="Operations that reached their body")
    not_executed: int = Field(default=0, description="Operations denied or unfinished")
    execution_rate: float = Field(default=0.0, description="Executed percentage")


class DomainControls:
    """Control plane components for a single domain.

    Example:
        controls = DomainControls("example", settings=Settings.from_env())
        result = await controls.execute_with_controls(
            "payment_create", {"amount": 500}, actor=actor, operation_body=pay
        )
    """

    def __init__(
        self,
        domain: str | None = None,
        *,
        settings: Settings | None = None,
        audit_store: AuditStore | None = None,
        authority: ApprovalAuthority | None = None,
        channel: NotificationChannel | None = None,
        approval_store: ApprovalStore | None = None,
        compliance_counter: ComplianceCounter | None = None,
    ) -> None:
        """Wire the control plane for a domain.

        Args:
            domain: Domain identifier (``settings.DOMAIN`` if not provided).
            settings: Settings (the global settings if not provided).
            audit_store: Audit store (SQLite when ``AUDIT_DB_PATH`` is set,
                in-memory otherwise).
            authority: Approval authority (HTTP to ``APPROVAL_API_ENDPOINT``).
            channel: Notification channel (selected by ``EMAIL_PROVIDER``).
            approval_store: Manual approval store (in-memory if not provided).
            compliance_counter: Hook reporting an actor's recent operations.
        """
        self.settings = settings or default_settings
        self.domain = domain or self.settings.DOMAIN
        self.database = self.settings.DATABASE or f"{self.domain}_db"
        self.sovereign_email = self.settings.sovereign_recipient()
        self.started_at = datetime.now(UTC)
        self._started_monotonic = time.monotonic()
        self._logger = logger.bind(component="domain_controls", domain=self.domain)

        self.thresholds = self._build_thresholds()

        if audit_store is None:
            audit_store = (
                SQLiteAuditStore(self.settings.AUDIT_DB_PATH)
                if self.settings.AUDIT_DB_PATH
                else InMemoryAuditStore()
            )

        self.dispatcher = NotificationDispatcher(
            channel or build_channel(self.settings),
            timeout=self.settings.NOTIFICATION_TIMEOUT_SECONDS,
        )

        self.forensic_logger = ForensicLogger(
            self.domain,
            audit_store,
            database=self.database,
            enabled=self.settings.FORENSIC_ENABLED,
            thresholds=self.thresholds,
            compliance_counter=compliance_counter,
        )

        approval_store = approval_store or InMemoryApprovalStore()

        self.approval_engine = ApprovalDecisionEngine(
            self.domain,
            authority
            or HttpApprovalAuthority(
                self.settings.APPROVAL_API_ENDPOINT,
                timeout=self.settings.APPROVAL_TIMEOUT_SECONDS,
            ),
            self.dispatcher,
            sovereign_email=self.sovereign_email,
            thresholds=self.thresholds,
            enabled=self.settings.APPROVAL_REQUIRED,
            notification_store=approval_store,
        )

        self.approval_queue = ManualApprovalQueue(
            self.forensic_logger,
            approval_store,
            self.dispatcher,
            sovereign_email=self.sovereign_email,
        )

        self.executor = ControlledExecutor(
            self.domain, self.forensic_logger, self.approval_engine
        )

        self._logger.info(
            "domain_controls_initialized",
            forensic_enabled=self.settings.FORENSIC_ENABLED,
            approval_required=self.settings.APPROVAL_REQUIRED,
            email_provider=self.dispatcher.provider,
        )

    def _build_thresholds(self) -> ApprovalThresholds:
        try:
            return ApprovalThresholds(
                auto_approve_amount=self.settings.AUTO_APPROVE_AMOUNT,
                manual_review_amount=self.settings.MANUAL_REVIEW_AMOUNT,
                critical_amount=self.settings.CRITICAL_AMOUNT,
            )
        except ValidationError as e:
            defaults = ApprovalThresholds()
            self._logger.warning(
                "invalid_config_value",
                name="thresholds",
                value={
                    "AUTO_APPROVE_AMOUNT": self.settings.AUTO_APPROVE_AMOUNT,
                    "MANUAL_REVIEW_AMOUNT": self.settings.MANUAL_REVIEW_AMOUNT,
                    "CRITICAL_AMOUNT": self.settings.CRITICAL_AMOUNT,
                },
                default=defaults.model_dump(),
                error=str(e),
            )
            return defaults

    async def execute_with_controls(
        self,
        operation_type: str,
        operation_data: dict[str, Any],
        actor: Actor | None = None,
        context: RequestContext | None = None,
        operation_body: OperationBody | None = None,
    ) -> ExecutionResult:
        """Run an operation through this domain's controls."""
        return await self.executor.execute_with_controls(
            operation_type,
            operation_data,
            actor=actor,
            context=context,
            operation_body=operation_body,
        )

    def get_metadata(self) -> dict[str, Any]:
        """Describe the domain's control configuration."""
        return {
            "domain": self.domain,
            "database": self.database,
            "sovereign_email": self.sovereign_email,
            "approval_endpoint": self.settings.APPROVAL_API_ENDPOINT,
            "email_provider": self.dispatcher.provider,
            "thresholds": self.thresholds.model_dump(),
        }

    def get_status(self) -> dict[str, Any]:
        """Report feature flags, active components and uptime."""
        return {
            "domain": self.domain,
            "forensic_enabled": self.forensic_logger.enabled,
            "approval_required": self.approval_engine.enabled,
            "components": {
                "forensic_logger": self.forensic_logger.enabled,
                "approval_engine": self.approval_engine.enabled,
                "approval_queue": True,
                "notifications": self.dispatcher.provider,
            },
            "started_at": self.started_at.isoformat(),
            "uptime_seconds": round(time.monotonic() - self._started_monotonic, 3),
        }

    async def get_approval_stats(self) -> ApprovalStats:
        """Compute execution statistics from the domain's audit history.

        Attempts are pre-execution entries; executed operations are those
        with an outcome entry. Manual approval events are not counted.
        """
        history = await self.forensic_logger.store.history(self.domain)
        history = history[-STATS_HISTORY_LIMIT:]

        attempts = 0
        executed = 0
        for entry in history:
            if entry.operation_type.startswith("approval_"):
                continue
            if entry.is_outcome:
                executed += 1
            else:
                attempts += 1

        return ApprovalStats(
            domain=self.domain,
            attempts=attempts,
            executed=executed,
            not_executed=max(attempts - executed, 0),
            execution_rate=(executed / attempts * 100) if attempts else 0.0,
        )

    async def close(self) -> None:
        """Release the audit store."""
        await self.forensic_logger.store.close()
