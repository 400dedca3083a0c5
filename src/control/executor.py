"""Controlled execution pipeline.

Every domain operation passes through ``execute_with_controls``:

    pre-log -> approval decision -> operation body (if approved) -> post-log

Stages run strictly in that order. A denied operation never reaches its
body, and body failures are recorded instead of propagated.
"""

import inspect
from collections.abc import Awaitable, Callable
from typing import Any

import structlog
from pydantic import BaseModel, Field

from src.approval.engine import ApprovalDecisionEngine
from src.approval.models import ApprovalDecision
from src.audit.logger import ForensicLogger
from src.audit.models import Actor, LogResult, OperationRequest, RequestContext

logger = structlog.get_logger(__name__)

# Sync or async callable running the actual operation
OperationBody = Callable[[], Awaitable[Any] | Any]


class ExecutionResult(BaseModel):
    """Outcome of a controlled execution."""

    success: bool = Field(..., description="Whether the body ran and succeeded")
    approved: bool = Field(..., description="Whether the operation was approved")
    result: Any = Field(default=None, description="Body return value")
    error: str | None = Field(default=None, description="Body error, if it failed")
    reason: str | None = Field(default=None, description="Denial reason")
    log_result: LogResult = Field(..., description="Pre-execution audit log result")
    approval_result: ApprovalDecision = Field(..., description="Approval decision")
    outcome_log_result: LogResult | None = Field(
        default=None, description="Post-execution audit log result"
    )


class ControlledExecutor:
    """Runs operations through audit logging and approval.

    Example:
        executor = ControlledExecutor("example", forensic_logger, approval_engine)
        result = await executor.execute_with_controls(
            "transfer",
            {"amount": 500, "destination": "wallet-1"},
            actor=Actor(id="u1", email="u1@example.com"),
            operation_body=do_transfer,
        )
    """

    def __init__(
        self,
        domain: str,
        forensic_logger: ForensicLogger | None = None,
        approval_engine: ApprovalDecisionEngine | None = None,
    ) -> None:
        """Initialize the executor.

        Args:
            domain: Domain operations belong to.
            forensic_logger: Audit logger (logging skipped if absent).
            approval_engine: Decision engine (approval skipped if absent).
        """
        self.domain = domain
        self.forensic_logger = forensic_logger
        self.approval_engine = approval_engine
        self._logger = logger.bind(component="controlled_executor", domain=domain)

    async def _log(self, request: OperationRequest, *, approved: bool = False) -> LogResult:
        if self.forensic_logger is None:
            return LogResult(logged=False, reason="disabled")
        return await self.forensic_logger.log(request, approved=approved)

    async def _decide(self, request: OperationRequest) -> ApprovalDecision:
        if self.approval_engine is None:
            return ApprovalDecision(approved=True, reason="Approval not required")
        return await self.approval_engine.request_approval(request)

    async def execute_with_controls(
        self,
        operation_type: str,
        operation_data: dict[str, Any],
        actor: Actor | None = None,
        context: RequestContext | None = None,
        operation_body: OperationBody | None = None,
    ) -> ExecutionResult:
        """Execute an operation under audit and approval controls.

        Args:
            operation_type: Operation type tag.
            operation_data: Operation payload.
            actor: Requester identity.
            context: Request metadata.
            operation_body: Sync or async callable performing the operation.

        Returns:
            The execution result. ``approved`` stays True when the body fails.

        Raises:
            pydantic.ValidationError: If the request itself is malformed.
        """
        request = OperationRequest(
            operation_type=operation_type,
            operation_data=operation_data,
            actor=actor or Actor(),
            context=context or RequestContext(domain=self.domain),
        )
        op_type = request.operation_type

        log_result = await self._log(request)
        decision = await self._decide(request)

        if not decision.approved:
            self._logger.warning(
                "operation_denied",
                operation_type=op_type,
                reason=decision.reason,
                fail_safe=decision.fail_safe,
            )
            return ExecutionResult(
                success=False,
                approved=False,
                reason=decision.reason,
                log_result=log_result,
                approval_result=decision,
            )

        try:
            result = operation_body() if operation_body is not None else None
            if inspect.isawaitable(result):
                result = await result
        except Exception as e:
            self._logger.error("operation_failed", operation_type=op_type, error=str(e))
            outcome = await self._log(
                request.model_copy(
                    update={
                        "operation_type": f"{op_type}_failed",
                        "operation_data": {**request.operation_data, "error": str(e)},
                    }
                ),
                approved=True,
            )
            return ExecutionResult(
                success=False,
                approved=True,
                error=str(e),
                log_result=log_result,
                approval_result=decision,
                outcome_log_result=outcome,
            )

        outcome = await self._log(
            request.model_copy(
                update={
                    "operation_type": f"{op_type}_success",
                    "operation_data": {**request.operation_data, "result": result},
                }
            ),
            approved=True,
        )
        self._logger.info("operation_executed", operation_type=op_type)

        return ExecutionResult(
            success=True,
            approved=True,
            result=result,
            log_result=log_result,
            approval_result=decision,
            outcome_log_result=outcome,
        )
