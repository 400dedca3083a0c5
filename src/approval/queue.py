"""Manual approval queue.

This module manages operations that need a human decision: it records the
request, notifies the sovereign recipient, logs every step as a forensic
event, and archives terminal records after a retention period.
"""

import asyncio
import json
from abc import ABC, abstractmethod
from datetime import UTC, datetime, timedelta
from typing import Any

import structlog

from src.approval.models import (
    ApprovalPriority,
    ArchiveResult,
    ManualApproval,
    ManualApprovalStatus,
)
from src.audit.logger import ForensicLogger
from src.audit.models import Actor, OperationRequest, OperationType
from src.config import DEFAULT_SOVEREIGN_EMAIL
from src.errors import AlreadyProcessedError, NotFoundError
from src.notifications.dispatcher import NotificationDispatcher
from src.notifications.models import (
    EmailMessage,
    Notification,
    NotificationPriority,
    NotificationType,
)

logger = structlog.get_logger(__name__)


class ApprovalStore(ABC):
    """Persistence for manual approvals and their notifications."""

    @abstractmethod
    async def save(self, approval: ManualApproval) -> None:
        """Create or update an approval."""

    @abstractmethod
    async def get(self, approval_id: str) -> ManualApproval | None:
        """Get an approval by id."""

    @abstractmethod
    async def list_pending(self) -> list[ManualApproval]:
        """List pending approvals in any order."""

    @abstractmethod
    async def delete_processed_before(self, cutoff: datetime) -> list[ManualApproval]:
        """Remove terminal approvals requested before the cutoff."""

    @abstractmethod
    async def save_notification(self, notification: Notification) -> None:
        """Append a notification record."""

    @abstractmethod
    async def list_notifications(self, limit: int) -> list[Notification]:
        """Return the most recent notifications, newest first."""

    @abstractmethod
    async def delete_notifications_before(self, cutoff: datetime) -> list[Notification]:
        """Remove notifications created before the cutoff."""


class InMemoryApprovalStore(ApprovalStore):
    """In-memory approval store for single-process deployments and tests."""

    def __init__(self) -> None:
        self._approvals: dict[str, ManualApproval] = {}
        self._notifications: list[Notification] = []

    async def save(self, approval: ManualApproval) -> None:
        self._approvals[approval.id] = approval

    async def get(self, approval_id: str) -> ManualApproval | None:
        return self._approvals.get(approval_id)

    async def list_pending(self) -> list[ManualApproval]:
        return [a for a in self._approvals.values() if a.is_pending()]

    async def delete_processed_before(self, cutoff: datetime) -> list[ManualApproval]:
        removed = [
            a
            for a in self._approvals.values()
            if not a.is_pending() and a.requested_at < cutoff
        ]
        for approval in removed:
            del self._approvals[approval.id]
        return removed

    async def save_notification(self, notification: Notification) -> None:
        self._notifications.append(notification)

    async def list_notifications(self, limit: int) -> list[Notification]:
        if limit <= 0:
            return []
        return list(reversed(self._notifications[-limit:]))

    async def delete_notifications_before(self, cutoff: datetime) -> list[Notification]:
        removed = [n for n in self._notifications if n.timestamp < cutoff]
        self._notifications = [n for n in self._notifications if n.timestamp >= cutoff]
        return removed


class ManualApprovalQueue:
    """Queue of operations awaiting a sovereign decision.

    The queue is responsible for:
    - Recording approval requests and notifying the sovereign recipient
    - Processing decisions exactly once per approval
    - Listing pending approvals by priority
    - Archiving terminal records after a retention period
    """

    def __init__(
        self,
        forensic_logger: ForensicLogger | None = None,
        store: ApprovalStore | None = None,
        dispatcher: NotificationDispatcher | None = None,
        *,
        sovereign_email: str | None = None,
    ) -> None:
        """Initialize the queue.

        Args:
            forensic_logger: Logger for approval events (not logged if absent).
            store: Approval store (in-memory if not provided).
            dispatcher: Notification dispatcher (console if not provided).
            sovereign_email: Recipient of notifications and default decider.
        """
        self.forensic_logger = forensic_logger
        self.store = store or InMemoryApprovalStore()
        self.dispatcher = dispatcher or NotificationDispatcher()
        self.sovereign_email = sovereign_email or DEFAULT_SOVEREIGN_EMAIL
        self._decision_lock = asyncio.Lock()
        self._logger = logger.bind(component="manual_approval_queue")

    async def request_approval(
        self,
        type: str,
        payload: dict[str, Any],
        requested_by: str,
        priority: ApprovalPriority = ApprovalPriority.NORMAL,
    ) -> ManualApproval:
        """Record an approval request and notify the sovereign recipient.

        Args:
            type: Kind of operation awaiting approval.
            payload: Operation details.
            requested_by: Who asked for the approval.
            priority: Review priority.

        Returns:
            The pending approval.
        """
        approval = ManualApproval(
            type=type,
            payload=payload,
            requested_by=requested_by,
            priority=ApprovalPriority(priority),
        )
        await self.store.save(approval)

        await self._log_event(
            OperationType.APPROVAL_REQUESTED,
            {
                "approval_id": approval.id,
                "type": approval.type,
                "priority": approval.priority.value,
            },
            actor_id=requested_by,
        )
        await self._notify(
            NotificationType.APPROVAL_REQUIRED,
            subject=f"Approval Required: {approval.type}",
            payload=approval.model_dump(mode="json"),
            priority=NotificationPriority(approval.priority.value),
        )

        self._logger.info(
            "approval_requested",
            approval_id=approval.id,
            type=approval.type,
            priority=approval.priority.value,
        )
        return approval.model_copy(deep=True)

    async def process_approval(
        self,
        approval_id: str,
        approved: bool,
        comments: str | None = None,
        decided_by: str | None = None,
    ) -> ManualApproval:
        """Apply a decision to a pending approval.

        Args:
            approval_id: The approval to decide.
            approved: The decision.
            comments: Reviewer comments.
            decided_by: Decider (the sovereign recipient if not provided).

        Returns:
            The decided approval.

        Raises:
            NotFoundError: If the approval does not exist.
            AlreadyProcessedError: If the approval is no longer pending.
        """
        decider = decided_by or self.sovereign_email

        async with self._decision_lock:
            approval = await self.store.get(approval_id)
            if approval is None:
                self._logger.warning("approval_not_found", approval_id=approval_id)
                raise NotFoundError(approval_id)

            if not approval.is_pending():
                self._logger.warning(
                    "approval_not_pending",
                    approval_id=approval_id,
                    status=approval.status.value,
                )
                raise AlreadyProcessedError(approval_id, approval.status.value)

            if approved:
                approval.approve(decided_by=decider, comments=comments)
            else:
                approval.reject(decided_by=decider, comments=comments)
            await self.store.save(approval)

        await self._log_event(
            OperationType.APPROVAL_GRANTED if approved else OperationType.APPROVAL_REJECTED,
            {
                "approval_id": approval.id,
                "comments": comments,
                "original_request": approval.type,
            },
            actor_id=decider,
        )
        await self._notify(
            NotificationType.APPROVAL_PROCESSED,
            subject=f"Approval {approval.status.value}: {approval.type}",
            payload=approval.model_dump(mode="json"),
            priority=NotificationPriority(approval.priority.value),
        )

        self._logger.info(
            "approval_processed",
            approval_id=approval.id,
            status=approval.status.value,
            decided_by=decider,
        )
        return approval.model_copy(deep=True)

    async def get_approval(self, approval_id: str) -> ManualApproval | None:
        """Get a copy of an approval by id."""
        approval = await self.store.get(approval_id)
        return approval.model_copy(deep=True) if approval is not None else None

    async def get_pending_approvals(self) -> list[ManualApproval]:
        """List pending approvals, most urgent first.

        Approvals of equal priority are ordered by request time. The returned
        approvals are copies; decisions go through ``process_approval``.
        """
        pending = await self.store.list_pending()
        return [
            a.model_copy(deep=True)
            for a in sorted(pending, key=lambda a: (a.priority.rank, a.requested_at))
        ]

    async def get_notifications(self, limit: int = 50) -> list[Notification]:
        """Return the most recent notifications, newest first."""
        return await self.store.list_notifications(limit)

    async def archive_old_records(self, days_old: int = 90) -> ArchiveResult:
        """Archive terminal approvals and notifications older than the cutoff.

        Archived records leave the live set and are returned to the caller.
        Pending approvals are never archived. Running the sweep twice archives
        nothing the second time.

        Args:
            days_old: Age threshold in days.

        Returns:
            The archived records and their counts.
        """
        cutoff = datetime.now(UTC) - timedelta(days=days_old)
        approvals = await self.store.delete_processed_before(cutoff)
        notifications = await self.store.delete_notifications_before(cutoff)

        result = ArchiveResult(
            approvals_archived=len(approvals),
            notifications_archived=len(notifications),
            cutoff=cutoff,
            approvals=approvals,
            notifications=notifications,
        )

        await self._notify(
            NotificationType.RECORDS_ARCHIVED,
            subject="Records Archived",
            payload={
                "approvals_archived": result.approvals_archived,
                "notifications_archived": result.notifications_archived,
            },
        )

        self._logger.info(
            "records_archived",
            approvals_archived=result.approvals_archived,
            notifications_archived=result.notifications_archived,
            cutoff=cutoff.isoformat(),
        )
        return result

    async def _log_event(
        self, event: OperationType, data: dict[str, Any], *, actor_id: str
    ) -> None:
        if self.forensic_logger is None:
            return
        actor = Actor(id=actor_id, email=actor_id if "@" in actor_id else None)
        await self.forensic_logger.log(
            OperationRequest(operation_type=event, operation_data=data, actor=actor)
        )

    async def _notify(
        self,
        type: NotificationType,
        *,
        subject: str,
        payload: dict[str, Any],
        priority: NotificationPriority = NotificationPriority.NORMAL,
    ) -> Notification:
        message = EmailMessage(
            to=self.sovereign_email,
            subject=subject,
            body=json.dumps(payload, indent=2, default=str),
            priority=priority,
        )
        result = await self.dispatcher.dispatch(message)

        notification = Notification(
            type=type,
            recipient=self.sovereign_email,
            payload=payload,
            priority=priority,
            sent=result.sent,
            provider=result.provider,
            error=result.error,
        )
        await self.store.save_notification(notification)
        return notification
