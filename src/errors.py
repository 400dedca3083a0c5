"""Error hierarchy for the sovereign control plane.

Exception Hierarchy:
    ControlPlaneError (base)
    ├── ConfigurationError - Invalid or missing configuration
    ├── AuditPersistenceError - Audit store unavailable
    ├── ApprovalAuthorityError - Approval authority failures
    │   └── AuthorityUnavailableError - Network error or timeout
    ├── NotificationDeliveryError - Provider failed to deliver
    └── ManualApprovalError - Manual approval misuse
        ├── NotFoundError - Unknown approval id
        └── AlreadyProcessedError - Approval is already terminal

Only the manual approval errors are expected to reach callers. Everything
else is converted into a structured result at the component boundary.
"""

from typing import Any


class ControlPlaneError(Exception):
    """Base exception for all control plane errors.

    Attributes:
        message: Human-readable error message.
        details: Additional error details.
        recoverable: Whether the error can be recovered from.
    """

    def __init__(
        self,
        message: str,
        *,
        details: dict[str, Any] | None = None,
        recoverable: bool = True,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}
        self.recoverable = recoverable

    def to_dict(self) -> dict[str, Any]:
        """Convert exception to dictionary for logging/API responses."""
        return {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "details": self.details,
            "recoverable": self.recoverable,
        }


class ConfigurationError(ControlPlaneError):
    """Configuration is missing or invalid."""


class AuditPersistenceError(ControlPlaneError):
    """The audit store rejected or failed to persist an entry."""


class ApprovalAuthorityError(ControlPlaneError):
    """The approval authority call failed."""


class AuthorityUnavailableError(ApprovalAuthorityError):
    """The approval authority could not be reached.

    Attributes:
        endpoint: Authority URL that was called.
        timed_out: Whether the failure was a timeout.
    """

    def __init__(
        self,
        message: str,
        *,
        endpoint: str,
        timed_out: bool = False,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message, details=details, recoverable=True)
        self.endpoint = endpoint
        self.timed_out = timed_out

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        base = super().to_dict()
        base.update({"endpoint": self.endpoint, "timed_out": self.timed_out})
        return base


class NotificationDeliveryError(ControlPlaneError):
    """A notification provider failed to deliver a message.

    Attributes:
        provider: Name of the provider that failed.
    """

    def __init__(
        self,
        message: str,
        *,
        provider: str,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message, details=details, recoverable=True)
        self.provider = provider


class ManualApprovalError(ControlPlaneError):
    """Manual approval workflow misuse.

    These indicate a logic or race error by the caller, not a transient
    condition.

    Attributes:
        approval_id: The approval the caller referenced.
    """

    def __init__(self, message: str, *, approval_id: str) -> None:
        super().__init__(
            message, details={"approval_id": approval_id}, recoverable=False
        )
        self.approval_id = approval_id


class NotFoundError(ManualApprovalError):
    """The referenced manual approval does not exist."""

    def __init__(self, approval_id: str) -> None:
        super().__init__("Approval not found", approval_id=approval_id)


class AlreadyProcessedError(ManualApprovalError):
    """The referenced manual approval is no longer pending.

    Attributes:
        status: Terminal status the approval is in.
    """

    def __init__(self, approval_id: str, status: str) -> None:
        super().__init__("Approval already processed", approval_id=approval_id)
        self.status = status
        self.details["status"] = status
