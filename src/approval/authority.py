"""Approval authority clients.

The approval decision engine consults an external approval authority for
every decision. The authority is reached over HTTP with a single attempt
bounded by a timeout; unreachable authorities surface as
``AuthorityUnavailableError`` so the engine can apply its fail-safe rule.
"""

import json
from abc import ABC, abstractmethod
from datetime import UTC, datetime
from typing import Any

import httpx
import structlog
from pydantic import BaseModel, Field

from src.audit.models import OperationRequest
from src.errors import ApprovalAuthorityError, AuthorityUnavailableError

logger = structlog.get_logger(__name__)


class AuthorityResponse(BaseModel):
    """A response received from the approval authority."""

    status_code: int = Field(..., description="HTTP status of the response")
    approved: bool = Field(default=False, description="Authority's verdict")
    message: str | None = Field(default=None, description="Authority message")
    reason: str | None = Field(default=None, description="Authority reason")
    audit_log_id: str | None = Field(default=None, description="Authority audit id")
    risk_level: str | None = Field(default=None, description="Authority risk level")
    raw_text: str = Field(default="", description="Raw response body")

    @property
    def ok(self) -> bool:
        """Whether the authority answered with a 2xx status."""
        return 200 <= self.status_code < 300

    def denial_reason(self) -> str:
        """Reason for an explicit denial, most specific first."""
        return (
            self.message
            or self.reason
            or self.raw_text
            or f"Approval request failed with status {self.status_code}"
        )


class ApprovalAuthority(ABC):
    """External authority that approves or denies operations."""

    @abstractmethod
    async def submit(self, request: OperationRequest, *, domain: str) -> AuthorityResponse:
        """Submit an operation for a decision.

        Args:
            request: The operation to decide.
            domain: Domain the operation belongs to.

        Returns:
            The authority's response, including explicit denials.

        Raises:
            AuthorityUnavailableError: If the authority could not be reached.
            ApprovalAuthorityError: If the authority's answer was malformed.
        """


def build_authority_payload(request: OperationRequest, domain: str) -> dict[str, Any]:
    """Build the JSON body sent to the approval authority."""
    actor = request.actor
    return {
        "operationType": request.operation_type,
        "operationData": {**request.operation_data, "domain": domain},
        "domain": domain,
        "context": {
            "requestedAt": datetime.now(UTC).isoformat(),
            "requestedBy": actor.id,
            "requestedByEmail": actor.email,
            "requestedByVerified": actor.verified,
            "correlationId": request.context.correlation_id,
        },
    }


class HttpApprovalAuthority(ApprovalAuthority):
    """Approval authority reached with a single HTTP POST.

    Example:
        authority = HttpApprovalAuthority("https://authority.example/api/approval")
        response = await authority.submit(request, domain="example")
    """

    def __init__(self, endpoint: str, *, timeout: float = 10.0) -> None:
        """Initialize the authority client.

        Args:
            endpoint: Authority URL.
            timeout: Request timeout in seconds.
        """
        self.endpoint = endpoint
        self.timeout = timeout
        self._logger = logger.bind(component="approval_authority", endpoint=endpoint)

    async def submit(self, request: OperationRequest, *, domain: str) -> AuthorityResponse:
        payload = build_authority_payload(request, domain)
        correlation_id = request.context.correlation_id

        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.post(
                    self.endpoint,
                    json=payload,
                    headers={"X-Correlation-ID": correlation_id},
                )
        except httpx.TimeoutException as e:
            raise AuthorityUnavailableError(
                f"Approval authority timed out after {self.timeout}s",
                endpoint=self.endpoint,
                timed_out=True,
            ) from e
        except httpx.TransportError as e:
            raise AuthorityUnavailableError(
                f"Approval authority unreachable: {e}",
                endpoint=self.endpoint,
            ) from e

        self._logger.debug(
            "authority_responded",
            status_code=response.status_code,
            correlation_id=correlation_id,
        )

        if not 200 <= response.status_code < 300:
            return self._parse_error(response)
        return self._parse_success(response)

    def _parse_error(self, response: httpx.Response) -> AuthorityResponse:
        text = response.text
        try:
            body = json.loads(text)
        except ValueError:
            body = None

        if not isinstance(body, dict):
            return AuthorityResponse(status_code=response.status_code, raw_text=text)

        return AuthorityResponse(
            status_code=response.status_code,
            approved=False,
            message=_as_str(body.get("message")),
            reason=_as_str(body.get("reason")) or _as_str(body.get("error")),
            audit_log_id=_as_str(body.get("auditLogId")),
            raw_text=text,
        )

    def _parse_success(self, response: httpx.Response) -> AuthorityResponse:
        try:
            body = response.json()
        except ValueError as e:
            raise ApprovalAuthorityError(
                "Approval authority returned a malformed response body"
            ) from e

        if not isinstance(body, dict) or not isinstance(body.get("approved"), bool):
            raise ApprovalAuthorityError(
                "Approval authority response is missing a boolean 'approved'"
            )

        return AuthorityResponse(
            status_code=response.status_code,
            approved=body["approved"],
            message=_as_str(body.get("message")),
            reason=_as_str(body.get("reason")),
            audit_log_id=_as_str(body.get("auditLogId")),
            risk_level=_as_str(body.get("riskLevel")),
            raw_text=response.text,
        )


def _as_str(value: Any) -> str | None:
    if value is None or value == "":
        return None
    return str(value)
