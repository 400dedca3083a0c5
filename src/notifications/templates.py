"""Message templates for sovereign notifications."""

import json
from datetime import UTC, datetime
from typing import Any

from src.audit.models import Actor
from src.notifications.models import EmailMessage, NotificationPriority

_RULE = "=" * 60


def sovereign_alert_subject(operation_type: str, domain: str) -> str:
    """Subject line of a sovereign alert."""
    return f"Sovereign Alert: {operation_type} in {domain}"


def format_sovereign_alert(
    *,
    operation_type: str,
    operation_data: dict[str, Any],
    actor: Actor | None,
    domain: str,
    approved: bool,
    risk_level: str | None = None,
    audit_log_id: str | None = None,
    reason: str | None = None,
    timestamp: datetime | None = None,
) -> str:
    """Render the plain-text body of a sovereign alert.

    Args:
        operation_type: Operation type tag.
        operation_data: Operation payload, pretty-printed in the body.
        actor: Requester, shown by email, then id, then "Unknown".
        domain: Domain the operation belongs to.
        approved: The decision being reported.
        risk_level: Risk level reported by the authority, if any.
        audit_log_id: Authority-side audit entry id, if any.
        reason: Decision reason.
        timestamp: Time shown in the body (now if not provided).

    Returns:
        The message body.
    """
    user = "Unknown"
    if actor is not None:
        user = actor.email or (actor.id if actor.id and actor.id != "unknown" else "Unknown")

    lines = [
        "Sovereign Control Notification",
        _RULE,
        "",
        f"DOMAIN: {domain.upper()}",
        f"OPERATION: {operation_type}",
        f"USER: {user}",
        f"TIMESTAMP: {(timestamp or datetime.now(UTC)).isoformat()}",
        "",
        "TRANSACTION DETAILS:",
        json.dumps(operation_data, indent=2, default=str),
        "",
        f"APPROVAL STATUS: {'APPROVED' if approved else 'REJECTED'}",
        f"RISK LEVEL: {risk_level or 'N/A'}",
        f"AUDIT LOG ID: {audit_log_id or 'N/A'}",
    ]
    if reason:
        lines.extend(["", reason])
    lines.extend(
        [
            "",
            _RULE,
            "This is an automated sovereign control notification.",
            "All operations are logged immutably for forensic audit purposes.",
        ]
    )
    return "\n".join(lines)


def build_sovereign_alert(
    *,
    recipient: str,
    critical: bool,
    operation_type: str,
    operation_data: dict[str, Any],
    actor: Actor | None,
    domain: str,
    approved: bool,
    risk_level: str | None = None,
    audit_log_id: str | None = None,
    reason: str | None = None,
) -> EmailMessage:
    """Build the sovereign alert message for a decided operation.

    Priority is CRITICAL for critical-amount operations, HIGH otherwise.
    """
    return EmailMessage(
        to=recipient,
        subject=sovereign_alert_subject(operation_type, domain),
        body=format_sovereign_alert(
            operation_type=operation_type,
            operation_data=operation_data,
            actor=actor,
            domain=domain,
            approved=approved,
            risk_level=risk_level,
            audit_log_id=audit_log_id,
            reason=reason,
        ),
        priority=NotificationPriority.CRITICAL if critical else NotificationPriority.HIGH,
    )
