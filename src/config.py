"""Control plane configuration settings.

This module provides centralized configuration management using environment
variables with sensible defaults. Every value here can also be injected
directly into the components that consume it.
"""

import os
from dataclasses import dataclass

import structlog

logger = structlog.get_logger(__name__)

DEFAULT_SOVEREIGN_EMAIL = "sovereign-alerts@localhost"


def _get_bool_env(name: str, default: bool = False) -> bool:
    """Get a boolean value from environment variable.

    Args:
        name: Environment variable name.
        default: Default value if not set.

    Returns:
        Boolean value from environment.
    """
    value = os.getenv(name, "").lower()
    if value in ("true", "1", "yes", "on"):
        return True
    if value in ("false", "0", "no", "off"):
        return False
    return default


def _get_float_env(name: str, default: float) -> float:
    """Get a float value from environment variable.

    Unparseable values degrade to the default with a warning.

    Args:
        name: Environment variable name.
        default: Default value if not set or invalid.

    Returns:
        Float value from environment.
    """
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    try:
        return float(raw)
    except ValueError:
        logger.warning("invalid_config_value", name=name, value=raw, default=default)
        return default


def _get_int_env(name: str, default: int) -> int:
    """Get an integer value from environment variable."""
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    try:
        return int(raw)
    except ValueError:
        logger.warning("invalid_config_value", name=name, value=raw, default=default)
        return default


@dataclass
class Settings:
    """Control plane settings loaded from environment variables.

    Attributes:
        DOMAIN: Domain (tenant) identifier the control plane is bound to.
        DATABASE: Database identifier recorded in audit entries.
        SOVEREIGN_EMAIL: Recipient of sovereign notifications.
        APPROVAL_API_ENDPOINT: URL of the external approval authority.
        AUTO_APPROVE_AMOUNT: Amount below which operations are routine.
        MANUAL_REVIEW_AMOUNT: Amount at which operations are flagged for review.
        CRITICAL_AMOUNT: Amount at which operations fail closed on error.
        APPROVAL_TIMEOUT_SECONDS: Timeout for the approval authority call.
        NOTIFICATION_TIMEOUT_SECONDS: Timeout for notification delivery.
        FORENSIC_ENABLED: Enable forensic audit logging.
        APPROVAL_REQUIRED: Enable the approval decision engine.
        EMAIL_PROVIDER: Notification provider (console, smtp, sendgrid).
        EMAIL_FROM: Sender address for outbound notifications.
        SMTP_HOST: SMTP server hostname.
        SMTP_PORT: SMTP server port.
        SMTP_USER: SMTP login username.
        SMTP_PASSWORD: SMTP login password.
        SMTP_USE_TLS: Use implicit TLS for SMTP.
        SENDGRID_API_KEY: SendGrid API key.
        AUDIT_DB_PATH: SQLite path for the audit store (in-memory if unset).
        SANDBOX_MODE: Reference authority auto-approves everything.
        ARCHIVE_RETENTION_DAYS: Age after which terminal records are archived.
        LOG_LEVEL: Logging level.
    """

    # Identity
    DOMAIN: str = "system"
    DATABASE: str | None = None

    # Approval
    SOVEREIGN_EMAIL: str | None = None
    APPROVAL_API_ENDPOINT: str = "http://localhost:8000/api/approval"
    AUTO_APPROVE_AMOUNT: float = 1000.0
    MANUAL_REVIEW_AMOUNT: float = 10000.0
    CRITICAL_AMOUNT: float = 50000.0
    APPROVAL_TIMEOUT_SECONDS: float = 10.0
    NOTIFICATION_TIMEOUT_SECONDS: float = 5.0

    # Feature switches
    FORENSIC_ENABLED: bool = True
    APPROVAL_REQUIRED: bool = True

    # Notifications
    EMAIL_PROVIDER: str = "console"
    EMAIL_FROM: str = "noreply@localhost"
    SMTP_HOST: str | None = None
    SMTP_PORT: int = 587
    SMTP_USER: str | None = None
    SMTP_PASSWORD: str | None = None
    SMTP_USE_TLS: bool = False
    SENDGRID_API_KEY: str | None = None

    # Storage
    AUDIT_DB_PATH: str | None = None
    ARCHIVE_RETENTION_DAYS: int = 90

    # Reference authority
    SANDBOX_MODE: bool = False

    # Logging
    LOG_LEVEL: str = "INFO"

    @property
    def database_name(self) -> str:
        """Database identifier, derived from the domain when not set."""
        return self.DATABASE or f"{self.DOMAIN}_db"

    def sovereign_recipient(self) -> str:
        """Resolve the sovereign notification recipient.

        A missing recipient is a configuration error that degrades to a
        warning and the default address.

        Returns:
            The configured or default recipient address.
        """
        if not self.SOVEREIGN_EMAIL:
            logger.warning(
                "sovereign_email_not_configured",
                domain=self.DOMAIN,
                default=DEFAULT_SOVEREIGN_EMAIL,
            )
            return DEFAULT_SOVEREIGN_EMAIL
        return self.SOVEREIGN_EMAIL

    @classmethod
    def from_env(cls) -> "Settings":
        """Create settings from environment variables.

        Returns:
            Settings instance populated from environment.
        """
        return cls(
            DOMAIN=os.getenv("DOMAIN", "system"),
            DATABASE=os.getenv("DATABASE"),
            SOVEREIGN_EMAIL=os.getenv("SOVEREIGN_EMAIL"),
            APPROVAL_API_ENDPOINT=os.getenv(
                "APPROVAL_API_ENDPOINT", "http://localhost:8000/api/approval"
            ),
            AUTO_APPROVE_AMOUNT=_get_float_env("AUTO_APPROVE_AMOUNT", 1000.0),
            MANUAL_REVIEW_AMOUNT=_get_float_env("MANUAL_REVIEW_AMOUNT", 10000.0),
            CRITICAL_AMOUNT=_get_float_env("CRITICAL_AMOUNT", 50000.0),
            APPROVAL_TIMEOUT_SECONDS=_get_float_env("APPROVAL_TIMEOUT_SECONDS", 10.0),
            NOTIFICATION_TIMEOUT_SECONDS=_get_float_env(
                "NOTIFICATION_TIMEOUT_SECONDS", 5.0
            ),
            FORENSIC_ENABLED=_get_bool_env("FORENSIC_ENABLED", default=True),
            APPROVAL_REQUIRED=_get_bool_env("APPROVAL_REQUIRED", default=True),
            EMAIL_PROVIDER=os.getenv("EMAIL_PROVIDER", "console").lower(),
            EMAIL_FROM=os.getenv("EMAIL_FROM", os.getenv("SMTP_FROM", "noreply@localhost")),
            SMTP_HOST=os.getenv("SMTP_HOST"),
            SMTP_PORT=_get_int_env("SMTP_PORT", 587),
            SMTP_USER=os.getenv("SMTP_USER"),
            SMTP_PASSWORD=os.getenv("SMTP_PASSWORD"),
            SMTP_USE_TLS=_get_bool_env("SMTP_USE_TLS", default=False),
            SENDGRID_API_KEY=os.getenv("SENDGRID_API_KEY"),
            AUDIT_DB_PATH=os.getenv("AUDIT_DB_PATH"),
            ARCHIVE_RETENTION_DAYS=_get_int_env("ARCHIVE_RETENTION_DAYS", 90),
            SANDBOX_MODE=_get_bool_env("SANDBOX_MODE", default=False),
            LOG_LEVEL=os.getenv("LOG_LEVEL", "INFO"),
        )


# Global settings instance
settings = Settings.from_env()
