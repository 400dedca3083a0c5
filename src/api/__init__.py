"""FastAPI routes for the Sovereign Control Plane API.

This module contains:
- The reference approval authority endpoint
- Manual approval review endpoints
- Audit trail endpoints
- The application factory
"""

from src.api.approvals import router as approvals_router
from src.api.audit import router as audit_router
from src.api.authority import AUTHORITY_PATH
from src.api.authority import router as authority_router
from src.api.dependencies import get_controls
from src.api.routes import ErrorResponse, app, create_app

__all__ = [
    # Routers
    "AUTHORITY_PATH",
    "approvals_router",
    "audit_router",
    "authority_router",
    # Dependencies
    "get_controls",
    # App factory and instance
    "ErrorResponse",
    "app",
    "create_app",
]
