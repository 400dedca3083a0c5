"""FastAPI application for the sovereign control plane.

This module provides:
- The reference approval authority (/api/approval)
- Manual approval review endpoints (/approvals)
- Audit trail endpoints (/audit)
- Health, status and metadata endpoints
- Error handling
"""

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

import structlog
from fastapi import FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from src.control.bootstrap import DomainControls

logger = structlog.get_logger(__name__)


class ErrorResponse(BaseModel):
    """Error response model."""

    error: str = Field(..., description="Error message")
    detail: str | None = Field(default=None, description="Detailed error information")


OPENAPI_TAGS = [
    {
        "name": "Approval Authority",
        "description": "Central authority deciding sensitive operations after "
        "identity, validation and suspicious activity checks.",
    },
    {
        "name": "Approvals",
        "description": "Manual approval queue for operations awaiting a sovereign decision.",
    },
    {
        "name": "Audit",
        "description": "Read access to the domain's hash-chained audit trail.",
    },
    {
        "name": "Health",
        "description": "Liveness, status and configuration endpoints.",
    },
]


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Application lifespan handler."""
    logger.info("application_starting", domain=app.state.controls.domain)

    yield

    logger.info("application_shutting_down")
    await app.state.controls.close()


def create_app(
    controls: DomainControls | None = None,
    *,
    title: str = "Sovereign Control Plane",
    version: str = "1.0.0",
    cors_origins: list[str] | None = None,
) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        controls: Domain controls served by the app (built from the global
            settings if not provided).
        title: API title.
        version: API version.
        cors_origins: Allowed CORS origins.

    Returns:
        Configured FastAPI application.
    """
    app = FastAPI(
        title=title,
        version=version,
        lifespan=lifespan,
        openapi_tags=OPENAPI_TAGS,
    )
    app.state.controls = controls or DomainControls()

    origins = cors_origins or ["*"]
    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(HTTPException)
    async def http_exception_handler(
        request: Request, exc: HTTPException  # noqa: ARG001
    ) -> JSONResponse:
        return JSONResponse(
            status_code=exc.status_code,
            content=ErrorResponse(
                error=exc.detail if isinstance(exc.detail, str) else str(exc.detail),
                detail=None,
            ).model_dump(),
        )

    @app.exception_handler(Exception)
    async def general_exception_handler(
        request: Request, exc: Exception  # noqa: ARG001
    ) -> JSONResponse:
        logger.error("unhandled_exception", error=str(exc), exc_info=True)
        return JSONResponse(
            status_code=500,
            content=ErrorResponse(
                error="Internal server error",
                detail=str(exc) if app.debug else None,
            ).model_dump(),
        )

    register_routes(app)

    return app


def register_routes(app: FastAPI) -> None:
    """Register all routes on the application.

    Args:
        app: FastAPI application.
    """
    from src.api.approvals import router as approvals_router
    from src.api.audit import router as audit_router
    from src.api.authority import router as authority_router

    app.include_router(authority_router)
    app.include_router(approvals_router)
    app.include_router(audit_router)

    @app.get("/health", tags=["Health"])
    async def health() -> dict[str, Any]:
        """Basic liveness check."""
        return {"status": "ok", "domain": app.state.controls.domain}

    @app.get("/status", tags=["Health"])
    async def status() -> dict[str, Any]:
        """Feature flags, active components and uptime."""
        result: dict[str, Any] = app.state.controls.get_status()
        return result

    @app.get("/metadata", tags=["Health"])
    async def metadata() -> dict[str, Any]:
        """Domain control configuration."""
        result: dict[str, Any] = app.state.controls.get_metadata()
        return result


# Default application instance
app = create_app()
