"""Shared FastAPI dependencies."""

from fastapi import Request

from src.control.bootstrap import DomainControls


def get_controls(request: Request) -> DomainControls:
    """Return the domain controls the application was created with."""
    controls: DomainControls = request.app.state.controls
    return controls
