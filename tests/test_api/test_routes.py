"""Tests for the FastAPI application factory."""

import pytest
from fastapi.testclient import TestClient

from src.api.routes import ErrorResponse, create_app
from src.config import Settings
from src.control.bootstrap import DomainControls

# ============================================================================
# Fixtures
# ============================================================================


@pytest.fixture
def controls():
    """Domain controls for the test app."""
    return DomainControls(
        settings=Settings(DOMAIN="example", SOVEREIGN_EMAIL="sovereign@example.com")
    )


@pytest.fixture
def app(controls):
    """Create test FastAPI app."""
    return create_app(controls, title="Test API", version="0.1.0")


@pytest.fixture
def client(app):
    """Create test client."""
    return TestClient(app)


# ============================================================================
# App Factory Tests
# ============================================================================


class TestCreateApp:
    """Tests for create_app."""

    def test_app_metadata(self, app, controls):
        """Test title, version and controls."""
        assert app.title == "Test API"
        assert app.version == "0.1.0"
        assert app.state.controls is controls

    def test_routes_registered(self, app):
        """Test every router is mounted."""
        paths = {route.path for route in app.routes}

        assert "/api/approval" in paths
        assert "/approvals" in paths
        assert "/audit/logs" in paths
        assert "/health" in paths

    def test_lifespan_closes_controls(self, controls):
        """Test shutdown releases the controls."""
        closed = []

        async def close():
            closed.append(True)

        controls.close = close

        with TestClient(create_app(controls)):
            pass

        assert closed == [True]


# ============================================================================
# Health Tests
# ============================================================================


class TestHealthEndpoints:
    """Tests for health, status and metadata."""

    def test_health(self, client):
        """Test the liveness check."""
        response = client.get("/health")

        assert response.status_code == 200
        assert response.json() == {"status": "ok", "domain": "example"}

    def test_status(self, client):
        """Test the status report."""
        data = client.get("/status").json()

        assert data["domain"] == "example"
        assert data["forensic_enabled"] is True
        assert data["approval_required"] is True
        assert data["components"]["notifications"] == "console"

    def test_metadata(self, client):
        """Test the configuration report."""
        data = client.get("/metadata").json()

        assert data["sovereign_email"] == "sovereign@example.com"
        assert data["thresholds"]["manual_review_amount"] == 10000.0


# ============================================================================
# Error Handling Tests
# ============================================================================


class TestErrorHandling:
    """Tests for error responses."""

    def test_error_response_model(self):
        """Test the error body shape."""
        error = ErrorResponse(error="Something failed", detail="details")
        assert error.model_dump() == {"error": "Something failed", "detail": "details"}

    def test_unhandled_exception(self, controls):
        """Test unexpected errors become a 500 error response."""

        def broken():
            raise RuntimeError("status unavailable")

        controls.get_status = broken
        client = TestClient(create_app(controls), raise_server_exceptions=False)

        response = client.get("/status")

        assert response.status_code == 500
        assert response.json()["error"] == "Internal server error"
