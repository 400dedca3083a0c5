"""Tests for the reference approval authority endpoint."""

import pytest
from fastapi.testclient import TestClient

from src.api.routes import create_app
from src.config import Settings
from src.control.bootstrap import DomainControls

# ============================================================================
# Fixtures
# ============================================================================


@pytest.fixture
def controls():
    """Domain controls for the authority's own domain."""
    return DomainControls(
        settings=Settings(DOMAIN="authority", SOVEREIGN_EMAIL="sovereign@example.com")
    )


@pytest.fixture
def client(controls):
    """Create test client."""
    return TestClient(create_app(controls, title="Test API", version="0.1.0"))


@pytest.fixture
def valid_request():
    """A well-formed approval request from a verified user."""
    return {
        "operationType": "transfer",
        "operationData": {"amount": 500, "destination": "wallet-1"},
        "domain": "example",
        "context": {
            "requestedBy": "user-1",
            "requestedByEmail": "user@example.com",
            "requestedByVerified": True,
            "correlationId": "corr-1",
        },
    }


# ============================================================================
# Validation
# ============================================================================


class TestRequestValidation:
    """Tests for malformed requests."""

    @pytest.mark.parametrize(
        "missing,error",
        [
            ("operationType", "Missing operation type"),
            ("operationData", "Missing operation data"),
            ("domain", "Missing domain"),
        ],
    )
    def test_missing_fields(self, client, valid_request, missing, error):
        """Test required fields are enforced."""
        del valid_request[missing]

        response = client.post("/api/approval", json=valid_request)

        assert response.status_code == 400
        assert response.json()["approved"] is False
        assert response.json()["error"] == error

    def test_invalid_operation_type(self, client, valid_request):
        """Test operation types outside the catalog are rejected."""
        valid_request["operationType"] = "generic"

        response = client.post("/api/approval", json=valid_request)

        assert response.status_code == 400
        assert response.json()["error"] == "Invalid operation type"

    def test_invalid_amount(self, client, valid_request):
        """Test malformed operation data is rejected."""
        valid_request["operationData"]["amount"] = -10

        response = client.post("/api/approval", json=valid_request)

        assert response.status_code == 400
        assert response.json()["error"] == "Invalid operation data"

    def test_method_not_allowed(self, client):
        """Test only POST is accepted."""
        response = client.get("/api/approval")

        assert response.status_code == 405
        assert response.json()["error"] == "Method not allowed"


# ============================================================================
# Decisions
# ============================================================================


class TestDecisions:
    """Tests for approval and rejection."""

    def test_approved(self, client, valid_request):
        """Test a clean request is approved and logged."""
        response = client.post("/api/approval", json=valid_request)

        assert response.status_code == 200
        data = response.json()
        assert data["approved"] is True
        assert data["riskLevel"] == "medium"
        assert data["auditLogId"]
        assert data["message"] == "Operation approved and logged"
        assert data["details"]["identityVerified"] is True

    def test_approval_is_audited(self, client, valid_request):
        """Test the decision is recorded in the authority's audit trail."""
        response = client.post(
            "/api/approval",
            json=valid_request,
            headers={"X-Correlation-ID": "corr-header"},
        )

        entries = client.get("/audit/logs").json()
        assert len(entries) == 1
        entry = entries[0]
        assert entry["id"] == response.json()["auditLogId"]
        assert entry["approved"] is True
        assert entry["domain"] == "authority"
        assert entry["operation_data"]["domain"] == "example"
        assert entry["context"]["correlation_id"] == "corr-header"

    def test_anonymous_request_rejected(self, client, valid_request):
        """Test requests without a user session are rejected."""
        valid_request["context"] = {}

        response = client.post("/api/approval", json=valid_request)

        assert response.status_code == 403
        data = response.json()
        assert data["approved"] is False
        assert data["rejected"] is True
        assert "No user session found" in data["reason"]
        assert data["message"] == "Operation rejected due to security concerns"
        assert data["details"]["identityCheck"]["verified"] is False

    def test_large_amount_rejected(self, client, valid_request):
        """Test unusually large amounts are blocked."""
        valid_request["operationData"]["amount"] = 75000

        response = client.post("/api/approval", json=valid_request)

        assert response.status_code == 403
        assert "Unusually large transaction amount" in response.json()["reason"]

    def test_invalid_operation_rejected(self, client, valid_request):
        """Test validation errors are reasons for rejection."""
        del valid_request["operationData"]["destination"]

        response = client.post("/api/approval", json=valid_request)

        assert response.status_code == 403
        assert "Missing destination" in response.json()["reason"]

    def test_unverified_user_approved_with_indicator(self, client, valid_request):
        """Test unverified users are flagged but not blocked."""
        valid_request["context"]["requestedByVerified"] = False

        response = client.post("/api/approval", json=valid_request)

        assert response.status_code == 200
        assert response.json()["details"]["noSuspiciousActivity"] is False


class TestSandbox:
    """Tests for sandbox mode."""

    def test_sandbox_auto_approves(self):
        """Test every request is approved without checks."""
        controls = DomainControls(settings=Settings(DOMAIN="authority", SANDBOX_MODE=True))
        client = TestClient(create_app(controls))

        response = client.post("/api/approval", json={"operationType": "transfer"})

        assert response.status_code == 200
        assert response.json()["approved"] is True
        assert response.json()["reason"] == "Sandbox mode - auto-approved"
