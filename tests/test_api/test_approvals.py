"""Tests for manual approval API endpoints."""

import pytest
from fastapi.testclient import TestClient

from src.api.routes import create_app
from src.config import Settings
from src.control.bootstrap import DomainControls

# ============================================================================
# Fixtures
# ============================================================================


@pytest.fixture
def client():
    """Create test client for a fresh domain."""
    controls = DomainControls(
        settings=Settings(DOMAIN="example", SOVEREIGN_EMAIL="sovereign@example.com")
    )
    return TestClient(create_app(controls, title="Test API", version="0.1.0"))


def create(client, priority="NORMAL", type="transfer"):
    """Create an approval through the API."""
    response = client.post(
        "/approvals",
        json={
            "type": type,
            "payload": {"amount": 20000},
            "requested_by": "user@example.com",
            "priority": priority,
        },
    )
    assert response.status_code == 201
    return response.json()


# ============================================================================
# Listing and creating
# ============================================================================


class TestListApprovals:
    """Tests for GET /approvals."""

    def test_list_empty(self, client):
        """Test listing when no approvals exist."""
        response = client.get("/approvals")

        assert response.status_code == 200
        assert response.json() == []

    def test_list_by_priority(self, client):
        """Test pending approvals are listed most urgent first."""
        create(client, "NORMAL")
        create(client, "CRITICAL")
        create(client, "HIGH")

        data = client.get("/approvals").json()

        assert [a["priority"] for a in data] == ["CRITICAL", "HIGH", "NORMAL"]


class TestCreateApproval:
    """Tests for POST /approvals."""

    def test_create(self, client):
        """Test a pending approval is returned."""
        data = create(client)

        assert data["id"].startswith("APR-")
        assert data["status"] == "PENDING"
        assert data["requested_by"] == "user@example.com"

    def test_create_requires_requester(self, client):
        """Test request validation."""
        response = client.post("/approvals", json={"type": "transfer"})
        assert response.status_code == 422

    def test_get(self, client):
        """Test fetching an approval by id."""
        created = create(client)

        response = client.get(f"/approvals/{created['id']}")

        assert response.status_code == 200
        assert response.json()["id"] == created["id"]

    def test_get_not_found(self, client):
        """Test fetching an unknown approval."""
        response = client.get("/approvals/APR-MISSING")

        assert response.status_code == 404
        assert "not found" in response.json()["error"]


# ============================================================================
# Decisions
# ============================================================================


class TestDecide:
    """Tests for approve/reject endpoints."""

    def test_approve(self, client):
        """Test approving a pending approval."""
        created = create(client)

        response = client.post(
            f"/approvals/{created['id']}/approve", json={"comments": "looks fine"}
        )

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "APPROVED"
        assert data["decided_by"] == "sovereign@example.com"
        assert data["comments"] == "looks fine"
        assert client.get("/approvals").json() == []

    def test_reject(self, client):
        """Test rejecting with an explicit decider."""
        created = create(client)

        response = client.post(
            f"/approvals/{created['id']}/reject",
            json={"decided_by": "admin@example.com"},
        )

        assert response.status_code == 200
        assert response.json()["status"] == "REJECTED"
        assert response.json()["decided_by"] == "admin@example.com"

    def test_decide_unknown(self, client):
        """Test deciding an unknown approval."""
        response = client.post("/approvals/APR-MISSING/approve", json={})
        assert response.status_code == 404

    def test_decide_twice(self, client):
        """Test a second decision conflicts."""
        created = create(client)
        client.post(f"/approvals/{created['id']}/approve", json={})

        response = client.post(f"/approvals/{created['id']}/reject", json={})

        assert response.status_code == 409
        assert "APPROVED" in response.json()["error"]


# ============================================================================
# Notifications and archival
# ============================================================================


class TestNotificationsAndArchive:
    """Tests for notification history and archival."""

    def test_notifications(self, client):
        """Test notification history newest first."""
        created = create(client)
        client.post(f"/approvals/{created['id']}/approve", json={})

        data = client.get("/approvals/notifications", params={"limit": 10}).json()

        assert [n["type"] for n in data] == ["APPROVAL_PROCESSED", "APPROVAL_REQUIRED"]
        assert data[0]["recipient"] == "sovereign@example.com"

    def test_archive_default_retention(self, client):
        """Test archival without a body uses the retention setting."""
        response = client.post("/approvals/archive")

        assert response.status_code == 200
        assert response.json()["approvals_archived"] == 0

    def test_archive_days_old(self, client):
        """Test archival with an explicit age."""
        created = create(client)
        client.post(f"/approvals/{created['id']}/approve", json={})

        response = client.post("/approvals/archive", json={"days_old": 0})

        assert response.status_code == 200
        assert response.json()["approvals_archived"] == 1
        assert response.json()["approvals"][0]["id"] == created["id"]
