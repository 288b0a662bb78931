"""Tests for role, health and root endpoints."""

from unittest.mock import MagicMock

from fastapi.testclient import TestClient
from sqlalchemy.exc import OperationalError

from cato.api.routers.health import check_database
from tests.factories import identity_headers


class TestRoleEndpoints:
    """Test role and hierarchy endpoints."""

    def test_list_roles(self, client: TestClient):
        response = client.get("/api/roles", headers=identity_headers("ReadOnlyUser"))
        assert response.status_code == 200
        roles = {role["role"]: role for role in response.json()}
        assert len(roles) == 7
        assert roles["ISSO"]["approval_level"] == 2
        assert roles["ISSO"]["can_approve_exceptions"] is True
        assert "poam_items:approve" in roles["ISSO"]["permissions"]

    def test_hierarchy(self, client: TestClient):
        tiers = client.get("/api/roles/hierarchy", headers=identity_headers("Engineer")).json()
        assert [tier["level"] for tier in tiers] == [2, 3, 4, 5]
        assert tiers[-1]["roles"] == ["AuthorizingOfficer"]

    def test_me(self, client: TestClient):
        headers = identity_headers("ISSM", user_id="issm-7")
        data = client.get("/api/roles/me", headers=headers).json()
        assert data["user_id"] == "issm-7"
        assert data["role"] == "ISSM"
        assert data["can_delegate"] is True
        assert data["can_escalate"] is True
        assert "tenant_management" in data["accessible_resources"]

    def test_list_permissions(self, client: TestClient):
        response = client.get("/api/roles/permissions", headers=identity_headers("Engineer"))
        assert response.status_code == 200
        permissions = response.json()
        assert len(permissions) == 40
        assert {"permission": "poam_items:approve", "resource": "poam_items", "level": "approve"} in permissions
        assert [p["permission"] for p in permissions] == sorted(p["permission"] for p in permissions)

    def test_requires_identity(self, client: TestClient):
        assert client.get("/api/roles").status_code == 401


class TestHealthEndpoints:
    """Test health check endpoints."""

    def test_basic_health_check(self, client: TestClient):
        response = client.get("/api/health")
        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "healthy"
        assert "version" in data
        assert "timestamp" in data

    def test_liveness_probe(self, client: TestClient):
        response = client.get("/api/health/live")
        assert response.status_code == 200
        assert response.json()["status"] == "alive"

    def test_readiness_probe_healthy(self, client: TestClient):
        response = client.get("/api/health/ready")
        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "ready"
        assert data["checks"]["database"]["status"] == "healthy"

    def test_check_database_failure(self):
        db = MagicMock()
        db.execute.side_effect = OperationalError("SELECT 1", {}, Exception("connection refused"))
        result = check_database(db)
        assert result["status"] == "unhealthy"
        assert "connection refused" in result["error"]

    def test_root(self, client: TestClient):
        data = client.get("/").json()
        assert data["name"] == "cATO Dashboard"
