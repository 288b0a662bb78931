"""Tests for the POA&M workflow API endpoints."""

import pytest
from fastapi.testclient import TestClient

from cato.db.models.audit import AuditLog
from tests.factories import identity_headers


SE = identity_headers("SecurityEngineer", user_id="se-1")
ISSO = identity_headers("ISSO", user_id="isso-1")
ISSM = identity_headers("ISSM", user_id="issm-1")
AO = identity_headers("AuthorizingOfficer", user_id="ao-1")
ENGINEER = identity_headers("Engineer", user_id="eng-1")


def create_poam(client: TestClient, headers=SE, **body) -> dict:
    body.setdefault("title", "Unpatched OpenSSL on bastion hosts")
    response = client.post("/api/poams", json=body, headers=headers)
    assert response.status_code == 201, response.text
    return response.json()


def act(client: TestClient, record_id: str, action: str, headers, **body):
    return client.post(f"/api/poams/{record_id}/actions", json={"action": action, **body}, headers=headers)


@pytest.fixture
def submitted(client):
    """POA&M in ISSE_Review submitted by se-1."""
    poam = create_poam(client)
    response = client.post(f"/api/poams/{poam['id']}/submit", json={}, headers=SE)
    assert response.status_code == 200, response.text
    return response.json()


class TestIdentity:
    """Test identity headers and permission gates."""

    def test_missing_headers(self, client: TestClient):
        response = client.get("/api/poams")
        assert response.status_code == 401

    def test_unknown_role(self, client: TestClient):
        headers = {**SE, "X-User-Role": "Intern"}
        assert client.get("/api/poams", headers=headers).status_code == 401

    def test_unknown_clearance(self, client: TestClient):
        headers = {**SE, "X-User-Clearance": "Cosmic"}
        assert client.get("/api/poams", headers=headers).status_code == 401

    def test_clearance_accepted(self, client: TestClient):
        headers = {**SE, "X-User-Clearance": "Secret"}
        assert client.get("/api/poams", headers=headers).status_code == 200

    def test_engineer_cannot_create(self, client: TestClient):
        response = client.post("/api/poams", json={"title": "Nope"}, headers=ENGINEER)
        assert response.status_code == 403
        assert "Permission denied" in response.json()["detail"]


class TestPOAMCrud:
    """Test create, read, list, update and delete."""

    def test_create(self, client: TestClient):
        poam = create_poam(client, risk_level="High", affected_controls=["SI-2"])
        assert poam["approval_status"] == "Draft"
        assert poam["approval_level"] == 0
        assert poam["version"] == 1
        assert poam["tenant_id"] == "tenant-a"
        assert poam["risk_level"] == "High"
        assert poam["affected_controls"] == ["SI-2"]
        assert poam["approval_history"] == []

    def test_create_validation(self, client: TestClient):
        response = client.post("/api/poams", json={"title": ""}, headers=SE)
        assert response.status_code == 422

    def test_get(self, client: TestClient):
        poam = create_poam(client)
        response = client.get(f"/api/poams/{poam['id']}", headers=ENGINEER)
        assert response.status_code == 200
        assert response.json()["title"] == poam["title"]

    def test_get_other_tenant(self, client: TestClient):
        poam = create_poam(client)
        headers = identity_headers("AuthorizingOfficer", tenant_id="tenant-b")
        response = client.get(f"/api/poams/{poam['id']}", headers=headers)
        assert response.status_code == 404
        assert response.json()["code"] == "not_found"

    def test_list_with_filter_and_paging(self, client: TestClient):
        ids = [create_poam(client, title=f"Finding {n}")["id"] for n in range(3)]
        client.post(f"/api/poams/{ids[0]}/submit", json={}, headers=SE)

        data = client.get("/api/poams", params={"limit": 2}, headers=SE).json()
        assert data["total"] == 3
        assert len(data["items"]) == 2

        drafts = client.get("/api/poams", params={"status": "Draft"}, headers=SE).json()
        assert drafts["total"] == 2
        assert {item["id"] for item in drafts["items"]} == set(ids[1:])

    def test_update(self, client: TestClient):
        poam = create_poam(client)
        response = client.patch(
            f"/api/poams/{poam['id']}",
            json={"version": 1, "weakness": "No patch cadence"},
            headers=SE,
        )
        assert response.status_code == 200
        assert response.json()["weakness"] == "No patch cadence"
        assert response.json()["version"] == 2

    def test_update_stale_version(self, client: TestClient):
        poam = create_poam(client)
        client.patch(f"/api/poams/{poam['id']}", json={"weakness": "a"}, headers=SE)
        response = client.patch(f"/api/poams/{poam['id']}", json={"version": 1, "weakness": "b"}, headers=SE)
        assert response.status_code == 409
        assert response.json()["code"] == "version_conflict"

    @pytest.mark.parametrize("field", ["title", "severity", "risk_level", "weakness", "affected_controls"])
    def test_update_rejects_null(self, client: TestClient, field):
        """Test required content fields can be omitted but not cleared."""
        poam = create_poam(client)
        response = client.patch(f"/api/poams/{poam['id']}", json={field: None}, headers=SE)
        assert response.status_code == 422

        record = client.get(f"/api/poams/{poam['id']}", headers=SE).json()
        assert record["version"] == 1
        assert record["title"] == poam["title"]

    def test_update_clears_optional_field(self, client: TestClient):
        poam = create_poam(client, assigned_to="eng-1")
        response = client.patch(f"/api/poams/{poam['id']}", json={"assigned_to": None}, headers=SE)
        assert response.status_code == 200
        assert response.json()["assigned_to"] is None

    def test_assignee_too_long(self, client: TestClient):
        poam = create_poam(client)
        response = client.patch(f"/api/poams/{poam['id']}", json={"assigned_to": "x" * 65}, headers=SE)
        assert response.status_code == 422

    def test_update_under_review(self, client: TestClient, submitted):
        response = client.patch(f"/api/poams/{submitted['id']}", json={"title": "Changed"}, headers=SE)
        assert response.status_code == 409
        assert response.json()["code"] == "invalid_state"

    def test_delete_draft(self, client: TestClient):
        poam = create_poam(client)
        assert client.delete(f"/api/poams/{poam['id']}", headers=SE).status_code == 204
        assert client.get(f"/api/poams/{poam['id']}", headers=SE).status_code == 404

    def test_delete_under_review(self, client: TestClient, submitted):
        response = client.delete(f"/api/poams/{submitted['id']}", headers=SE)
        assert response.status_code == 409


class TestWorkflowEndpoints:
    """Test workflow transitions over HTTP."""

    def test_submit(self, submitted):
        assert submitted["approval_status"] == "ISSE_Review"
        assert submitted["approval_level"] == 1
        assert submitted["submitted_by"] == "se-1"
        assert submitted["approval_history"][0]["actor_role"] == "SecurityEngineer"

    def test_exception_request(self, client: TestClient):
        poam = create_poam(client)
        response = client.post(
            f"/api/poams/{poam['id']}/exception",
            json={
                "exception_type": "Implementation_Delay",
                "justification": "Hardware refresh scheduled",
                "compensating_controls": ["SC-7"],
            },
            headers=SE,
        )
        assert response.status_code == 200
        data = response.json()
        assert data["exception_type"] == "Implementation_Delay"
        assert data["approval_history"][-1]["action"] == "request_exception"

    def test_security_engineer_isso_engineer_scenario(self, client: TestClient, db_session, submitted):
        """Test an Engineer is refused at ISSO_Review and the refusal is audited."""
        response = act(client, submitted["id"], "approve", ISSO)
        assert response.status_code == 200
        assert response.json()["approval_status"] == "ISSO_Review"

        response = act(client, submitted["id"], "approve", ENGINEER)
        assert response.status_code == 403
        assert response.json()["code"] == "insufficient_authority"

        denied = db_session.query(AuditLog).filter(AuditLog.action == "approve_denied").all()
        assert len(denied) == 1
        assert denied[0].actor_id == "eng-1"
        assert denied[0].severity == "warning"

        history = client.get(f"/api/poams/{submitted['id']}/history", headers=SE).json()
        assert [entry["action"] for entry in history] == ["submit", "approve"]

    def test_round_trip_with_authorizing_officer(self, client: TestClient, submitted):
        for _ in range(5):
            response = act(client, submitted["id"], "approve", AO)
            assert response.status_code == 200
        data = response.json()
        assert data["approval_status"] == "Approved"
        assert data["approval_level"] == 5
        assert data["approved_date"] is not None
        assert len(data["approval_history"]) == 6

        response = act(client, submitted["id"], "reject", AO)
        assert response.status_code == 409
        assert response.json()["code"] == "invalid_state"

    def test_escalation_ceiling(self, client: TestClient, submitted):
        for _ in range(4):
            act(client, submitted["id"], "approve", AO)
        response = act(client, submitted["id"], "escalate", AO)
        assert response.status_code == 409
        assert response.json()["code"] == "no_higher_authority"

    def test_delegate(self, client: TestClient, submitted):
        for _ in range(2):
            act(client, submitted["id"], "approve", AO)
        response = act(client, submitted["id"], "delegate", ISSM, delegate_to_user_id="deputy-issm")
        assert response.status_code == 200
        assert response.json()["current_approver"] == "deputy-issm"
        assert response.json()["approval_status"] == "ISSM_Review"

    def test_delegate_without_target(self, client: TestClient, db_session, submitted):
        """Test a delegate with no target is refused and the refusal is audited."""
        response = act(client, submitted["id"], "delegate", ISSM)
        assert response.status_code == 422
        assert response.json()["code"] == "missing_delegate"

        denied = db_session.query(AuditLog).filter(AuditLog.action == "delegate_denied").all()
        assert len(denied) == 1
        assert denied[0].actor_id == "issm-1"
        assert denied[0].details["error_code"] == "missing_delegate"

        record = client.get(f"/api/poams/{submitted['id']}", headers=SE).json()
        assert record["version"] == submitted["version"]
        assert record["current_approver"] is None

    def test_delegate_without_target_checks_authority_first(self, client: TestClient, db_session, submitted):
        act(client, submitted["id"], "approve", ISSO)
        response = act(client, submitted["id"], "delegate", ENGINEER, delegate_to_user_id="")
        assert response.status_code == 403
        assert response.json()["code"] == "insufficient_authority"

        denied = db_session.query(AuditLog).filter(AuditLog.action == "delegate_denied").all()
        assert [entry.details["error_code"] for entry in denied] == ["insufficient_authority"]

    def test_delegate_target_too_long(self, client: TestClient, submitted):
        response = act(client, submitted["id"], "delegate", ISSM, delegate_to_user_id="x" * 65)
        assert response.status_code == 422

    def test_unknown_action(self, client: TestClient, submitted):
        assert act(client, submitted["id"], "rubber_stamp", AO).status_code == 422

    def test_request_modification_and_resubmit(self, client: TestClient, submitted):
        act(client, submitted["id"], "approve", ISSO)
        response = act(client, submitted["id"], "request_modification", ISSO, comments="Add milestones")
        assert response.json()["approval_status"] == "Requires_Modification"
        assert response.json()["approval_level"] == 2

        client.patch(f"/api/poams/{submitted['id']}", json={"implementation_plan": "Q3 patch"}, headers=SE)
        response = client.post(f"/api/poams/{submitted['id']}/submit", json={}, headers=SE)
        assert response.json()["approval_status"] == "ISSE_Review"

    def test_withdraw(self, client: TestClient, submitted):
        other = identity_headers("SecurityEngineer", user_id="se-2")
        response = client.post(f"/api/poams/{submitted['id']}/withdraw", json={}, headers=other)
        assert response.status_code == 403

        response = client.post(
            f"/api/poams/{submitted['id']}/withdraw", json={"comments": "Duplicate"}, headers=SE,
        )
        assert response.status_code == 200
        assert response.json()["approval_status"] == "Withdrawn"


class TestWorkflowQueries:
    """Test pending, workflow, statistics and batch endpoints."""

    def test_pending(self, client: TestClient, submitted):
        act(client, submitted["id"], "approve", ISSO)
        pending = client.get("/api/poams/pending", headers=ISSO).json()
        assert [p["id"] for p in pending] == [submitted["id"]]
        assert client.get("/api/poams/pending", headers=ISSM).json() == []

    def test_workflow_status(self, client: TestClient, submitted):
        act(client, submitted["id"], "approve", ISSO)
        act(client, submitted["id"], "approve", ISSO)
        data = client.get(f"/api/poams/{submitted['id']}/workflow", headers=ISSM).json()
        assert data["current_level"] == 3
        assert data["next_approvers"] == ["ISSM", "RiskManagementOfficer", "AuthorizingOfficer"]
        assert [step["status"] for step in data["workflow_progress"]] == [
            "completed", "current", "pending", "pending",
        ]
        assert "delegate" in data["available_actions"]

    def test_statistics(self, client: TestClient, submitted):
        create_poam(client, risk_level="Low")
        data = client.get("/api/poams/statistics", headers=SE).json()
        assert data["total"] == 2
        assert data["pending_approval"] == 1
        assert data["by_status"]["Draft"] == 1
        assert data["by_status"]["ISSE_Review"] == 1

    def test_batch_actions(self, client: TestClient, submitted):
        draft = create_poam(client)
        response = client.post(
            "/api/poams/batch/actions",
            json={"action": "approve", "record_ids": [submitted["id"], draft["id"]]},
            headers=ISSO,
        )
        assert response.status_code == 200
        data = response.json()
        assert data["processed"] == [submitted["id"]]
        assert data["failed"][0]["id"] == draft["id"]
        assert data["failed"][0]["code"] == "invalid_state"

    def test_batch_delegate_without_target(self, client: TestClient, db_session, submitted):
        response = client.post(
            "/api/poams/batch/actions",
            json={"action": "delegate", "record_ids": [submitted["id"]]},
            headers=ISSM,
        )
        assert response.status_code == 200
        assert response.json()["failed"][0]["code"] == "missing_delegate"
        assert db_session.query(AuditLog).filter(AuditLog.action == "delegate_denied").count() == 1

    def test_audit_trail(self, client: TestClient, submitted):
        act(client, submitted["id"], "approve", ENGINEER)
        act(client, submitted["id"], "approve", ISSO)

        response = client.get(f"/api/poams/{submitted['id']}/audit", headers=SE)
        assert response.status_code == 200
        entries = response.json()
        assert [entry["action"] for entry in entries] == ["create", "submit", "approve_denied", "approve"]
        assert entries[2]["severity"] == "warning"
        assert entries[2]["actor_id"] == "eng-1"

    def test_audit_trail_unknown_record(self, client: TestClient):
        assert client.get("/api/poams/missing/audit", headers=SE).status_code == 404
