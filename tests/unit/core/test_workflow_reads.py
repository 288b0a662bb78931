"""Tests for derived workflow reads: pending, progress, status and statistics."""

from datetime import datetime, timedelta, timezone

import pytest

from cato.core.approval.actions import Approve
from cato.core.approval.machine import ApprovalWorkflowEngine
from cato.core.approval.states import ApprovalStatus
from cato.core.rbac.roles import Role
from tests.factories import make_record


NOW = datetime(2025, 6, 1, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def at_issm_review(engine, draft_record, clock):
    """Record walked to ISSM_Review by each tier's own role."""
    record = engine.submit_for_approval(draft_record, "se-1")
    clock.advance(days=1)
    record = engine.process_approval_action(record, Approve(), "se-2", Role.SECURITY_ENGINEER)
    clock.advance(days=1)
    return engine.process_approval_action(record, Approve(), "isso-1", Role.ISSO)


class TestPendingApprovals:
    """Test pending approvals per role."""

    def test_exact_level_only(self, engine):
        records = [
            make_record(status=ApprovalStatus.ISSO_REVIEW),
            make_record(status=ApprovalStatus.ISSM_REVIEW),
            make_record(status=ApprovalStatus.ISSO_REVIEW),
            make_record(status=ApprovalStatus.REQUIRES_MODIFICATION, level=2),
            make_record(status=ApprovalStatus.DRAFT),
        ]
        pending = engine.pending_approvals_for(Role.ISSO, records)
        assert [r.id for r in pending] == [records[0].id, records[2].id]

    def test_role_without_review_stage(self, engine):
        records = [make_record(status=ApprovalStatus.ISSE_REVIEW)]
        assert engine.pending_approvals_for(Role.ENGINEER, records) == []

    def test_security_engineer_sees_isse_review(self, engine):
        records = [make_record(status=ApprovalStatus.ISSE_REVIEW)]
        assert engine.pending_approvals_for(Role.SECURITY_ENGINEER, records) == records


class TestWorkflowProgress:
    """Test per-tier progress."""

    def test_progress_mid_chain(self, engine, at_issm_review, clock):
        steps = engine.workflow_progress(at_issm_review)
        assert [(s.level, s.status) for s in steps] == [
            (2, "completed"),
            (3, "current"),
            (4, "pending"),
            (5, "pending"),
        ]
        assert steps[0].approver == "isso-1"
        assert steps[0].completed_at == clock()
        assert steps[0].roles == [Role.ISSO]
        assert steps[1].approver is None

    def test_draft_is_all_pending(self, engine, draft_record):
        steps = engine.workflow_progress(draft_record)
        assert {s.status for s in steps} == {"pending"}

    def test_approved_is_all_completed(self, engine, at_issm_review):
        record = at_issm_review
        for actor_id, role in [
            ("issm-1", Role.ISSM),
            ("rmo-1", Role.RISK_MANAGEMENT_OFFICER),
            ("ao-1", Role.AUTHORIZING_OFFICER),
        ]:
            record = engine.process_approval_action(record, Approve(), actor_id, role)

        steps = engine.workflow_progress(record)
        assert {s.status for s in steps} == {"completed"}
        assert [s.approver for s in steps] == ["isso-1", "issm-1", "rmo-1", "ao-1"]

    def test_step_to_dict(self, engine, at_issm_review):
        data = engine.workflow_progress(at_issm_review)[0].to_dict()
        assert data["roles"] == ["ISSO"]
        assert data["status"] == "completed"
        assert data["completed_at"].startswith("2025-03-03")


class TestWorkflowStatus:
    """Test the workflow status summary."""

    def test_under_review(self, engine, at_issm_review):
        status = engine.workflow_status(at_issm_review)
        assert status["current_level"] == 3
        assert status["approval_status"] == "ISSM_Review"
        assert status["next_approvers"] == ["ISSM", "RiskManagementOfficer", "AuthorizingOfficer"]
        assert len(status["workflow_progress"]) == 4

    def test_terminal_has_no_next_approvers(self, engine):
        status = engine.workflow_status(make_record(status=ApprovalStatus.REJECTED))
        assert status["next_approvers"] == []
        assert status["current_level"] == 0

    def test_delegated_approver_reported(self, engine):
        record = make_record(status=ApprovalStatus.ISSM_REVIEW, current_approver="deputy-issm")
        assert engine.workflow_status(record)["current_approver"] == "deputy-issm"


class TestStatistics:
    """Test tenant statistics."""

    @pytest.fixture
    def records(self):
        base = datetime(2025, 5, 1, tzinfo=timezone.utc)
        return [
            make_record(status=ApprovalStatus.DRAFT, risk_level="High"),
            make_record(
                status=ApprovalStatus.ISSO_REVIEW,
                risk_level="High",
                target_approval_date=NOW - timedelta(days=1),
            ),
            make_record(
                status=ApprovalStatus.APPROVED,
                risk_level="Low",
                submitted_date=base,
                approved_date=base + timedelta(days=4),
                target_approval_date=NOW - timedelta(days=10),
            ),
            make_record(
                status=ApprovalStatus.APPROVED,
                risk_level="Moderate",
                submitted_date=base,
                approved_date=base + timedelta(days=2),
            ),
            make_record(
                status=ApprovalStatus.REJECTED,
                risk_level="Low",
                target_approval_date=NOW + timedelta(days=5),
            ),
        ]

    def test_counts(self, engine, records):
        stats = engine.statistics(records, NOW)
        assert stats.total == 5
        assert stats.pending_approval == 1
        assert stats.overdue == 1
        assert stats.avg_approval_time_days == pytest.approx(3.0)

    def test_by_status_zero_filled(self, engine, records):
        stats = engine.statistics(records, NOW)
        assert set(stats.by_status) == {status.value for status in ApprovalStatus}
        assert stats.by_status["Approved"] == 2
        assert stats.by_status["Draft"] == 1
        assert stats.by_status["AO_Review"] == 0

    def test_by_risk_level(self, engine, records):
        stats = engine.statistics(records, NOW)
        assert stats.by_risk_level == {"High": 2, "Low": 2, "Moderate": 1}

    def test_empty(self, engine):
        stats = engine.statistics([], NOW)
        assert stats.total == 0
        assert stats.avg_approval_time_days == 0.0
        assert stats.by_risk_level == {}
        assert sum(stats.by_status.values()) == 0

    def test_defaults_to_engine_clock(self, authority):
        engine = ApprovalWorkflowEngine(authority, clock=lambda: NOW)
        record = make_record(
            status=ApprovalStatus.ISSE_REVIEW,
            target_approval_date=NOW - timedelta(seconds=1),
        )
        assert engine.statistics([record]).overdue == 1

    def test_to_dict(self, engine, records):
        data = engine.statistics(records, NOW).to_dict()
        assert data["total"] == 5
        assert data["by_status"]["Rejected"] == 1


class TestOverdue:
    """Test the overdue predicate."""

    def test_past_target_not_approved(self):
        record = make_record(status=ApprovalStatus.ISSM_REVIEW, target_approval_date=NOW - timedelta(hours=1))
        assert ApprovalWorkflowEngine.is_overdue(record, NOW)

    def test_approved_never_overdue(self):
        record = make_record(status=ApprovalStatus.APPROVED, target_approval_date=NOW - timedelta(days=30))
        assert not ApprovalWorkflowEngine.is_overdue(record, NOW)

    def test_no_target(self):
        assert not ApprovalWorkflowEngine.is_overdue(make_record(status=ApprovalStatus.ISSE_REVIEW), NOW)

    def test_naive_target_treated_as_utc(self):
        record = make_record(status=ApprovalStatus.ISSE_REVIEW, target_approval_date=datetime(2025, 5, 31))
        assert ApprovalWorkflowEngine.is_overdue(record, NOW)
