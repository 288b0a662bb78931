"""Tests for approval statuses, stages and actions."""

import pytest

from cato.core.approval.actions import (
    ApprovalAction,
    Approve,
    Delegate,
    Escalate,
    Reject,
    RequestModification,
    parse_action,
)
from cato.core.approval.errors import MissingDelegateError
from cato.core.approval.states import (
    APPROVAL_CHAIN,
    DRAFT_STAGE,
    REVIEW_STATES,
    TERMINAL_STATES,
    ApprovalStage,
    ApprovalStatus,
    next_in_chain,
)


class TestApprovalStatuses:
    """Test status definitions."""

    def test_all_statuses_defined(self):
        expected = [
            "Draft", "Submitted", "ISSE_Review", "ISSO_Review", "ISSM_Review",
            "RMO_Review", "AO_Review", "Approved", "Rejected",
            "Requires_Modification", "Withdrawn",
        ]
        assert [status.value for status in ApprovalStatus] == expected

    def test_review_states(self):
        assert REVIEW_STATES == {
            ApprovalStatus.ISSE_REVIEW,
            ApprovalStatus.ISSO_REVIEW,
            ApprovalStatus.ISSM_REVIEW,
            ApprovalStatus.RMO_REVIEW,
            ApprovalStatus.AO_REVIEW,
        }
        assert ApprovalStage.review(5).is_review
        assert not ApprovalStage(ApprovalStatus.REQUIRES_MODIFICATION, 3).is_review

    def test_terminal_states(self):
        assert ApprovalStatus.APPROVED in TERMINAL_STATES
        assert ApprovalStatus.REJECTED in TERMINAL_STATES
        assert ApprovalStatus.WITHDRAWN in TERMINAL_STATES
        assert ApprovalStatus.REQUIRES_MODIFICATION not in TERMINAL_STATES
        assert ApprovalStatus.DRAFT not in TERMINAL_STATES

    def test_approval_chain_is_fixed(self):
        """Test approve walks the review stages in order and ends in Approved."""
        status = ApprovalStatus.ISSE_REVIEW
        walked = [status]
        while status in APPROVAL_CHAIN:
            status = next_in_chain(status)
            walked.append(status)
        assert walked == [
            ApprovalStatus.ISSE_REVIEW,
            ApprovalStatus.ISSO_REVIEW,
            ApprovalStatus.ISSM_REVIEW,
            ApprovalStatus.RMO_REVIEW,
            ApprovalStatus.AO_REVIEW,
            ApprovalStatus.APPROVED,
        ]
        assert next_in_chain(ApprovalStatus.APPROVED) is None


class TestApprovalStage:
    """Test that status and level always agree."""

    @pytest.mark.parametrize("status,level", [
        (ApprovalStatus.DRAFT, 0),
        (ApprovalStatus.SUBMITTED, 0),
        (ApprovalStatus.ISSE_REVIEW, 1),
        (ApprovalStatus.ISSO_REVIEW, 2),
        (ApprovalStatus.ISSM_REVIEW, 3),
        (ApprovalStatus.RMO_REVIEW, 4),
        (ApprovalStatus.AO_REVIEW, 5),
        (ApprovalStatus.APPROVED, 5),
        (ApprovalStatus.REJECTED, 0),
        (ApprovalStatus.WITHDRAWN, 0),
    ])
    def test_fixed_levels(self, status, level):
        assert ApprovalStage.for_status(status).level == level

    def test_mismatched_level_rejected(self):
        with pytest.raises(ValueError, match="requires level 2"):
            ApprovalStage(ApprovalStatus.ISSO_REVIEW, 3)

    def test_requires_modification_keeps_level(self):
        stage = ApprovalStage.for_status(ApprovalStatus.REQUIRES_MODIFICATION, 3)
        assert stage.level == 3

    @pytest.mark.parametrize("level", [None, 0, 6])
    def test_requires_modification_needs_review_level(self, level):
        with pytest.raises((ValueError, KeyError)):
            ApprovalStage.for_status(ApprovalStatus.REQUIRES_MODIFICATION, level)

    def test_review_stage_for_level(self):
        assert ApprovalStage.review(4) == ApprovalStage(ApprovalStatus.RMO_REVIEW, 4)
        with pytest.raises(KeyError):
            ApprovalStage.review(0)

    def test_stage_flags(self):
        assert ApprovalStage.review(1).is_review
        assert not DRAFT_STAGE.is_review
        assert ApprovalStage.for_status(ApprovalStatus.APPROVED).is_terminal
        assert not ApprovalStage.review(5).is_terminal

    def test_stage_accepts_status_strings(self):
        assert ApprovalStage("ISSM_Review", 3).status is ApprovalStatus.ISSM_REVIEW


class TestWorkflowActions:
    """Test action variants and parsing."""

    def test_variant_kinds(self):
        assert Approve().kind == ApprovalAction.APPROVE
        assert Reject().kind == ApprovalAction.REJECT
        assert RequestModification().kind == ApprovalAction.REQUEST_MODIFICATION
        assert Escalate().kind == ApprovalAction.ESCALATE
        assert Delegate(delegate_to_user_id="u9").kind == ApprovalAction.DELEGATE

    def test_comments_carried(self):
        assert Reject("Not enough evidence").comments == "Not enough evidence"

    def test_delegate_requires_target(self):
        with pytest.raises(MissingDelegateError):
            Delegate()
        with pytest.raises(MissingDelegateError):
            Delegate(delegate_to_user_id="")

    def test_parse_action(self):
        action = parse_action("escalate", "Needs RMO eyes")
        assert isinstance(action, Escalate)
        assert action.comments == "Needs RMO eyes"

    def test_parse_delegate(self):
        action = parse_action("delegate", delegate_to_user_id="deputy-issm")
        assert isinstance(action, Delegate)
        assert action.to_dict() == {
            "action": "delegate",
            "comments": None,
            "delegate_to_user_id": "deputy-issm",
        }

    def test_parse_delegate_without_target(self):
        with pytest.raises(MissingDelegateError):
            parse_action("delegate")

    def test_parse_unknown_action(self):
        with pytest.raises(ValueError):
            parse_action("rubber_stamp")
