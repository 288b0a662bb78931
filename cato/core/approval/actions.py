"""Reviewer actions on a POA&M under review.

Each action is its own variant; the engine dispatches on ``kind``.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, ClassVar, Dict, Optional

from .errors import MissingDelegateError


class ApprovalAction(str, Enum):
    """Decisions a reviewer can take on a record under review."""

    APPROVE = "approve"
    REJECT = "reject"
    REQUEST_MODIFICATION = "request_modification"
    ESCALATE = "escalate"
    DELEGATE = "delegate"


class HistoryAction(str, Enum):
    """Actions recorded in a record's approval history."""

    SUBMIT = "submit"
    REQUEST_EXCEPTION = "request_exception"
    APPROVE = "approve"
    REJECT = "reject"
    REQUEST_MODIFICATION = "request_modification"
    ESCALATE = "escalate"
    DELEGATE = "delegate"
    WITHDRAW = "withdraw"


@dataclass(frozen=True)
class WorkflowAction:
    kind: ClassVar[ApprovalAction]

    comments: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {"action": self.kind.value, "comments": self.comments}


@dataclass(frozen=True)
class Approve(WorkflowAction):
    kind = ApprovalAction.APPROVE


@dataclass(frozen=True)
class Reject(WorkflowAction):
    kind = ApprovalAction.REJECT


@dataclass(frozen=True)
class RequestModification(WorkflowAction):
    kind = ApprovalAction.REQUEST_MODIFICATION


@dataclass(frozen=True)
class Escalate(WorkflowAction):
    kind = ApprovalAction.ESCALATE


@dataclass(frozen=True, kw_only=True)
class Delegate(WorkflowAction):
    """Hand the current review to another user; status and level stay put."""

    kind = ApprovalAction.DELEGATE
    delegate_to_user_id: Optional[str] = None

    def __post_init__(self):
        if not self.delegate_to_user_id:
            raise MissingDelegateError()

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data["delegate_to_user_id"] = self.delegate_to_user_id
        return data


ACTION_TYPES = {
    ApprovalAction.APPROVE: Approve,
    ApprovalAction.REJECT: Reject,
    ApprovalAction.REQUEST_MODIFICATION: RequestModification,
    ApprovalAction.ESCALATE: Escalate,
    ApprovalAction.DELEGATE: Delegate,
}


def parse_action(
    action: str,
    comments: Optional[str] = None,
    delegate_to_user_id: Optional[str] = None,
) -> WorkflowAction:
    """Build an action variant from its wire name.

    Raises:
        ValueError: If ``action`` is not a known action name
        MissingDelegateError: If a delegate action has no target
    """
    kind = ApprovalAction(action)
    if kind == ApprovalAction.DELEGATE:
        return Delegate(comments=comments, delegate_to_user_id=delegate_to_user_id)
    return ACTION_TYPES[kind](comments=comments)
